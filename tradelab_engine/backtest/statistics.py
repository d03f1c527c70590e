"""Distribution helpers shared by the scenario reports."""

import math
from collections.abc import Iterable

import numpy as np


def _finite(values: Iterable[float | None]) -> np.ndarray:
    return np.array([v for v in values if v is not None and math.isfinite(v)], dtype=float)


def percentile(values: Iterable[float | None], p: float) -> float | None:
    """Linear-interpolated percentile over finite values; ``p`` in [0, 1].

    Index ``(n - 1) x p`` is interpolated between its neighbours, matching
    numpy's default ``linear`` method.
    """
    arr = _finite(values)
    if arr.size == 0:
        return None
    return float(np.percentile(arr, p * 100.0))


def median(values: Iterable[float | None]) -> float | None:
    arr = _finite(values)
    if arr.size == 0:
        return None
    return float(np.median(arr))


def distribution(values: Iterable[float | None]) -> tuple[float | None, float | None, float | None]:
    """Return (median, P10, P90)."""
    values = list(values)
    return median(values), percentile(values, 0.1), percentile(values, 0.9)


def sort_key_desc(value: float | None) -> tuple[int, float]:
    """Sort key placing larger values first and missing values last."""
    if value is None or not math.isfinite(value):
        return (1, 0.0)
    return (0, -value)


def sort_key_asc(value: float | None) -> tuple[int, float]:
    """Sort key placing smaller values first and missing values last."""
    if value is None or not math.isfinite(value):
        return (1, 0.0)
    return (0, value)
