"""Bounded worker pool for independent simulation runs."""

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchExecutor:
    """Runs ``handler`` over ``items`` with at most ``max_workers`` in flight.

    Results come back in input order regardless of completion order. Items
    that have not started when ``cancel_event`` is set are answered by
    ``on_cancelled`` instead of the handler.

    Example:
        >>> BatchExecutor.run(["a", "b"], str.upper, max_workers=2)
        ['A', 'B']
    """

    @staticmethod
    def run(
        items: Iterable[T],
        handler: Callable[[T], R],
        max_workers: int = 2,
        cancel_event: threading.Event | None = None,
        on_cancelled: Callable[[T], R] | None = None,
    ) -> list[R]:
        items = list(items)
        if not items:
            logger.info("No batch items to process")
            return []

        def guarded(item: T) -> R:
            if cancel_event is not None and cancel_event.is_set() and on_cancelled is not None:
                return on_cancelled(item)
            return handler(item)

        workers = max(1, min(max_workers, len(items)))
        logger.info("Running batch of %d items on %d workers", len(items), workers)
        if workers == 1:
            return [guarded(item) for item in items]

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tradelab") as pool:
            futures = [pool.submit(guarded, item) for item in items]
            return [future.result() for future in futures]
