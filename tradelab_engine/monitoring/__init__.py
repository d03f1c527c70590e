"""Monitoring for the strategy lab engine."""

from .metrics import LabMetrics

__all__ = ["LabMetrics"]
