"""Batch orchestration module."""
from .attribution import AttributionResult, attribute_emails
from .batch import BatchResult, BatchState, DailyBatchDriver, UserResult
from .window import compute_daily_window, next_run_at

__all__ = [
    "AttributionResult",
    "attribute_emails",
    "BatchResult",
    "BatchState",
    "DailyBatchDriver",
    "UserResult",
    "compute_daily_window",
    "next_run_at",
]
