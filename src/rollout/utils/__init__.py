"""Utility functions for rollout."""

from rollout.utils.amount_parser import parse_amount
from rollout.utils.batch import fan_out
from rollout.utils.month import iter_months, month_window, validate_month
from rollout.utils.retry import call_with_retry

__all__ = ["parse_amount", "fan_out", "iter_months", "month_window", "validate_month", "call_with_retry"]
