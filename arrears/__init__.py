"""Overdue installment computation and throttled reminder delivery."""

__version__ = "1.0.0"
