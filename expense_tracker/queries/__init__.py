"""Aggregation and reporting package."""

from expense_tracker.queries.aggregator import Aggregator, InvalidRangeError, category_breakdown

__all__ = ["Aggregator", "InvalidRangeError", "category_breakdown"]
