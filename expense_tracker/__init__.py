"""
Expense Tracker - Source Package

A conversational expense-tracking assistant. Chat messages in a small
line-oriented format become stored expense records, and the stored
records answer daily, range and overall spending questions.

DESIGN PRINCIPLES:
1. Unparseable input is an expected outcome, not an error
2. Aggregates are recomputed from stored records on every query
3. Category names are unique regardless of case
4. Storage layer is swappable (SQL or in-memory)
5. Every significant step is logged
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
