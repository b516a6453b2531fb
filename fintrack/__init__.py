"""
fintrack - Source Package

Personal-finance tracking core: recurring transactions, their projected
upcoming occurrences, and dashboard metrics over stored transactions.

DESIGN PRINCIPLES:
1. Projections are computed on demand, never persisted
2. The projection core is pure; "today" is always passed in
3. Bad data degrades gracefully and visibly (logged, never fatal)
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "fintrack Team"
