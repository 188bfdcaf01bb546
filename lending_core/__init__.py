"""
Lending Core

Calculation and bookkeeping core of a small-lender back office: EMI schedule
generation, overdue penalty accrual and double-entry ledger postings, using
Decimal money throughout.
"""

__version__ = "1.0.0"
