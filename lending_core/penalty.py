"""
Penalty Accrual Module

Late-payment penalty for an installment: a daily percentage of the penalty
basis for every whole day past the grace window. The penalty is always
recomputed from the original due date, so re-running accrual for the same
as-of date never compounds a previously stored value.
"""

from decimal import Decimal
from datetime import date, datetime, timedelta
from dataclasses import replace
from enum import Enum

from .currency import Money
from .amortization import Installment, InstallmentStatus
from .exceptions import InvalidInputError


class PenaltyBasis(Enum):
    """Amount the daily penalty rate is applied to"""
    UNPAID_REMAINDER = "unpaid_remainder"   # EMI still unpaid on the installment
    FULL_EMI = "full_emi"                   # whole EMI regardless of part payments


def _as_date(value) -> date:
    # A datetime counts only the calendar day; partial days never add a day
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise InvalidInputError(f"Expected a date, got {value!r}")


def overdue_days(due_date: date, grace_period_days: int, as_of_date: date) -> int:
    """
    Whole days elapsed after the grace window closed

    Zero on or before due_date + grace_period_days.
    """
    if isinstance(grace_period_days, bool) or not isinstance(grace_period_days, int) or grace_period_days < 0:
        raise InvalidInputError("Grace period must be a non-negative integer", field="grace_period_days")
    grace_end = _as_date(due_date) + timedelta(days=grace_period_days)
    as_of = _as_date(as_of_date)
    if as_of <= grace_end:
        return 0
    return (as_of - grace_end).days


def compute_penalty(
    emi_amount: Money,
    due_date: date,
    grace_period_days: int,
    daily_penalty_rate_percent: Decimal,
    as_of_date: date
) -> Money:
    """
    Penalty = basis * daily rate% * overdue days / 100, rounded to currency

    Args:
        emi_amount: Penalty basis (the EMI, or its unpaid remainder)
        due_date: Installment due date
        grace_period_days: Days after due date with no penalty
        daily_penalty_rate_percent: e.g. Decimal('2') for 2% per day
        as_of_date: Evaluation date

    Returns:
        Non-negative penalty amount
    """
    if not isinstance(emi_amount, Money) or emi_amount.is_negative():
        raise InvalidInputError("Penalty basis must be a non-negative amount", field="emi_amount")
    if not isinstance(daily_penalty_rate_percent, Decimal) or daily_penalty_rate_percent < Decimal('0'):
        raise InvalidInputError("Daily penalty rate must be a non-negative Decimal",
                                field="daily_penalty_rate_percent")

    days = overdue_days(due_date, grace_period_days, as_of_date)
    if days == 0:
        return Money.zero(emi_amount.currency)
    return Money(
        emi_amount.amount * daily_penalty_rate_percent * Decimal(days) / Decimal('100'),
        emi_amount.currency
    )


def penalty_basis_amount(installment: Installment, basis: PenaltyBasis) -> Money:
    if basis == PenaltyBasis.FULL_EMI:
        return installment.emi_amount
    return installment.unpaid_emi


def accrue_penalty(
    installment: Installment,
    grace_period_days: int,
    daily_penalty_rate_percent: Decimal,
    as_of_date: date,
    basis: PenaltyBasis = PenaltyBasis.UNPAID_REMAINDER
) -> Installment:
    """
    Return the installment with penalty, total due and status as of a date

    Paid installments come back unchanged. Penalty already collected is
    never written back down, so the stored penalty is at least penalty_paid.
    An unpaid installment with a penalty becomes OVERDUE; an OVERDUE one whose
    penalty evaluates to zero goes back to UNPAID. PARTIAL stays PARTIAL.
    """
    if installment.is_paid:
        return installment

    penalty = compute_penalty(
        penalty_basis_amount(installment, basis),
        installment.due_date,
        grace_period_days,
        daily_penalty_rate_percent,
        as_of_date
    )
    penalty = max(penalty, installment.penalty_paid)

    status = installment.status
    if penalty.is_positive() and status == InstallmentStatus.UNPAID:
        status = InstallmentStatus.OVERDUE
    elif penalty.is_zero() and status == InstallmentStatus.OVERDUE:
        status = InstallmentStatus.UNPAID

    return replace(
        installment,
        penalty_amount=penalty,
        total_amount=installment.emi_amount + penalty,
        status=status
    )
