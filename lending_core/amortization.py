"""
Amortization Module

Turns approved loan terms into an ordered EMI schedule for flat and
reducing-balance loans. Pure computation: no storage, no clock.

Rounding: every figure is rounded to the currency's minor unit as soon as it
is computed, and the final installment takes whatever principal is left. A
flat EMI never changes, so when a zero or near-zero rate leaves no interest to
trade against, the principal components may fall short of the loan amount by
fewer minor units than there are installments.
"""

from decimal import Decimal, ROUND_DOWN
from datetime import date, timedelta
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Type, TypeVar
from enum import Enum
import calendar

from .currency import Money, Currency
from .exceptions import InvalidInputError


class InterestType(Enum):
    """How interest is charged over the tenure"""
    FLAT = "flat"            # Interest on original principal, spread evenly
    REDUCING = "reducing"    # Interest on the declining balance (annuity)


class RepaymentFrequency(Enum):
    """Due-date spacing between installments"""
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class InstallmentStatus(Enum):
    """Collection status of a single installment"""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


E = TypeVar('E', bound=Enum)

# Annual rates are percentages over twelve rate periods
RATE_DIVISOR = Decimal('1200')


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Accept an enum member or its value; reject anything else"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidInputError(
            f"Unrecognized {field_name} {value!r}; expected one of: {allowed}",
            field=field_name
        )


def _require_non_negative_int(value: Any, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"{field_name} must be a non-negative integer", field=field_name)


def _validate_schedule_inputs(principal: Money, annual_rate_percent: Decimal, tenure_count: int) -> None:
    if not isinstance(principal, Money) or not principal.is_positive():
        raise InvalidInputError("Principal must be a positive amount", field="principal")
    if isinstance(tenure_count, bool) or not isinstance(tenure_count, int) or tenure_count < 1:
        raise InvalidInputError("Tenure must be a positive number of installments", field="tenure")
    if not isinstance(annual_rate_percent, Decimal) or annual_rate_percent < Decimal('0'):
        raise InvalidInputError("Annual interest rate must be a non-negative Decimal percentage",
                                field="annual_interest_rate")


@dataclass
class LoanTerms:
    """Loan terms, immutable once the loan is approved"""
    principal: Money
    annual_interest_rate: Decimal          # percentage, e.g. 12 for 12% p.a.
    tenure: int                            # number of installments
    interest_type: InterestType
    repayment_frequency: RepaymentFrequency
    start_date: date
    grace_period_days: Optional[int] = None                 # None -> configured default
    daily_penalty_rate_percent: Optional[Decimal] = None    # None -> configured default

    def __post_init__(self):
        if not isinstance(self.annual_interest_rate, Decimal) and self.annual_interest_rate is not None:
            self.annual_interest_rate = Decimal(str(self.annual_interest_rate))
        self.interest_type = coerce_enum(InterestType, self.interest_type, "interest_type")
        self.repayment_frequency = coerce_enum(RepaymentFrequency, self.repayment_frequency, "repayment_frequency")
        _validate_schedule_inputs(self.principal, self.annual_interest_rate, self.tenure)

        if not isinstance(self.start_date, date):
            raise InvalidInputError("Start date must be a calendar date", field="start_date")
        if self.grace_period_days is not None:
            _require_non_negative_int(self.grace_period_days, "grace_period_days")
        if self.daily_penalty_rate_percent is not None:
            if not isinstance(self.daily_penalty_rate_percent, Decimal):
                self.daily_penalty_rate_percent = Decimal(str(self.daily_penalty_rate_percent))
            if self.daily_penalty_rate_percent < Decimal('0'):
                raise InvalidInputError("Daily penalty rate must not be negative",
                                        field="daily_penalty_rate_percent")

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    def to_dict(self) -> Dict[str, Any]:
        return {
            'principal': str(self.principal.amount),
            'currency': self.principal.currency.code,
            'annual_interest_rate': str(self.annual_interest_rate),
            'tenure': self.tenure,
            'interest_type': self.interest_type.value,
            'repayment_frequency': self.repayment_frequency.value,
            'start_date': self.start_date.isoformat(),
            'grace_period_days': self.grace_period_days,
            'daily_penalty_rate_percent': (
                str(self.daily_penalty_rate_percent)
                if self.daily_penalty_rate_percent is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanTerms':
        rate = data.get('daily_penalty_rate_percent')
        return cls(
            principal=Money(Decimal(data['principal']), Currency[data['currency']]),
            annual_interest_rate=Decimal(data['annual_interest_rate']),
            tenure=data['tenure'],
            interest_type=InterestType(data['interest_type']),
            repayment_frequency=RepaymentFrequency(data['repayment_frequency']),
            start_date=date.fromisoformat(data['start_date']),
            grace_period_days=data.get('grace_period_days'),
            daily_penalty_rate_percent=Decimal(rate) if rate is not None else None,
        )


@dataclass
class Installment:
    """
    One scheduled installment of a loan

    Created in bulk by compute_schedule; afterwards only penalty accrual
    (penalty/total/status) and payment recording (paid amount/date/status)
    change it.
    """
    installment_number: int
    due_date: date
    emi_amount: Money
    principal_amount: Money
    interest_amount: Money
    outstanding_balance: Money          # principal remaining after this installment
    penalty_amount: Money = None
    total_amount: Money = None          # EMI + penalty
    status: InstallmentStatus = InstallmentStatus.UNPAID
    paid_amount: Money = None
    penalty_paid: Money = None          # part of paid_amount that settled penalty
    paid_date: Optional[date] = None
    loan_id: Optional[str] = None

    def __post_init__(self):
        zero = Money.zero(self.emi_amount.currency)
        if self.penalty_amount is None:
            self.penalty_amount = zero
        if self.paid_amount is None:
            self.paid_amount = zero
        if self.penalty_paid is None:
            self.penalty_paid = zero
        if self.total_amount is None:
            self.total_amount = self.emi_amount + self.penalty_amount

        if self.principal_amount + self.interest_amount != self.emi_amount:
            raise InvalidInputError(
                f"EMI {self.emi_amount.to_string()} does not equal "
                f"principal {self.principal_amount.to_string()} + "
                f"interest {self.interest_amount.to_string()}"
            )

    @property
    def currency(self) -> Currency:
        return self.emi_amount.currency

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    @property
    def emi_paid(self) -> Money:
        """Part of the paid amount that went to the EMI itself"""
        return self.paid_amount - self.penalty_paid

    @property
    def unpaid_emi(self) -> Money:
        return (self.emi_amount - self.emi_paid).floor_at_zero()

    @property
    def penalty_due(self) -> Money:
        return (self.penalty_amount - self.penalty_paid).floor_at_zero()

    @property
    def amount_due(self) -> Money:
        return (self.total_amount - self.paid_amount).floor_at_zero()

    def storage_key(self) -> str:
        return f"{self.loan_id}_{self.installment_number}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'loan_id': self.loan_id,
            'installment_number': self.installment_number,
            'due_date': self.due_date.isoformat(),
            'currency': self.currency.code,
            'status': self.status.value,
            'paid_date': self.paid_date.isoformat() if self.paid_date else None,
        }
        for name in ('emi_amount', 'principal_amount', 'interest_amount', 'outstanding_balance',
                     'penalty_amount', 'total_amount', 'paid_amount', 'penalty_paid'):
            result[name] = str(getattr(self, name).amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        currency = Currency[data['currency']]

        def money(name: str) -> Money:
            return Money(Decimal(data[name]), currency)

        return cls(
            installment_number=data['installment_number'],
            due_date=date.fromisoformat(data['due_date']),
            emi_amount=money('emi_amount'),
            principal_amount=money('principal_amount'),
            interest_amount=money('interest_amount'),
            outstanding_balance=money('outstanding_balance'),
            penalty_amount=money('penalty_amount'),
            total_amount=money('total_amount'),
            status=InstallmentStatus(data['status']),
            paid_amount=money('paid_amount'),
            penalty_paid=money('penalty_paid'),
            paid_date=date.fromisoformat(data['paid_date']) if data.get('paid_date') else None,
            loan_id=data.get('loan_id'),
        )


@dataclass
class ScheduleSummary:
    """Loan-level totals derived from a schedule"""
    emi_amount: Money
    total_principal: Money
    total_interest: Money
    total_amount: Money
    installment_count: int
    maturity_date: date


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of shorter months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date_for(start_date: date, installment_number: int, frequency: RepaymentFrequency) -> date:
    """Due date of installment i: start + i periods"""
    if frequency == RepaymentFrequency.MONTHLY:
        return add_months(start_date, installment_number)
    if frequency == RepaymentFrequency.WEEKLY:
        return start_date + timedelta(weeks=installment_number)
    raise InvalidInputError(f"Unsupported repayment frequency: {frequency}", field="repayment_frequency")


def periodic_rate(annual_rate_percent: Decimal) -> Decimal:
    return annual_rate_percent / RATE_DIVISOR


def reducing_balance_emi(principal: Money, annual_rate_percent: Decimal, tenure_count: int) -> Money:
    """
    Level installment for a reducing-balance loan

    EMI = P * r * (1+r)^n / ((1+r)^n - 1), or P / n when r is zero.
    """
    rate = periodic_rate(annual_rate_percent)
    if rate == Decimal('0'):
        return principal / Decimal(tenure_count)
    factor = (Decimal('1') + rate) ** tenure_count
    return Money(principal.amount * rate * factor / (factor - Decimal('1')), principal.currency)


def _flat_schedule(principal: Money, annual_rate_percent: Decimal, tenure_count: int) -> List[Dict[str, Money]]:
    currency = principal.currency
    total_interest = principal.amount * annual_rate_percent * Decimal(tenure_count) / RATE_DIVISOR
    interest_per_period = Money(total_interest / Decimal(tenure_count), currency)
    # Rounded down so the last row is only ever left with extra principal, never short
    principal_per_period = Money(
        (principal.amount / Decimal(tenure_count)).quantize(currency.minor_unit, rounding=ROUND_DOWN),
        currency
    )
    emi = principal_per_period + interest_per_period

    rows = []
    balance = principal
    for number in range(1, tenure_count + 1):
        if number < tenure_count:
            principal_part = principal_per_period
            interest_part = interest_per_period
            balance = balance - principal_part
        else:
            # Leftover principal displaces interest up to the level EMI; whatever
            # interest cannot absorb is under n minor units and is not billed
            principal_part = min(balance, emi)
            interest_part = emi - principal_part
            balance = Money.zero(currency)
        rows.append({
            'emi': emi,
            'principal': principal_part,
            'interest': interest_part,
            'balance': balance,
        })
    return rows


def _reducing_schedule(principal: Money, annual_rate_percent: Decimal, tenure_count: int) -> List[Dict[str, Money]]:
    rate = periodic_rate(annual_rate_percent)
    emi = reducing_balance_emi(principal, annual_rate_percent, tenure_count)

    rows = []
    balance = principal
    for number in range(1, tenure_count + 1):
        interest_part = balance * rate
        if number < tenure_count:
            principal_part = min(emi - interest_part, balance)
        else:
            principal_part = balance
        balance = (balance - principal_part).floor_at_zero()
        rows.append({
            'emi': principal_part + interest_part,
            'principal': principal_part,
            'interest': interest_part,
            'balance': balance,
        })
    return rows


def compute_schedule(
    principal: Money,
    annual_rate_percent: Decimal,
    tenure_count: int,
    interest_type,
    start_date: date,
    frequency
) -> List[Installment]:
    """
    Build the full installment schedule for a loan

    Args:
        principal: Amount lent (positive)
        annual_rate_percent: Annual rate as a percentage, e.g. Decimal('12')
        tenure_count: Number of installments (>= 1)
        interest_type: InterestType or its value ("flat" / "reducing")
        start_date: Loan start; installment i falls due i periods later
        frequency: RepaymentFrequency or its value ("monthly" / "weekly")

    Returns:
        Installments ordered by installment number, all UNPAID

    Raises:
        InvalidInputError: On non-positive principal or tenure, negative rate,
            or an unrecognized interest type or frequency
    """
    interest_type = coerce_enum(InterestType, interest_type, "interest_type")
    frequency = coerce_enum(RepaymentFrequency, frequency, "repayment_frequency")
    _validate_schedule_inputs(principal, annual_rate_percent, tenure_count)

    if interest_type == InterestType.FLAT:
        rows = _flat_schedule(principal, annual_rate_percent, tenure_count)
    else:
        rows = _reducing_schedule(principal, annual_rate_percent, tenure_count)

    return [
        Installment(
            installment_number=number,
            due_date=due_date_for(start_date, number, frequency),
            emi_amount=row['emi'],
            principal_amount=row['principal'],
            interest_amount=row['interest'],
            outstanding_balance=row['balance'],
        )
        for number, row in enumerate(rows, start=1)
    ]


def compute_schedule_for_terms(terms: LoanTerms, loan_id: Optional[str] = None) -> List[Installment]:
    """Build the schedule for stored loan terms, tagging rows with the loan id"""
    schedule = compute_schedule(
        principal=terms.principal,
        annual_rate_percent=terms.annual_interest_rate,
        tenure_count=terms.tenure,
        interest_type=terms.interest_type,
        start_date=terms.start_date,
        frequency=terms.repayment_frequency,
    )
    if loan_id is None:
        return schedule
    return [replace(installment, loan_id=loan_id) for installment in schedule]


def summarize_schedule(schedule: List[Installment]) -> ScheduleSummary:
    """Totals stored on the loan once its schedule exists"""
    if not schedule:
        raise InvalidInputError("Cannot summarize an empty schedule")
    currency = schedule[0].currency
    total_principal = Money.zero(currency)
    total_interest = Money.zero(currency)
    for installment in schedule:
        total_principal = total_principal + installment.principal_amount
        total_interest = total_interest + installment.interest_amount
    return ScheduleSummary(
        emi_amount=schedule[0].emi_amount,
        total_principal=total_principal,
        total_interest=total_interest,
        total_amount=total_principal + total_interest,
        installment_count=len(schedule),
        maturity_date=schedule[-1].due_date,
    )
