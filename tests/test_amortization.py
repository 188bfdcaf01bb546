"""
Test suite for amortization module

Tests flat and reducing-balance schedules, due-date spacing, rounding of
the final installment and input validation. All schedule math must be exact.
"""

import pytest
from decimal import Decimal
from datetime import date, timedelta

from lending_core.currency import Money, Currency
from lending_core.exceptions import InvalidInputError
from lending_core.amortization import (
    compute_schedule, compute_schedule_for_terms, summarize_schedule, reducing_balance_emi,
    add_months, Installment, LoanTerms, InterestType, RepaymentFrequency, InstallmentStatus
)


def inr(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.INR)


def total_principal(schedule):
    total = Money.zero(schedule[0].currency)
    for installment in schedule:
        total = total + installment.principal_amount
    return total


SCHEDULE_CASES = [
    ("120000", "12", 12, InterestType.FLAT),
    ("100000", "10", 7, InterestType.FLAT),
    ("99999.99", "18.5", 36, InterestType.FLAT),
    ("100000", "12", 12, InterestType.REDUCING),
    ("250000", "9.75", 60, InterestType.REDUCING),
    ("1000", "0", 3, InterestType.REDUCING),
    ("5000", "24", 1, InterestType.REDUCING),
]


class TestFlatSchedule:
    """Test flat-interest schedules"""

    def test_flat_loan_scenario(self):
        """Test 120000 at 12% over 12 months gives EMI 11200"""
        schedule = compute_schedule(inr(120000), Decimal('12'), 12, InterestType.FLAT,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert len(schedule) == 12
        for installment in schedule:
            assert installment.emi_amount == inr(11200)
            assert installment.principal_amount == inr(10000)
            assert installment.interest_amount == inr(1200)
            assert installment.status == InstallmentStatus.UNPAID
            assert installment.penalty_amount.is_zero()
            assert installment.paid_amount.is_zero()

        summary = summarize_schedule(schedule)
        assert summary.total_interest == inr(14400)
        assert summary.total_amount == inr(134400)
        assert schedule[0].outstanding_balance == inr(110000)
        assert schedule[-1].outstanding_balance.is_zero()

    def test_flat_emi_constant_with_rounding(self):
        """Test that the final installment absorbs the remainder without changing EMI"""
        schedule = compute_schedule(inr(100000), Decimal('10'), 7, InterestType.FLAT,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert {installment.emi_amount for installment in schedule} == {inr('15119.04')}
        assert schedule[0].principal_amount == inr('14285.71')
        assert schedule[-1].principal_amount == inr('14285.74')
        assert schedule[-1].interest_amount == inr('833.30')
        assert total_principal(schedule) == inr(100000)

    @pytest.mark.parametrize("principal,rate,tenure", [
        ("1000", "0", 4),
        ("1000", "0", 3),
        ("200", "0", 3),
        ("1000", "0.005", 3),
    ])
    def test_level_emi_without_interest_to_absorb(self, principal, rate, tenure):
        """Test flat EMI stays level when the per-period interest rounds to nothing"""
        schedule = compute_schedule(inr(principal), Decimal(rate), tenure, InterestType.FLAT,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert len({installment.emi_amount for installment in schedule}) == 1
        assert all(installment.interest_amount.is_zero() for installment in schedule)
        assert schedule[-1].outstanding_balance.is_zero()
        # Principal may fall short by fewer minor units than installments, never exceed
        shortfall = inr(principal) - total_principal(schedule)
        assert not shortfall.is_negative()
        assert shortfall < inr(Decimal('0.01') * tenure)

    def test_zero_rate_flat_split(self):
        """Test 1000 over 3 at 0% bills 333.33 three times with no interest"""
        schedule = compute_schedule(inr(1000), Decimal('0'), 3, "flat",
                                    date(2024, 1, 1), "monthly")

        assert [installment.emi_amount for installment in schedule] == [inr('333.33')] * 3
        assert [installment.principal_amount for installment in schedule] == [inr('333.33')] * 3
        assert total_principal(schedule) == inr('999.99')

    def test_small_interest_absorbs_remainder(self):
        """Test leftover principal is traded against last-row interest when there is some"""
        schedule = compute_schedule(inr(1000), Decimal('0.6'), 3, InterestType.FLAT,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert {installment.emi_amount for installment in schedule} == {inr('333.83')}
        assert schedule[-1].principal_amount == inr('333.34')
        assert schedule[-1].interest_amount == inr('0.49')
        assert total_principal(schedule) == inr(1000)

    def test_zero_rate_flat_whole_units(self):
        """Test zero-decimal currencies keep a level EMI too"""
        schedule = compute_schedule(Money(Decimal('100'), Currency.JPY), Decimal('0'), 3,
                                    InterestType.FLAT, date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert {installment.emi_amount.amount for installment in schedule} == {Decimal('33')}
        assert all(installment.interest_amount.is_zero() for installment in schedule)


class TestReducingSchedule:
    """Test reducing-balance schedules"""

    def test_reducing_loan_scenario(self):
        """Test 100000 at 12% over 12 months"""
        schedule = compute_schedule(inr(100000), Decimal('12'), 12, InterestType.REDUCING,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert schedule[0].emi_amount == inr('8884.88')
        assert schedule[0].interest_amount == inr('1000.00')
        assert schedule[0].principal_amount == inr('7884.88')
        assert schedule[0].outstanding_balance == inr('92115.12')
        assert schedule[1].interest_amount == inr('921.15')
        assert schedule[-1].outstanding_balance.is_zero()

    def test_level_emi_until_last(self):
        """Test that every installment but the last carries the formula EMI"""
        emi = reducing_balance_emi(inr(250000), Decimal('9.75'), 60)
        schedule = compute_schedule(inr(250000), Decimal('9.75'), 60, InterestType.REDUCING,
                                    date(2024, 1, 15), RepaymentFrequency.MONTHLY)

        assert all(installment.emi_amount == emi for installment in schedule[:-1])
        # Last row differs from the level EMI by at most a few minor units
        assert abs(schedule[-1].emi_amount - emi) <= inr('0.60')

    def test_interest_declines(self):
        """Test interest component falls as balance falls"""
        schedule = compute_schedule(inr(100000), Decimal('12'), 12, InterestType.REDUCING,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)
        interests = [installment.interest_amount for installment in schedule]
        assert interests == sorted(interests, reverse=True)

    def test_zero_rate_reducing(self):
        """Test r = 0 divides principal evenly"""
        schedule = compute_schedule(inr(1000), Decimal('0'), 3, InterestType.REDUCING,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert [installment.principal_amount for installment in schedule] == [
            inr('333.33'), inr('333.33'), inr('333.34')
        ]
        assert all(installment.interest_amount.is_zero() for installment in schedule)


class TestScheduleProperties:
    """Test invariants that hold for every valid schedule"""

    @pytest.mark.parametrize("principal,rate,tenure,interest_type", SCHEDULE_CASES)
    def test_completeness_and_spacing(self, principal, rate, tenure, interest_type):
        """Test tenure count and monthly spacing of due dates"""
        start = date(2024, 1, 31)
        schedule = compute_schedule(inr(principal), Decimal(rate), tenure, interest_type,
                                    start, RepaymentFrequency.MONTHLY)

        assert len(schedule) == tenure
        assert [installment.installment_number for installment in schedule] == list(range(1, tenure + 1))
        for index, installment in enumerate(schedule, start=1):
            assert installment.due_date == add_months(start, index)
        due_dates = [installment.due_date for installment in schedule]
        assert due_dates == sorted(set(due_dates))

    @pytest.mark.parametrize("principal,rate,tenure,interest_type", SCHEDULE_CASES)
    def test_principal_conservation(self, principal, rate, tenure, interest_type):
        """Test principal components sum to the principal exactly"""
        schedule = compute_schedule(inr(principal), Decimal(rate), tenure, interest_type,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)
        assert total_principal(schedule) == inr(principal)

    @pytest.mark.parametrize("principal,rate,tenure,interest_type", SCHEDULE_CASES)
    def test_balance_runs_down_to_zero(self, principal, rate, tenure, interest_type):
        """Test outstanding balance never rises and ends at zero"""
        schedule = compute_schedule(inr(principal), Decimal(rate), tenure, interest_type,
                                    date(2024, 1, 1), RepaymentFrequency.MONTHLY)
        balances = [installment.outstanding_balance for installment in schedule]

        assert balances == sorted(balances, reverse=True)
        assert balances[-1].is_zero()
        for installment in schedule:
            assert installment.principal_amount + installment.interest_amount == installment.emi_amount

    def test_weekly_spacing(self):
        """Test weekly frequency adds seven days per installment"""
        start = date(2024, 3, 4)
        schedule = compute_schedule(inr(5200), Decimal('26'), 10, InterestType.FLAT,
                                    start, RepaymentFrequency.WEEKLY)

        assert [installment.due_date for installment in schedule] == [
            start + timedelta(weeks=i) for i in range(1, 11)
        ]

    def test_month_end_clamping(self):
        """Test month-end start dates clamp to shorter months"""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2024, 1, 31), 2) == date(2024, 3, 31)
        assert add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)

    def test_jpy_whole_units(self):
        """Test zero-decimal currencies round to whole units"""
        schedule = compute_schedule(Money(Decimal('100000'), Currency.JPY), Decimal('12'), 12,
                                    InterestType.REDUCING, date(2024, 1, 1), RepaymentFrequency.MONTHLY)

        assert schedule[0].emi_amount.amount == Decimal('8885')
        assert all(installment.emi_amount.amount == installment.emi_amount.amount.to_integral_value()
                   for installment in schedule)
        assert total_principal(schedule) == Money(Decimal('100000'), Currency.JPY)


class TestScheduleValidation:
    """Test rejection of invalid inputs"""

    def test_non_positive_principal(self):
        """Test zero principal is rejected"""
        with pytest.raises(InvalidInputError, match="Principal"):
            compute_schedule(inr(0), Decimal('12'), 12, InterestType.FLAT,
                             date(2024, 1, 1), RepaymentFrequency.MONTHLY)

    def test_zero_tenure(self):
        """Test zero tenure is rejected"""
        with pytest.raises(InvalidInputError, match="Tenure"):
            compute_schedule(inr(1000), Decimal('12'), 0, InterestType.FLAT,
                             date(2024, 1, 1), RepaymentFrequency.MONTHLY)

    def test_negative_rate(self):
        """Test negative rate is rejected"""
        with pytest.raises(InvalidInputError) as exc_info:
            compute_schedule(inr(1000), Decimal('-1'), 12, InterestType.FLAT,
                             date(2024, 1, 1), RepaymentFrequency.MONTHLY)
        assert exc_info.value.field == "annual_interest_rate"
        assert exc_info.value.code == "INVALID_INPUT"

    def test_unknown_interest_type(self):
        """Test unrecognized interest type is rejected"""
        with pytest.raises(InvalidInputError, match="interest_type"):
            compute_schedule(inr(1000), Decimal('12'), 12, "balloon",
                             date(2024, 1, 1), RepaymentFrequency.MONTHLY)

    def test_unknown_frequency(self):
        """Test unrecognized frequency is rejected"""
        with pytest.raises(InvalidInputError, match="repayment_frequency"):
            compute_schedule(inr(1000), Decimal('12'), 12, InterestType.FLAT,
                             date(2024, 1, 1), "fortnightly")

    def test_installment_must_add_up(self):
        """Test installment rejects principal + interest != EMI"""
        with pytest.raises(InvalidInputError, match="does not equal"):
            Installment(
                installment_number=1,
                due_date=date(2024, 2, 1),
                emi_amount=inr(100),
                principal_amount=inr(60),
                interest_amount=inr(30),
                outstanding_balance=inr(0)
            )


class TestLoanTerms:
    """Test loan terms handling"""

    def test_terms_round_trip(self, make_terms):
        """Test terms survive storage serialization"""
        terms = make_terms(grace_period_days=5, daily_penalty_rate_percent=Decimal('1.5'))
        assert LoanTerms.from_dict(terms.to_dict()) == terms

    def test_terms_reject_negative_grace(self, make_terms):
        """Test negative grace period is rejected"""
        with pytest.raises(InvalidInputError, match="grace_period_days"):
            make_terms(grace_period_days=-1)

    def test_schedule_for_terms_tags_loan(self, make_terms):
        """Test schedule rows carry the loan id"""
        schedule = compute_schedule_for_terms(make_terms(tenure=3), loan_id="LN001")
        assert [installment.storage_key() for installment in schedule] == ["LN001_1", "LN001_2", "LN001_3"]
