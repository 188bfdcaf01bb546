"""
Shared fixtures for the lending core test suite
"""

import pytest
from decimal import Decimal
from datetime import date

from lending_core.currency import Money, Currency
from lending_core.storage import InMemoryStorage
from lending_core.audit import AuditTrail
from lending_core.ledger import GeneralLedger
from lending_core.posting import LedgerPoster
from lending_core.clock import FixedClock
from lending_core.config import LendingConfig
from lending_core.amortization import LoanTerms, InterestType, RepaymentFrequency
from lending_core.loans import LoanManager


def inr(amount) -> Money:
    return Money(Decimal(str(amount)), Currency.INR)


@pytest.fixture
def lending_config():
    return LendingConfig(
        _env_file=None,
        currency="INR",
        daily_penalty_rate_percent=Decimal("2"),
        default_grace_period_days=0,
        opening_cash_balance=Decimal("1000000"),
        max_posting_retries=3,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def ledger(storage, audit_trail, lending_config):
    general_ledger = GeneralLedger(storage, audit_trail, Currency.INR)
    general_ledger.initialize_chart_of_accounts(inr(lending_config.opening_cash_balance))
    return general_ledger


@pytest.fixture
def poster(ledger, lending_config):
    return LedgerPoster(ledger, lending_config.fallback_principal_ratio)


@pytest.fixture
def clock():
    return FixedClock(date(2024, 1, 1))


@pytest.fixture
def loan_manager(storage, ledger, poster, audit_trail, clock, lending_config):
    return LoanManager(storage, ledger, poster, audit_trail, clock=clock, config=lending_config)


@pytest.fixture
def make_terms():
    def _make_terms(principal="120000", rate="12", tenure=12, interest_type=InterestType.FLAT,
                    frequency=RepaymentFrequency.MONTHLY, start_date=date(2024, 1, 1), **kwargs):
        return LoanTerms(
            principal=inr(principal),
            annual_interest_rate=Decimal(rate),
            tenure=tenure,
            interest_type=interest_type,
            repayment_frequency=frequency,
            start_date=start_date,
            **kwargs
        )
    return _make_terms
