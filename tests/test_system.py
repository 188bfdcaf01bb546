"""
Test suite for system wiring

Tests that a configured system runs a loan end to end.
"""

from decimal import Decimal
from datetime import date

from lending_core.currency import Money, Currency
from lending_core.clock import FixedClock
from lending_core.config import LendingConfig
from lending_core.storage import InMemoryStorage, SQLiteStorage
from lending_core.amortization import LoanTerms, InterestType, RepaymentFrequency, InstallmentStatus
from lending_core.ledger import CASH_AND_BANK, LOAN_RECEIVABLE
from lending_core.system import LendingSystem


class TestLendingSystem:
    """Test component wiring"""

    def test_memory_system(self):
        """Test the default in-memory system from settings"""
        settings = LendingConfig(_env_file=None, currency="KES", opening_cash_balance=Decimal("500000"),
                                 log_format="text")
        system = LendingSystem(settings, clock=FixedClock(date(2024, 1, 1)))

        assert isinstance(system.storage, InMemoryStorage)
        assert system.ledger.currency == Currency.KES
        assert system.ledger.get_account(CASH_AND_BANK).balance == Money(Decimal("500000"), Currency.KES)

        terms = LoanTerms(
            principal=Money(Decimal("60000"), Currency.KES),
            annual_interest_rate=Decimal("18"),
            tenure=6,
            interest_type=InterestType.REDUCING,
            repayment_frequency=RepaymentFrequency.MONTHLY,
            start_date=date(2024, 1, 1),
        )
        loan = system.loan_manager.create_loan("CUST001", terms)
        loan = system.loan_manager.approve_loan(loan.loan_id)
        system.loan_manager.record_payment(loan.loan_id, loan.emi_amount, installment_number=1)

        assert system.loan_manager.get_installment(loan.loan_id, 1).status == InstallmentStatus.PAID
        assert system.ledger.reconcile()['balanced']
        assert system.ledger.get_account(LOAN_RECEIVABLE).balance < Money(Decimal("60000"), Currency.KES)
        system.close()

    def test_sqlite_system_without_audit(self, tmp_path):
        """Test SQLite backend selection and disabled auditing"""
        settings = LendingConfig(_env_file=None, storage_backend="sqlite",
                                 database_path=str(tmp_path / "lending.db"), enable_audit_logging=False)
        system = LendingSystem(settings)

        assert isinstance(system.storage, SQLiteStorage)
        assert system.ledger.get_account(CASH_AND_BANK).balance.is_zero()
        assert system.audit_trail.count_events() == 0
        system.close()
