"""
Lending System Wiring

Builds every component from configuration: storage backend, audit trail,
ledger with its default chart, poster and loan manager.
"""

from decimal import Decimal
from typing import Optional

from .currency import Money
from .config import LendingConfig, get_config
from .clock import Clock, SystemClock
from .storage import create_storage
from .audit import AuditTrail
from .ledger import GeneralLedger
from .posting import LedgerPoster
from .loans import LoanManager
from .logging_config import setup_logging


class LendingSystem:
    """Lending core with all components initialized"""

    def __init__(self, config: Optional[LendingConfig] = None, clock: Optional[Clock] = None):
        self.config = config or get_config()
        self.clock = clock or SystemClock()
        self.logger = setup_logging(self.config.log_level, self.config.log_format)

        currency = self.config.currency_enum

        # Initialize storage
        self.storage = create_storage(self.config.storage_backend, self.config.database_path)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.ledger = GeneralLedger(self.storage, self.audit_trail, currency)
        opening_cash = self.config.opening_cash_balance
        self.ledger.initialize_chart_of_accounts(
            Money(opening_cash, currency) if opening_cash > Decimal("0") else None
        )
        self.poster = LedgerPoster(self.ledger, self.config.fallback_principal_ratio)
        self.loan_manager = LoanManager(
            self.storage, self.ledger, self.poster, self.audit_trail,
            clock=self.clock, config=self.config
        )

        self.logger.info(
            f"Lending core ready: currency={currency.code}, storage={self.config.storage_backend}"
        )

    def close(self) -> None:
        self.storage.close()
