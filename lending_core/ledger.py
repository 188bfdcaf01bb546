"""
Double-Entry Ledger Engine

Chart of accounts with running balances and an append-only journal.
Every entry is checked for debits == credits before anything is written,
and GeneralLedger.post_entry is the only code path that changes a balance:
it writes the entry and all balance updates inside one storage transaction,
guarding each account with an optimistic version check.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set
from enum import Enum
import threading

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .exceptions import ImbalancedEntryError, InvalidInputError, LendingError, UnknownAccountError
from .logging_config import get_logger, log_action

logger = get_logger("ledger")


class AccountType(Enum):
    """Standard accounting account types"""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


# Default chart of accounts
CASH_AND_BANK = "CA001"
LOAN_RECEIVABLE = "LR001"
INTEREST_INCOME = "II001"
PENALTY_INCOME = "PI001"

DEFAULT_CHART = (
    (CASH_AND_BANK, "Cash & Bank", AccountType.ASSET),
    (LOAN_RECEIVABLE, "Loan Receivables", AccountType.ASSET),
    (INTEREST_INCOME, "Interest Income", AccountType.INCOME),
    (PENALTY_INCOME, "Penalty Income", AccountType.INCOME),
)


@dataclass
class LedgerAccount(StorageRecord):
    """
    Chart-of-accounts entry with its running balance

    Balance is signed debit-positive: every line adds debit minus credit.
    """
    code: str
    name: str
    account_type: AccountType
    balance: Money
    opening_balance: Money = None
    parent_code: Optional[str] = None
    is_active: bool = True
    version: int = 0

    def __post_init__(self):
        if self.opening_balance is None:
            self.opening_balance = Money.zero(self.balance.currency)

    @property
    def currency(self) -> Currency:
        return self.balance.currency

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'code': self.code,
            'name': self.name,
            'account_type': self.account_type.value,
            'balance': str(self.balance.amount),
            'opening_balance': str(self.opening_balance.amount),
            'currency': self.currency.code,
            'parent_code': self.parent_code,
            'is_active': self.is_active,
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerAccount':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            code=data['code'],
            name=data['name'],
            account_type=AccountType(data['account_type']),
            balance=Money(Decimal(data['balance']), currency),
            opening_balance=Money(Decimal(data['opening_balance']), currency),
            parent_code=data.get('parent_code'),
            is_active=data.get('is_active', True),
            version=data.get('version', 0),
        )


@dataclass
class JournalEntryLine:
    """
    Individual line item in a journal entry
    Each line affects one account with either a debit or credit
    """
    account_code: str
    description: str
    debit_amount: Money
    credit_amount: Money

    def __post_init__(self):
        """Validate that exactly one of debit or credit is non-zero"""
        if self.debit_amount.currency != self.credit_amount.currency:
            raise InvalidInputError("Debit and credit amounts must use same currency")

        if self.debit_amount.is_negative() or self.credit_amount.is_negative():
            raise InvalidInputError("Journal entry line amounts must not be negative")

        debit_zero = self.debit_amount.is_zero()
        credit_zero = self.credit_amount.is_zero()

        if debit_zero and credit_zero:
            raise InvalidInputError("Journal entry line must have either debit or credit amount")

        if not debit_zero and not credit_zero:
            raise InvalidInputError("Journal entry line cannot have both debit and credit amounts")

    @classmethod
    def debit(cls, account_code: str, amount: Money, description: str) -> 'JournalEntryLine':
        return cls(account_code, description, amount, Money.zero(amount.currency))

    @classmethod
    def credit(cls, account_code: str, amount: Money, description: str) -> 'JournalEntryLine':
        return cls(account_code, description, Money.zero(amount.currency), amount)

    @property
    def currency(self) -> Currency:
        return self.debit_amount.currency

    @property
    def is_debit(self) -> bool:
        return not self.debit_amount.is_zero()

    @property
    def amount(self) -> Money:
        """Get the non-zero amount (debit or credit)"""
        return self.debit_amount if self.is_debit else self.credit_amount

    @property
    def net_amount(self) -> Money:
        """Signed effect on the account balance"""
        return self.debit_amount - self.credit_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_code': self.account_code,
            'description': self.description,
            'debit_amount': str(self.debit_amount.amount),
            'credit_amount': str(self.credit_amount.amount),
            'currency': self.currency.code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JournalEntryLine':
        currency = Currency[data['currency']]
        return cls(
            account_code=data['account_code'],
            description=data['description'],
            debit_amount=Money(Decimal(data['debit_amount']), currency),
            credit_amount=Money(Decimal(data['credit_amount']), currency),
        )


@dataclass
class JournalEntry(StorageRecord):
    """
    Double-entry journal entry with multiple lines that must balance
    Append-only: never edited or deleted once posted
    """
    sequence: int
    entry_date: date
    reference: str      # business key of the loan or payment
    description: str
    lines: List[JournalEntryLine]

    def __post_init__(self):
        self.validate_balance()

    @property
    def entry_number(self) -> str:
        return self.id

    def validate_balance(self) -> None:
        """
        Validate that total debits equal total credits for each currency
        This is the fundamental rule of double-entry bookkeeping
        """
        if not self.lines:
            raise ImbalancedEntryError("Journal entry must have at least one line")

        totals: Dict[Currency, Dict[str, Money]] = {}
        for line in self.lines:
            currency_totals = totals.setdefault(
                line.currency,
                {'debits': Money.zero(line.currency), 'credits': Money.zero(line.currency)}
            )
            currency_totals['debits'] = currency_totals['debits'] + line.debit_amount
            currency_totals['credits'] = currency_totals['credits'] + line.credit_amount

        for currency, currency_totals in totals.items():
            if currency_totals['debits'] != currency_totals['credits']:
                raise ImbalancedEntryError(
                    f"Journal entry not balanced for {currency.code}: "
                    f"debits={currency_totals['debits'].to_string()}, "
                    f"credits={currency_totals['credits'].to_string()}",
                    total_debits=currency_totals['debits'],
                    total_credits=currency_totals['credits']
                )

    def get_affected_accounts(self) -> Set[str]:
        return {line.account_code for line in self.lines}

    @property
    def total_amount(self) -> Money:
        """Sum of the debit side"""
        total = Money.zero(self.lines[0].currency)
        for line in self.lines:
            total = total + line.debit_amount
        return total

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'sequence': self.sequence,
            'entry_date': self.entry_date.isoformat(),
            'reference': self.reference,
            'description': self.description,
            'total_amount': str(self.total_amount.amount),
            'lines': [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JournalEntry':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sequence=data['sequence'],
            entry_date=date.fromisoformat(data['entry_date']),
            reference=data['reference'],
            description=data['description'],
            lines=[JournalEntryLine.from_dict(line) for line in data['lines']],
        )


class GeneralLedger:
    """
    Owns the chart of accounts, the journal and every balance change
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, currency: Currency = Currency.INR):
        self.storage = storage
        self.audit_trail = audit_trail
        self.currency = currency
        self.accounts_table = "ledger_accounts"
        self.entries_table = "journal_entries"
        # Single writer per ledger instance; versions catch other writers
        self._write_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Chart of accounts
    # ------------------------------------------------------------------

    def open_account(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        opening_balance: Optional[Money] = None,
        parent_code: Optional[str] = None
    ) -> LedgerAccount:
        """
        Add an account to the chart

        Raises:
            InvalidInputError: If the code is already taken or the currency differs
            UnknownAccountError: If parent_code is not in the chart
        """
        if opening_balance is None:
            opening_balance = Money.zero(self.currency)
        if opening_balance.currency != self.currency:
            raise InvalidInputError(
                f"Opening balance currency {opening_balance.currency.code} "
                f"does not match ledger currency {self.currency.code}"
            )

        with self.storage.atomic(), self._write_lock:
            if self.storage.exists(self.accounts_table, code):
                raise InvalidInputError(f"Ledger account {code} already exists", field="code")
            if parent_code is not None:
                self.require_account(parent_code)

            now = datetime.now(timezone.utc)
            account = LedgerAccount(
                id=code,
                created_at=now,
                updated_at=now,
                code=code,
                name=name,
                account_type=account_type,
                balance=opening_balance,
                opening_balance=opening_balance,
                parent_code=parent_code,
            )
            account.version = self.storage.compare_and_swap(
                self.accounts_table, code, None, account.to_dict()
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.LEDGER_ACCOUNT_OPENED,
                entity_type="ledger_account",
                entity_id=code,
                metadata={
                    "name": name,
                    "account_type": account_type,
                    "opening_balance": opening_balance.amount
                }
            )

        logger.info(f"Opened ledger account {code} ({name})")
        return account

    def initialize_chart_of_accounts(self, opening_cash_balance: Optional[Money] = None) -> List[LedgerAccount]:
        """Open any default account that is missing; existing accounts are left alone"""
        for code, name, account_type in DEFAULT_CHART:
            if self.storage.exists(self.accounts_table, code):
                continue
            opening = opening_cash_balance if code == CASH_AND_BANK else None
            self.open_account(code, name, account_type, opening_balance=opening)
        return self.get_accounts()

    def get_account(self, code: str) -> Optional[LedgerAccount]:
        data = self.storage.load(self.accounts_table, code)
        if data:
            return LedgerAccount.from_dict(data)
        return None

    def require_account(self, code: str) -> LedgerAccount:
        account = self.get_account(code)
        if account is None or not account.is_active:
            raise UnknownAccountError(code)
        return account

    def get_accounts(self) -> List[LedgerAccount]:
        accounts = [LedgerAccount.from_dict(data) for data in self.storage.load_all(self.accounts_table)]
        accounts.sort(key=lambda account: account.code)
        return accounts

    def get_account_balances(self) -> Dict[str, Money]:
        """Account code -> current running balance"""
        return {account.code: account.balance for account in self.get_accounts() if account.is_active}

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_entry(
        self,
        reference: str,
        description: str,
        lines: Iterable[JournalEntryLine],
        entry_date: date
    ) -> JournalEntry:
        """
        Append a balanced entry and apply it to account balances atomically

        Either the entry and every balance update are stored, or nothing is.

        Raises:
            ImbalancedEntryError: If debits and credits differ
            UnknownAccountError: If a line names an account not in the chart
            InvalidInputError: If a line's currency differs from its account's
            ConcurrentUpdateConflict: If an affected account changed underneath us
        """
        lines = list(lines)
        try:
            with self.storage.atomic(), self._write_lock:
                sequence = self.storage.count(self.entries_table) + 1
                now = datetime.now(timezone.utc)
                entry = JournalEntry(
                    id=f"JE{sequence:03d}",
                    created_at=now,
                    updated_at=now,
                    sequence=sequence,
                    entry_date=entry_date,
                    reference=reference,
                    description=description,
                    lines=lines,
                )

                net_by_account: Dict[str, Money] = {}
                accounts: Dict[str, LedgerAccount] = {}
                for line in entry.lines:
                    account = accounts.get(line.account_code) or self.require_account(line.account_code)
                    if line.currency != account.currency:
                        raise InvalidInputError(
                            f"Line currency {line.currency.code} does not match "
                            f"account {account.code} currency {account.currency.code}"
                        )
                    accounts[account.code] = account
                    net = net_by_account.get(account.code, Money.zero(account.currency))
                    net_by_account[account.code] = net + line.net_amount

                self.storage.compare_and_swap(self.entries_table, entry.id, None, entry.to_dict())

                for code, net in net_by_account.items():
                    account = accounts[code]
                    account.balance = account.balance + net
                    account.updated_at = now
                    account.version = self.storage.compare_and_swap(
                        self.accounts_table, code, account.version, account.to_dict()
                    )

                self.audit_trail.log_event(
                    event_type=AuditEventType.JOURNAL_ENTRY_POSTED,
                    entity_type="journal_entry",
                    entity_id=entry.id,
                    metadata={
                        "reference": reference,
                        "description": description,
                        "total_amount": entry.total_amount.amount,
                        "accounts": sorted(entry.get_affected_accounts())
                    }
                )
        except LendingError as e:
            log_action(logger, "warning", f"Posting rejected: {e}",
                       action="post_entry", resource=reference, extra={"error_code": e.code})
            raise

        log_action(logger, "info", f"Posted {entry.entry_number}: {description}",
                   entry_number=entry.entry_number, action="post_entry", resource=reference)
        return entry

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_journal_entry(self, entry_number: str) -> Optional[JournalEntry]:
        data = self.storage.load(self.entries_table, entry_number)
        if data:
            return JournalEntry.from_dict(data)
        return None

    def get_entries(self, reference: Optional[str] = None) -> List[JournalEntry]:
        """Journal entries in posting order, optionally for one business reference"""
        if reference is None:
            data = self.storage.load_all(self.entries_table)
        else:
            data = self.storage.find(self.entries_table, {'reference': reference})
        entries = [JournalEntry.from_dict(item) for item in data]
        entries.sort(key=lambda entry: entry.sequence)
        return entries

    def get_ledger_entries(
        self,
        account_code: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """
        Flattened line view of the journal, newest first

        Each row carries the entry's number, date, reference and description
        plus the line's account, debit and credit.
        """
        accounts = {account.code: account for account in self.get_accounts()}
        rows = []
        for entry in self.get_entries():
            if from_date and entry.entry_date < from_date:
                continue
            if to_date and entry.entry_date > to_date:
                continue
            for line in entry.lines:
                if account_code and line.account_code != account_code:
                    continue
                account = accounts.get(line.account_code)
                rows.append({
                    'entry_number': entry.entry_number,
                    'sequence': entry.sequence,
                    'date': entry.entry_date,
                    'reference': entry.reference,
                    'entry_description': entry.description,
                    'description': line.description,
                    'account_code': line.account_code,
                    'account': account.name if account else None,
                    'debit_amount': line.debit_amount,
                    'credit_amount': line.credit_amount,
                })
        rows.sort(key=lambda row: (row['date'], row['sequence']), reverse=True)
        return rows

    def calculate_account_balance(self, code: str) -> Money:
        """Opening balance plus every posted line, recomputed from the journal"""
        account = self.require_account(code)
        balance = account.opening_balance
        for entry in self.get_entries():
            for line in entry.lines:
                if line.account_code == code:
                    balance = balance + line.net_amount
        return balance

    def reconcile(self) -> Dict[str, Any]:
        """
        Check stored balances against the journal and re-check every entry

        Returns:
            Dictionary with 'balanced', per-account 'mismatches' and
            'imbalanced_entries'
        """
        result = {'balanced': True, 'mismatches': [], 'imbalanced_entries': []}

        derived: Dict[str, Money] = {}
        for entry_data in self.storage.load_all(self.entries_table):
            try:
                entry = JournalEntry.from_dict(entry_data)
            except ImbalancedEntryError as e:
                result['balanced'] = False
                result['imbalanced_entries'].append({'entry_number': entry_data.get('id'), 'error': str(e)})
                continue
            for line in entry.lines:
                running = derived.get(line.account_code, Money.zero(line.currency))
                derived[line.account_code] = running + line.net_amount

        for account in self.get_accounts():
            expected = account.opening_balance + derived.get(account.code, Money.zero(account.currency))
            if expected != account.balance:
                result['balanced'] = False
                result['mismatches'].append({
                    'account_code': account.code,
                    'stored_balance': account.balance,
                    'journal_balance': expected,
                })

        return result
