"""
Typed exception hierarchy for the lending core.

Every error carries a machine-readable ``code`` plus the structured values
that caused it, so callers catch by type rather than by message text.
The value-style errors also subclass ValueError/KeyError/LookupError so
generic callers keep working.
"""

from typing import Optional


class LendingError(Exception):
    """Base exception for all lending core errors."""

    code: str = "LENDING_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(LendingError, ValueError):
    """Raised for malformed or out-of-range loan terms, amounts or transitions."""

    code = "INVALID_INPUT"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ImbalancedEntryError(LendingError, ValueError):
    """Raised when a journal entry's debit and credit totals disagree."""

    code = "IMBALANCED_ENTRY"

    def __init__(self, message: str, total_debits=None, total_credits=None):
        super().__init__(message)
        self.total_debits = total_debits
        self.total_credits = total_credits


class UnknownAccountError(LendingError, KeyError):
    """Raised when a posting references an account code not in the chart."""

    code = "UNKNOWN_ACCOUNT"

    def __init__(self, account_code: str):
        super().__init__(f"Unknown ledger account: {account_code}")
        self.account_code = account_code

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class ConcurrentUpdateConflict(LendingError):
    """Raised when an optimistic version check fails on a record update."""

    code = "CONCURRENT_UPDATE"

    def __init__(self, table: str, record_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Concurrent update on {table}/{record_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )
        self.table = table
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class RecordNotFoundError(LendingError, LookupError):
    """Raised when a loan, installment or payment does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id
