"""
Loan Management Module

Loan and payment records plus the lifecycle transitions that drive the
amortization engine, penalty accrual and ledger poster. Every transition
that touches more than one record runs inside one storage transaction, and
transitions that post to the ledger are retried a bounded number of times
when an optimistic version check fails.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar
from enum import Enum

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .amortization import (
    LoanTerms, Installment, InstallmentStatus, coerce_enum,
    compute_schedule_for_terms, summarize_schedule
)
from .penalty import PenaltyBasis, accrue_penalty
from .ledger import GeneralLedger
from .posting import LedgerPoster
from .clock import Clock, SystemClock
from .config import LendingConfig, get_config
from .exceptions import ConcurrentUpdateConflict, InvalidInputError, LendingError, RecordNotFoundError
from .logging_config import get_logger, log_action

logger = get_logger("loans")

T = TypeVar('T')


class LoanStatus(Enum):
    """Loan lifecycle states"""
    DRAFT = "draft"
    PENDING = "pending"        # Submitted for approval
    APPROVED = "approved"      # Transient: schedule and disbursement follow in the same transaction
    REJECTED = "rejected"
    ACTIVE = "active"          # Disbursed and collecting
    CLOSED = "closed"          # Every installment paid


class PaymentMethod(Enum):
    CASH = "cash"
    BANK = "bank"
    CHEQUE = "cheque"
    UPI = "upi"


def _money_to_str(value: Optional[Money]) -> Optional[str]:
    return str(value.amount) if value is not None else None


def _money_from_str(value: Optional[str], currency: Currency) -> Optional[Money]:
    return Money(Decimal(value), currency) if value is not None else None


def _date_from_str(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


@dataclass
class Loan(StorageRecord):
    """
    Loan record; id is the business identifier (LN001, LN002, ...)

    Schedule totals are filled in at approval.
    """
    customer_id: str
    terms: LoanTerms
    status: LoanStatus = LoanStatus.DRAFT
    customer_name: Optional[str] = None
    emi_amount: Optional[Money] = None
    total_interest: Optional[Money] = None
    total_amount: Optional[Money] = None
    outstanding_amount: Optional[Money] = None
    rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_date: Optional[date] = None
    closed_date: Optional[date] = None
    disbursement_entry: Optional[str] = None
    version: Optional[int] = None

    @property
    def loan_id(self) -> str:
        return self.id

    @property
    def currency(self) -> Currency:
        return self.terms.currency

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'terms': self.terms.to_dict(),
            'currency': self.currency.code,
            'status': self.status.value,
            'emi_amount': _money_to_str(self.emi_amount),
            'total_interest': _money_to_str(self.total_interest),
            'total_amount': _money_to_str(self.total_amount),
            'outstanding_amount': _money_to_str(self.outstanding_amount),
            'rejection_reason': self.rejection_reason,
            'approved_by': self.approved_by,
            'approved_date': self.approved_date.isoformat() if self.approved_date else None,
            'closed_date': self.closed_date.isoformat() if self.closed_date else None,
            'disbursement_entry': self.disbursement_entry,
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data['customer_id'],
            customer_name=data.get('customer_name'),
            terms=LoanTerms.from_dict(data['terms']),
            status=LoanStatus(data['status']),
            emi_amount=_money_from_str(data.get('emi_amount'), currency),
            total_interest=_money_from_str(data.get('total_interest'), currency),
            total_amount=_money_from_str(data.get('total_amount'), currency),
            outstanding_amount=_money_from_str(data.get('outstanding_amount'), currency),
            rejection_reason=data.get('rejection_reason'),
            approved_by=data.get('approved_by'),
            approved_date=_date_from_str(data.get('approved_date')),
            closed_date=_date_from_str(data.get('closed_date')),
            disbursement_entry=data.get('disbursement_entry'),
            version=data.get('version'),
        )


@dataclass
class Payment(StorageRecord):
    """Payment received against a loan; id is the business identifier (PMT001, ...)"""
    loan_id: str
    amount: Money
    payment_date: date
    installment_number: Optional[int] = None
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = None
    notes: Optional[str] = None
    principal_portion: Optional[Money] = None
    interest_portion: Optional[Money] = None
    penalty_portion: Optional[Money] = None
    journal_entry_number: Optional[str] = None

    @property
    def payment_id(self) -> str:
        return self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'loan_id': self.loan_id,
            'amount': str(self.amount.amount),
            'currency': self.amount.currency.code,
            'payment_date': self.payment_date.isoformat(),
            'installment_number': self.installment_number,
            'method': self.method.value,
            'reference': self.reference,
            'notes': self.notes,
            'principal_portion': _money_to_str(self.principal_portion),
            'interest_portion': _money_to_str(self.interest_portion),
            'penalty_portion': _money_to_str(self.penalty_portion),
            'journal_entry_number': self.journal_entry_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payment':
        currency = Currency[data['currency']]
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            amount=Money(Decimal(data['amount']), currency),
            payment_date=date.fromisoformat(data['payment_date']),
            installment_number=data.get('installment_number'),
            method=PaymentMethod(data['method']),
            reference=data.get('reference'),
            notes=data.get('notes'),
            principal_portion=_money_from_str(data.get('principal_portion'), currency),
            interest_portion=_money_from_str(data.get('interest_portion'), currency),
            penalty_portion=_money_from_str(data.get('penalty_portion'), currency),
            journal_entry_number=data.get('journal_entry_number'),
        )


class LoanManager:
    """
    Manages loan lifecycle from application through closure
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: GeneralLedger,
        poster: LedgerPoster,
        audit_trail: AuditTrail,
        clock: Optional[Clock] = None,
        config: Optional[LendingConfig] = None
    ):
        self.storage = storage
        self.ledger = ledger
        self.poster = poster
        self.audit_trail = audit_trail
        self.clock = clock or SystemClock()
        self.config = config or get_config()

        self.loans_table = "loans"
        self.installments_table = "installments"
        self.payments_table = "loan_payments"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_loan(self, customer_id: str, terms: LoanTerms, customer_name: Optional[str] = None) -> Loan:
        """
        Record a new loan application in DRAFT

        Raises:
            InvalidInputError: If the customer is missing or the terms use a
                currency other than the ledger's
        """
        if not customer_id:
            raise InvalidInputError("Customer id is required", field="customer_id")
        if not isinstance(terms, LoanTerms):
            raise InvalidInputError("Loan terms are required", field="terms")
        if terms.currency != self.ledger.currency:
            raise InvalidInputError(
                f"Loan currency {terms.currency.code} does not match ledger currency "
                f"{self.ledger.currency.code}",
                field="currency"
            )

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            loan = Loan(
                id=self._next_business_id(self.loans_table, "LN"),
                created_at=now,
                updated_at=now,
                customer_id=customer_id,
                customer_name=customer_name,
                terms=terms,
            )
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.loan_id,
                metadata={
                    "customer_id": customer_id,
                    "principal": terms.principal.amount,
                    "annual_interest_rate": terms.annual_interest_rate,
                    "tenure": terms.tenure,
                    "interest_type": terms.interest_type,
                    "repayment_frequency": terms.repayment_frequency,
                    "start_date": terms.start_date
                }
            )

        log_action(logger, "info", f"Loan {loan.loan_id} created for customer {customer_id}",
                   loan_id=loan.loan_id, action="create_loan")
        return loan

    def submit_loan(self, loan_id: str) -> Loan:
        """Move a DRAFT loan to PENDING approval"""
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            self._require_status(loan, (LoanStatus.DRAFT,), "submit")
            loan.status = LoanStatus.PENDING
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_SUBMITTED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"status": loan.status}
            )

        log_action(logger, "info", f"Loan {loan_id} submitted", loan_id=loan_id, action="submit_loan")
        return loan

    def approve_loan(self, loan_id: str, approved_by: Optional[str] = None) -> Loan:
        """
        Approve a loan: build and store its schedule, post the disbursement
        and activate it, all in one transaction

        Raises:
            RecordNotFoundError: If the loan does not exist
            InvalidInputError: If the loan is not DRAFT or PENDING
            ConcurrentUpdateConflict: If retries are exhausted
        """
        loan = self._with_retry(lambda: self._approve_loan(loan_id, approved_by), f"approve {loan_id}")
        log_action(logger, "info",
                   f"Loan {loan_id} approved: EMI {loan.emi_amount.to_string()} x {loan.terms.tenure}",
                   loan_id=loan_id, entry_number=loan.disbursement_entry, action="approve_loan")
        return loan

    def _approve_loan(self, loan_id: str, approved_by: Optional[str]) -> Loan:
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            self._require_status(loan, (LoanStatus.DRAFT, LoanStatus.PENDING), "approve")

            schedule = compute_schedule_for_terms(loan.terms, loan_id=loan_id)
            for installment in schedule:
                self._save_installment(installment)
            summary = summarize_schedule(schedule)

            loan.status = LoanStatus.APPROVED
            loan.approved_by = approved_by
            loan.approved_date = self.clock.today()
            loan.emi_amount = summary.emi_amount
            loan.total_interest = summary.total_interest
            loan.total_amount = summary.total_amount
            loan.outstanding_amount = summary.total_amount

            self.audit_trail.log_event(
                event_type=AuditEventType.SCHEDULE_GENERATED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "installments": summary.installment_count,
                    "emi_amount": summary.emi_amount.amount,
                    "total_interest": summary.total_interest.amount,
                    "maturity_date": summary.maturity_date
                }
            )

            entry = self.poster.post_disbursement(loan)
            loan.disbursement_entry = entry.entry_number
            loan.status = LoanStatus.ACTIVE
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_APPROVED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={
                    "approved_by": approved_by,
                    "disbursement_entry": entry.entry_number,
                    "principal": loan.terms.principal.amount
                },
                user_id=approved_by
            )

        logger.info(f"Generated {summary.installment_count} installments for loan {loan_id}")
        return loan

    def reject_loan(self, loan_id: str, reason: str, rejected_by: Optional[str] = None) -> Loan:
        """Reject a DRAFT or PENDING loan with a reason"""
        if not reason:
            raise InvalidInputError("Rejection reason is required", field="reason")

        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            self._require_status(loan, (LoanStatus.DRAFT, LoanStatus.PENDING), "reject")
            loan.status = LoanStatus.REJECTED
            loan.rejection_reason = reason
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_REJECTED,
                entity_type="loan",
                entity_id=loan_id,
                metadata={"reason": reason},
                user_id=rejected_by
            )

        log_action(logger, "info", f"Loan {loan_id} rejected: {reason}", loan_id=loan_id, action="reject_loan")
        return loan

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        loan_id: str,
        amount: Money,
        payment_date: Optional[date] = None,
        installment_number: Optional[int] = None,
        method=PaymentMethod.CASH,
        reference: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Payment:
        """
        Record a payment, apply it to its installment and post it

        The payment record, the installment and loan updates and the journal
        entry are written together or not at all.

        Args:
            loan_id: Loan being repaid
            amount: Positive amount in the loan currency
            payment_date: Defaults to the clock's today
            installment_number: Installment the payment settles, if known
            method: PaymentMethod or its value
            reference: External reference such as a cheque number
            notes: Free text

        Raises:
            InvalidInputError: Bad amount or method, inactive loan, or
                installment already paid
            RecordNotFoundError: Unknown loan or installment
            ConcurrentUpdateConflict: If retries are exhausted
        """
        method = coerce_enum(PaymentMethod, method, "method")
        if not isinstance(amount, Money) or not amount.is_positive():
            raise InvalidInputError("Payment amount must be positive", field="amount")
        if payment_date is None:
            payment_date = self.clock.today()

        payment = self._with_retry(
            lambda: self._record_payment(
                loan_id, amount, payment_date, installment_number, method, reference, notes
            ),
            f"payment on {loan_id}"
        )
        log_action(logger, "info", f"Payment {payment.payment_id} of {amount.to_string()} recorded",
                   loan_id=loan_id, entry_number=payment.journal_entry_number,
                   action="record_payment", resource=payment.payment_id)
        return payment

    def _record_payment(
        self,
        loan_id: str,
        amount: Money,
        payment_date: date,
        installment_number: Optional[int],
        method: PaymentMethod,
        reference: Optional[str],
        notes: Optional[str]
    ) -> Payment:
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if not loan.is_active:
                raise InvalidInputError(
                    f"Loan {loan_id} is {loan.status.value}; payments need an active loan"
                )
            if amount.currency != loan.currency:
                raise InvalidInputError(
                    f"Payment currency {amount.currency.code} does not match loan currency {loan.currency.code}",
                    field="amount"
                )

            installment = None
            if installment_number is not None:
                installment = self.require_installment(loan_id, installment_number)
                if installment.is_paid:
                    raise InvalidInputError(
                        f"Installment {installment_number} of loan {loan_id} is already paid",
                        field="installment_number"
                    )

            split = self.poster.split_payment(amount, installment)
            now = datetime.now(timezone.utc)
            payment = Payment(
                id=self._next_business_id(self.payments_table, "PMT"),
                created_at=now,
                updated_at=now,
                loan_id=loan_id,
                amount=amount,
                payment_date=payment_date,
                installment_number=installment_number,
                method=method,
                reference=reference,
                notes=notes,
                principal_portion=split.principal,
                interest_portion=split.interest,
                penalty_portion=split.penalty,
            )

            entry = self.poster.post_payment(payment, loan, installment)
            payment.journal_entry_number = entry.entry_number
            self.storage.compare_and_swap(self.payments_table, payment.id, None, payment.to_dict())

            if installment is not None:
                installment.paid_amount = installment.paid_amount + amount
                installment.penalty_paid = installment.penalty_paid + split.penalty
                installment.paid_date = payment_date
                if installment.paid_amount >= installment.total_amount:
                    installment.status = InstallmentStatus.PAID
                else:
                    installment.status = InstallmentStatus.PARTIAL
                self._save_installment(installment)

            loan.outstanding_amount = (
                loan.outstanding_amount - split.principal - split.interest
            ).floor_at_zero()
            if all(item.is_paid for item in self.get_schedule(loan_id)):
                loan.status = LoanStatus.CLOSED
                loan.closed_date = payment_date
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_RECORDED,
                entity_type="payment",
                entity_id=payment.payment_id,
                metadata={
                    "loan_id": loan_id,
                    "amount": amount.amount,
                    "installment_number": installment_number,
                    "method": method,
                    "principal": split.principal.amount,
                    "interest": split.interest.amount,
                    "penalty": split.penalty.amount,
                    "journal_entry": entry.entry_number,
                    "outstanding_amount": loan.outstanding_amount.amount
                }
            )
            if loan.status == LoanStatus.CLOSED:
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_CLOSED,
                    entity_type="loan",
                    entity_id=loan_id,
                    metadata={"closed_date": payment_date}
                )
                logger.info(f"Loan {loan_id} closed")

        return payment

    # ------------------------------------------------------------------
    # Penalties
    # ------------------------------------------------------------------

    def calculate_and_update_penalties(self, as_of_date: Optional[date] = None) -> Dict[str, int]:
        """
        Re-evaluate penalties on every unpaid installment past its due date

        Each installment is updated in its own transaction. An installment
        that fails is logged and counted, and the run carries on.

        Returns:
            Counts of installments scanned, penalties updated and failures
        """
        as_of = as_of_date or self.clock.today()
        basis = PenaltyBasis(self.config.penalty_basis)
        results = {"installments_scanned": 0, "penalties_updated": 0, "failed": 0}
        loans: Dict[str, Loan] = {}

        for candidate in self.get_installments(overdue_as_of=as_of):
            results["installments_scanned"] += 1
            try:
                loan = loans.get(candidate.loan_id)
                if loan is None:
                    loan = loans[candidate.loan_id] = self.require_loan(candidate.loan_id)
                if self._accrue_installment(loan, candidate.installment_number, as_of, basis):
                    results["penalties_updated"] += 1
            except LendingError as e:
                results["failed"] += 1
                log_action(logger, "error",
                           f"Penalty accrual failed for installment {candidate.storage_key()}: {e}",
                           loan_id=candidate.loan_id, action="accrue_penalty",
                           extra={"error_code": e.code})

        self.audit_trail.log_event(
            event_type=AuditEventType.PENALTY_RUN_COMPLETED,
            entity_type="penalty_run",
            entity_id=as_of.isoformat(),
            metadata=results
        )
        log_action(logger, "info",
                   f"Penalty run as of {as_of.isoformat()}: {results['penalties_updated']} updated, "
                   f"{results['failed']} failed of {results['installments_scanned']}",
                   action="penalty_run", extra=results)
        return results

    def _accrue_installment(self, loan: Loan, installment_number: int, as_of: date, basis: PenaltyBasis) -> bool:
        with self.storage.atomic():
            # Re-read inside the transaction so a concurrent payment is not overwritten
            current = self.require_installment(loan.loan_id, installment_number)
            updated = accrue_penalty(
                current,
                grace_period_days=self._grace_period_days(loan),
                daily_penalty_rate_percent=self._daily_penalty_rate(loan),
                as_of_date=as_of,
                basis=basis
            )
            if (updated.penalty_amount == current.penalty_amount
                    and updated.status == current.status
                    and updated.total_amount == current.total_amount):
                return False

            self._save_installment(updated)
            self.audit_trail.log_event(
                event_type=AuditEventType.PENALTY_ACCRUED,
                entity_type="installment",
                entity_id=updated.storage_key(),
                metadata={
                    "as_of_date": as_of,
                    "previous_penalty": current.penalty_amount.amount,
                    "penalty_amount": updated.penalty_amount.amount,
                    "total_amount": updated.total_amount.amount,
                    "status": updated.status
                }
            )
        return True

    def _grace_period_days(self, loan: Loan) -> int:
        if loan.terms.grace_period_days is not None:
            return loan.terms.grace_period_days
        return self.config.default_grace_period_days

    def _daily_penalty_rate(self, loan: Loan) -> Decimal:
        if loan.terms.daily_penalty_rate_percent is not None:
            return loan.terms.daily_penalty_rate_percent
        return self.config.daily_penalty_rate_percent

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if loan is None:
            raise RecordNotFoundError("Loan", loan_id)
        return loan

    def get_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        if status is None:
            data = self.storage.load_all(self.loans_table)
        else:
            status = coerce_enum(LoanStatus, status, "status")
            data = self.storage.find(self.loans_table, {'status': status.value})
        loans = [Loan.from_dict(item) for item in data]
        loans.sort(key=lambda loan: loan.created_at)
        return loans

    def get_schedule(self, loan_id: str) -> List[Installment]:
        """Installments of one loan in installment order"""
        data = self.storage.find(self.installments_table, {'loan_id': loan_id})
        schedule = [Installment.from_dict(item) for item in data]
        schedule.sort(key=lambda installment: installment.installment_number)
        return schedule

    def get_installment(self, loan_id: str, installment_number: int) -> Optional[Installment]:
        data = self.storage.load(self.installments_table, f"{loan_id}_{installment_number}")
        if data:
            return Installment.from_dict(data)
        return None

    def require_installment(self, loan_id: str, installment_number: int) -> Installment:
        installment = self.get_installment(loan_id, installment_number)
        if installment is None:
            raise RecordNotFoundError("Installment", f"{loan_id}_{installment_number}")
        return installment

    def get_installments(
        self,
        status: Optional[InstallmentStatus] = None,
        overdue_as_of: Optional[date] = None
    ) -> List[Installment]:
        """
        Installments across all loans

        Args:
            status: Only installments in this status
            overdue_as_of: Only unpaid installments due before this date
        """
        if status is None:
            data = self.storage.load_all(self.installments_table)
        else:
            status = coerce_enum(InstallmentStatus, status, "status")
            data = self.storage.find(self.installments_table, {'status': status.value})
        installments = [Installment.from_dict(item) for item in data]
        if overdue_as_of is not None:
            installments = [
                installment for installment in installments
                if not installment.is_paid and installment.due_date < overdue_as_of
            ]
        installments.sort(key=lambda installment: (installment.due_date, installment.loan_id,
                                                    installment.installment_number))
        return installments

    def get_payments(self, loan_id: Optional[str] = None) -> List[Payment]:
        if loan_id is None:
            data = self.storage.load_all(self.payments_table)
        else:
            data = self.storage.find(self.payments_table, {'loan_id': loan_id})
        payments = [Payment.from_dict(item) for item in data]
        payments.sort(key=lambda payment: (payment.payment_date, payment.created_at))
        return payments

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _with_retry(self, operation: Callable[[], T], description: str) -> T:
        attempts = self.config.max_posting_retries
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except ConcurrentUpdateConflict as e:
                if attempt == attempts:
                    log_action(logger, "error", f"Giving up on {description} after {attempts} attempts: {e}",
                               action="retry", extra={"attempts": attempts})
                    raise
                log_action(logger, "warning", f"Retrying {description} (attempt {attempt}): {e}",
                           action="retry", resource=f"{e.table}/{e.record_id}")

    def _require_status(self, loan: Loan, allowed, verb: str) -> None:
        if loan.status not in allowed:
            raise InvalidInputError(
                f"Cannot {verb} loan {loan.loan_id} in status {loan.status.value}",
                field="status"
            )

    def _next_business_id(self, table: str, prefix: str) -> str:
        return f"{prefix}{self.storage.count(table) + 1:03d}"

    def _save_loan(self, loan: Loan) -> None:
        loan.updated_at = datetime.now(timezone.utc)
        loan.version = self.storage.compare_and_swap(self.loans_table, loan.id, loan.version, loan.to_dict())

    def _save_installment(self, installment: Installment) -> None:
        self.storage.save(self.installments_table, installment.storage_key(), installment.to_dict())
