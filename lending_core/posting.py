"""
Ledger Poster

Fixed posting templates for the two business events that move money:
loan disbursement and payment receipt. Every template builds a balanced
line set and hands it to GeneralLedger.post_entry, which applies it
atomically or not at all.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import List, Optional, TYPE_CHECKING

from .currency import Money, quantize_amount
from .amortization import Installment
from .ledger import (
    GeneralLedger, JournalEntry, JournalEntryLine,
    CASH_AND_BANK, LOAN_RECEIVABLE, INTEREST_INCOME, PENALTY_INCOME
)
from .exceptions import InvalidInputError
from .logging_config import get_logger

if TYPE_CHECKING:
    from .loans import Loan, Payment

logger = get_logger("posting")


@dataclass(frozen=True)
class PaymentSplit:
    """How one payment is attributed; the three parts always sum to the payment"""
    principal: Money
    interest: Money
    penalty: Money

    @property
    def total(self) -> Money:
        return self.principal + self.interest + self.penalty


class LedgerPoster:
    """
    Turns disbursements and payments into journal entries
    """

    def __init__(
        self,
        ledger: GeneralLedger,
        fallback_principal_ratio: Decimal = Decimal('0.70'),
        cash_account: str = CASH_AND_BANK,
        receivable_account: str = LOAN_RECEIVABLE,
        interest_income_account: str = INTEREST_INCOME,
        penalty_income_account: str = PENALTY_INCOME
    ):
        if not isinstance(fallback_principal_ratio, Decimal):
            fallback_principal_ratio = Decimal(str(fallback_principal_ratio))
        if fallback_principal_ratio < Decimal('0') or fallback_principal_ratio > Decimal('1'):
            raise InvalidInputError("Fallback principal ratio must be between 0 and 1",
                                    field="fallback_principal_ratio")

        self.ledger = ledger
        self.fallback_principal_ratio = fallback_principal_ratio
        self.cash_account = cash_account
        self.receivable_account = receivable_account
        self.interest_income_account = interest_income_account
        self.penalty_income_account = penalty_income_account

    def split_payment(self, amount: Money, installment: Optional[Installment] = None) -> PaymentSplit:
        """
        Attribute a payment to penalty, interest and principal

        With a matched installment the outstanding penalty is settled first and
        the rest follows the installment's own interest/EMI ratio. Without one,
        the configured fallback ratio applies. Interest is rounded and principal
        takes the remainder, so the parts always add back to the amount.
        """
        if not isinstance(amount, Money) or not amount.is_positive():
            raise InvalidInputError("Payment amount must be positive", field="amount")

        zero = Money.zero(amount.currency)
        if installment is None:
            interest_ratio = Decimal('1') - self.fallback_principal_ratio
            penalty = zero
        else:
            if installment.currency != amount.currency:
                raise InvalidInputError(
                    f"Payment currency {amount.currency.code} does not match "
                    f"installment currency {installment.currency.code}"
                )
            penalty = min(amount, installment.penalty_due)
            if installment.emi_amount.is_zero():
                interest_ratio = Decimal('0')
            else:
                interest_ratio = installment.interest_amount.amount / installment.emi_amount.amount

        remainder = amount - penalty
        interest = Money(quantize_amount(remainder.amount * interest_ratio, amount.currency), amount.currency)
        principal = remainder - interest
        return PaymentSplit(principal=principal, interest=interest, penalty=penalty)

    def post_disbursement(self, loan: 'Loan') -> JournalEntry:
        """
        Debit Loan Receivable and credit Cash & Bank by the principal

        Raises:
            UnknownAccountError: If either account is missing from the chart
        """
        principal = loan.terms.principal
        description = f"Loan Disbursement - {loan.loan_id}"
        lines = [
            JournalEntryLine.debit(self.receivable_account, principal, description),
            JournalEntryLine.credit(self.cash_account, principal, description),
        ]
        return self.ledger.post_entry(
            reference=loan.loan_id,
            description=description,
            lines=lines,
            entry_date=loan.terms.start_date,
        )

    def payment_lines(self, amount: Money, split: PaymentSplit, description: str) -> List[JournalEntryLine]:
        if split.total != amount:
            raise InvalidInputError(
                f"Payment split {split.total.to_string()} does not add up to {amount.to_string()}"
            )
        lines = [JournalEntryLine.debit(self.cash_account, amount, description)]
        # Zero portions produce no line
        for account_code, portion in (
            (self.receivable_account, split.principal),
            (self.interest_income_account, split.interest),
            (self.penalty_income_account, split.penalty),
        ):
            if portion.is_positive():
                lines.append(JournalEntryLine.credit(account_code, portion, description))
        return lines

    def post_payment(
        self,
        payment: 'Payment',
        loan: 'Loan',
        installment: Optional[Installment] = None
    ) -> JournalEntry:
        """
        Debit Cash & Bank by the full payment and credit its parts

        ``installment`` is the matched installment as it stood before this
        payment was applied.

        Raises:
            InvalidInputError: If the payment is not positive or its currency
                differs from the loan's
            UnknownAccountError: If a posting account is missing from the chart
        """
        if payment.amount.currency != loan.terms.currency:
            raise InvalidInputError(
                f"Payment currency {payment.amount.currency.code} does not match "
                f"loan currency {loan.terms.currency.code}"
            )
        split = self.split_payment(payment.amount, installment)
        description = f"Payment received - {payment.payment_id}"
        logger.debug(
            f"Payment {payment.payment_id} split: principal={split.principal.to_string()} "
            f"interest={split.interest.to_string()} penalty={split.penalty.to_string()}"
        )
        return self.ledger.post_entry(
            reference=payment.payment_id,
            description=description,
            lines=self.payment_lines(payment.amount, split, description),
            entry_date=payment.payment_date,
        )
