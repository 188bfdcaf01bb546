#!/usr/bin/env python3
"""
Example: One loan from application to first overdue penalty

Approves a reducing-balance loan, collects an installment, lets the next one
fall overdue and prints the resulting ledger balances.
"""

import os
import sys
from decimal import Decimal
from datetime import date

# Add the lending core package to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from lending_core.config import LendingConfig
from lending_core.clock import FixedClock
from lending_core.currency import Money
from lending_core.amortization import LoanTerms, InterestType, RepaymentFrequency
from lending_core.exceptions import LendingError
from lending_core.system import LendingSystem


def main():
    print("Lending Core - Loan Walkthrough")
    print("=" * 60)

    # 1. Configuration
    print("\n1. Configuration")
    config = LendingConfig(opening_cash_balance=Decimal("1000000"), log_format="text")
    clock = FixedClock(date(2024, 1, 1))
    system = LendingSystem(config, clock=clock)
    currency = config.currency_enum
    print(f"   Currency: {currency.code}, storage: {config.storage_backend}")

    # 2. Application and approval
    print("\n2. Application and approval")
    terms = LoanTerms(
        principal=Money(Decimal("100000"), currency),
        annual_interest_rate=Decimal("12"),
        tenure=12,
        interest_type=InterestType.REDUCING,
        repayment_frequency=RepaymentFrequency.MONTHLY,
        start_date=clock.today(),
        grace_period_days=5,
    )
    manager = system.loan_manager
    loan = manager.create_loan("CUST001", terms, customer_name="Asha Rao")
    manager.submit_loan(loan.loan_id)
    loan = manager.approve_loan(loan.loan_id, approved_by="officer1")
    print(f"   {loan.loan_id} active, EMI {loan.emi_amount.to_string()}, "
          f"total interest {loan.total_interest.to_string()}")

    for installment in manager.get_schedule(loan.loan_id)[:3]:
        print(f"   #{installment.installment_number} {installment.due_date} "
              f"principal {installment.principal_amount.to_string()} "
              f"interest {installment.interest_amount.to_string()} "
              f"balance {installment.outstanding_balance.to_string()}")

    # 3. Collection
    print("\n3. Collection")
    clock.set_date(date(2024, 2, 1))
    payment = manager.record_payment(loan.loan_id, loan.emi_amount, installment_number=1, method="upi")
    print(f"   {payment.payment_id}: principal {payment.principal_portion.to_string()}, "
          f"interest {payment.interest_portion.to_string()} -> {payment.journal_entry_number}")

    # 4. Overdue penalty
    print("\n4. Penalty run")
    clock.set_date(date(2024, 3, 12))
    results = manager.calculate_and_update_penalties()
    installment = manager.get_installment(loan.loan_id, 2)
    print(f"   Scanned {results['installments_scanned']}, updated {results['penalties_updated']}")
    print(f"   #2 {installment.status.value}: penalty {installment.penalty_amount.to_string()}, "
          f"due {installment.amount_due.to_string()}")

    try:
        manager.record_payment(loan.loan_id, installment.amount_due, installment_number=2)
    except LendingError as e:
        print(f"   Payment rejected [{e.code}]: {e}")

    # 5. Ledger
    print("\n5. Ledger")
    for code, balance in system.ledger.get_account_balances().items():
        print(f"   {code} {balance.to_string()}")
    reconciliation = system.ledger.reconcile()
    print(f"   Reconciled: {reconciliation['balanced']}")
    print(f"   Audit chain valid: {system.audit_trail.verify_integrity()['valid']}")

    system.close()
    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
