"""Loan directory view consumed by the recovery engine."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass
class LoanSummary:
    """Read-only summary of a loan as returned by the loan directory."""

    loan_id: str
    loan_number: str
    borrower_name: str
    current_balance: Decimal
    expected_payment: Decimal
    next_payment_due: date | None = None
    borrower_email: str | None = None
    borrower_phone: str | None = None
    account_number: str | None = None  # bank account on file
    routing_number: str | None = None
    interest_due: Decimal = Decimal("0.00")
    fees_due: Decimal = Decimal("0.00")
    escrow_due: Decimal = Decimal("0.00")
    active: bool = True


@dataclass
class IdentitySignals:
    """Identity hints carried by an unidentified payment."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    account_number: str | None = None
    routing_number: str | None = None
