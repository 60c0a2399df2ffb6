"""Suspense account models for unidentified payments."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from payment_recovery.models.financial.enums import (
    MatchTier,
    PaymentMethod,
    SuspenseReason,
    SuspenseStatus,
)


@dataclass
class Allocation:
    """Split of a payment amount across loan balance components."""

    principal: Decimal
    interest: Decimal
    fees: Decimal
    escrow: Decimal = Decimal("0.00")

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest + self.fees + self.escrow


@dataclass
class AppliedPayment:
    """Record of a suspense payment applied to a loan."""

    loan_id: str
    applied_by: str
    applied_at: datetime
    allocation: Allocation


@dataclass
class LoanMatch:
    """Candidate loan for a suspense payment. Regenerated on every match run."""

    loan_id: str
    borrower_name: str
    current_balance: Decimal
    payment_due_date: date | None
    expected_payment: Decimal
    confidence: int  # 0-100
    match_reasons: list[str] = field(default_factory=list)
    tier: MatchTier = MatchTier.WEAK


@dataclass
class SuspensePayment:
    """Money received but not yet attributable to a specific loan."""

    payment_id: str
    amount: Decimal
    received_at: datetime
    payment_method: PaymentMethod
    reference_number: str
    payment_source: str
    status: SuspenseStatus = SuspenseStatus.UNMATCHED
    reason: SuspenseReason = SuspenseReason.UNKNOWN_CUSTOMER
    bank_account: str | None = None
    routing_number: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    notes: list[str] = field(default_factory=list)  # append-only
    assigned_to: str | None = None
    candidates: list[LoanMatch] = field(default_factory=list)
    applied_to: AppliedPayment | None = None

    @property
    def best_confidence(self) -> int:
        return self.candidates[0].confidence if self.candidates else 0

    def days_in_suspense(self, now: datetime) -> int:
        return max(0, (now - self.received_at).days)
