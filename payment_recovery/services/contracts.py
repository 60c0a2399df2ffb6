"""Contracts for the collaborators the recovery engine depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from payment_recovery.models.base import Event
from payment_recovery.models.financial import Allocation, IdentitySignals, LoanSummary


@dataclass
class AccountDetails:
    """Bank or card details forwarded with a submission."""

    account_number: str | None = None
    routing_number: str | None = None
    reference: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubmissionResult:
    """What the payment-application service reports for one submission."""

    success: bool
    transaction_id: str | None = None
    failure_reason: str | None = None
    failure_code: str | None = None
    allocation: Allocation | None = None
    remaining_balance: Decimal | None = None

    @classmethod
    def succeeded(cls, transaction_id: str, **kwargs: Any) -> "SubmissionResult":
        return cls(success=True, transaction_id=transaction_id, **kwargs)

    @classmethod
    def failed(cls, reason: str, code: str | None = None) -> "SubmissionResult":
        return cls(success=False, failure_reason=reason, failure_code=code or reason)


class LoanDirectory(Protocol):
    """Loan lookup. ``find_loan`` returns ``None`` when the loan is unknown."""

    def find_loan(self, loan_ref: str) -> LoanSummary | None: ...

    def search_candidates(
        self,
        amount: Decimal,
        signals: IdentitySignals,
        tolerance: Decimal = ...,
    ) -> list[LoanSummary]: ...


class PaymentApplicationService(Protocol):
    """Moves money against a loan. May block."""

    def submit(
        self,
        loan_id: str,
        amount: Decimal,
        method: str,
        account_details: AccountDetails | None = None,
    ) -> SubmissionResult: ...


class AllocationService(Protocol):
    """Splits an amount across a loan's balance components.

    Returning ``None`` means the service has no opinion and the engine's
    fallback waterfall applies.
    """

    def compute_allocation(self, loan_id: str, amount: Decimal) -> Allocation | None: ...


class NotificationService(Protocol):
    """Fire-and-forget borrower notifications."""

    def notify(self, borrower_ref: str, event: Event) -> None: ...
