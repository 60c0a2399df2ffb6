"""Retry policy, payment attempt and failure queue models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from payment_recovery.models.financial.enums import (
    AttemptStatus,
    FailureQueueStatus,
    PaymentMethod,
)


@dataclass
class RetryPolicy:
    """Named retry configuration.

    ``intervals`` holds one wait per retry. Retries beyond the explicit
    sequence reuse the last interval scaled cumulatively by
    ``backoff_multiplier``.
    """

    policy_id: str
    name: str
    intervals: list[timedelta]
    max_attempts: int
    payment_methods: frozenset[str]
    failure_reasons: frozenset[str]
    enabled: bool = True
    backoff_multiplier: Decimal = Decimal("1.0")
    stop_on_success: bool = True
    escalate_after_max_retries: bool = True
    notify_on_failure: bool = True
    description: str = ""

    def applies_to(self, payment_method: str, failure_reason: str | None) -> bool:
        """Return True if this policy covers the method/reason pair."""
        if not self.enabled or not self.payment_methods or not self.failure_reasons:
            return False
        method = getattr(payment_method, "value", payment_method)
        reason = getattr(failure_reason, "value", failure_reason)
        return method in self.payment_methods and reason in self.failure_reasons


@dataclass
class PaymentAttempt:
    """One scheduled or executed try to collect a failed payment."""

    attempt_id: str
    loan_id: str
    original_payment_id: str
    amount: Decimal
    payment_method: PaymentMethod
    attempt_number: int  # 1-based
    max_retries: int  # copied from the policy at creation
    status: AttemptStatus
    scheduled_for: datetime
    policy_id: str
    processed_at: datetime | None = None
    last_failure_reason: str | None = None
    last_failure_code: str | None = None
    next_retry_at: datetime | None = None  # only while PENDING
    transaction_id: str | None = None
    borrower_notified: bool = False
    escalated: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def due_at(self) -> datetime:
        """When the attempt becomes eligible for processing."""
        return self.next_retry_at or self.scheduled_for

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            AttemptStatus.SUCCESS,
            AttemptStatus.FAILED,
            AttemptStatus.CANCELLED,
            AttemptStatus.ESCALATED,
        )


@dataclass
class FailureQueueEntry:
    """An exhausted payment awaiting manual handling."""

    entry_id: str
    loan_id: str
    borrower_name: str
    amount: Decimal
    payment_method: PaymentMethod
    failure_reason: str
    failure_code: str
    failed_at: datetime
    retry_attempts: int
    status: FailureQueueStatus
    escalated: bool = True
    next_retry_at: datetime | None = None
    last_contact_at: datetime | None = None
    attempt_id: str | None = None
    original_payment_id: str | None = None
    policy_id: str | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in (FailureQueueStatus.RESOLVED, FailureQueueStatus.CANCELLED)


@dataclass
class RetryStatistics:
    """Aggregate view over all attempts."""

    total_attempts: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    escalated: int = 0

    @property
    def success_rate(self) -> float:
        """Successful attempts over attempts that reached an outcome."""
        succeeded = self.by_status.get(AttemptStatus.SUCCESS.value, 0)
        resolved = (
            succeeded
            + self.by_status.get(AttemptStatus.FAILED.value, 0)
            + self.by_status.get(AttemptStatus.ESCALATED.value, 0)
        )
        return succeeded / resolved if resolved > 0 else 0.0
