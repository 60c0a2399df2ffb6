"""Lifecycle of a single payment retry attempt."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from payment_recovery.exceptions import InvalidEntityStateError
from payment_recovery.models.financial import (
    AttemptStatus,
    PaymentAttempt,
    PaymentMethod,
    RetryPolicy,
)
from payment_recovery.retry.registry import RetryPolicyRegistry
from payment_recovery.services.contracts import SubmissionResult

logger = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVAL = timedelta(days=7)

# Policy id carried by attempts that no retry policy covers
NO_POLICY_ID = "unassigned"

ALLOWED_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.PENDING: frozenset({AttemptStatus.PROCESSING, AttemptStatus.CANCELLED}),
    AttemptStatus.PROCESSING: frozenset(
        {AttemptStatus.SUCCESS, AttemptStatus.FAILED, AttemptStatus.ESCALATED}
    ),
    AttemptStatus.SUCCESS: frozenset(),
    AttemptStatus.FAILED: frozenset(),
    AttemptStatus.CANCELLED: frozenset(),
    AttemptStatus.ESCALATED: frozenset(),
}


def retry_delay(
    policy: RetryPolicy | None,
    attempt_number: int,
    default: timedelta = DEFAULT_RETRY_INTERVAL,
) -> timedelta:
    """Wait before retrying after attempt ``attempt_number`` fails.

    With ``intervals = [d1, ..., dk]`` the delay is ``dn`` for ``n <= k``
    and ``dk * multiplier ** (n - k)`` beyond the explicit sequence.
    """
    if policy is None or not policy.intervals:
        return default

    intervals = policy.intervals
    if attempt_number <= len(intervals):
        return intervals[max(attempt_number, 1) - 1]

    exponent = attempt_number - len(intervals)
    factor = Decimal(policy.backoff_multiplier) ** exponent
    return intervals[-1] * float(factor)


@dataclass
class FailureOutcome:
    """What happened to an attempt that the payment service rejected."""

    attempt: PaymentAttempt
    successor: PaymentAttempt | None = None
    escalated: bool = False
    enqueue_failure: bool = False
    policy: RetryPolicy | None = None


class AttemptStateMachine:
    """Applies transition rules to payment attempts.

    The state machine only mutates the attempts it is handed; persisting
    them and making transitions atomic is the caller's job.

    Parameters
    ----------
    registry : RetryPolicyRegistry
        Source of policy parameters.
    default_interval : timedelta
        Delay used when an attempt's policy no longer exists.
    escalate_on_missing_policy : bool
        Whether an exhausted attempt with no policy goes to the failure queue.
    """

    def __init__(
        self,
        registry: RetryPolicyRegistry,
        default_interval: timedelta = DEFAULT_RETRY_INTERVAL,
        escalate_on_missing_policy: bool = True,
    ) -> None:
        self.registry = registry
        self.default_interval = default_interval
        self.escalate_on_missing_policy = escalate_on_missing_policy

    def new_attempt(
        self,
        loan_id: str,
        original_payment_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        policy_id: str,
        max_retries: int,
        scheduled_for: datetime,
        failure_reason: str | None = None,
        failure_code: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentAttempt:
        """Create attempt number 1 for a failed payment."""
        return PaymentAttempt(
            attempt_id=uuid.uuid4().hex,
            loan_id=loan_id,
            original_payment_id=original_payment_id,
            amount=amount,
            payment_method=payment_method,
            attempt_number=1,
            max_retries=max_retries,
            status=AttemptStatus.PENDING,
            scheduled_for=scheduled_for,
            policy_id=policy_id,
            last_failure_reason=failure_reason,
            last_failure_code=failure_code,
            metadata=dict(metadata or {}),
        )

    def transition(self, attempt: PaymentAttempt, target: AttemptStatus) -> None:
        """Move ``attempt`` to ``target`` or raise if the edge does not exist."""
        if target not in ALLOWED_TRANSITIONS[attempt.status]:
            raise InvalidEntityStateError(
                f"Attempt {attempt.attempt_id} cannot move from "
                f"{attempt.status.value} to {target.value}"
            )
        logger.debug(
            "Attempt %s: %s -> %s", attempt.attempt_id, attempt.status.value, target.value
        )
        attempt.status = target

    def resolve_policy(self, attempt: PaymentAttempt) -> RetryPolicy | None:
        """Look up the attempt's policy, flagging the attempt if it is gone."""
        if attempt.policy_id == NO_POLICY_ID:
            return None
        policy = self.registry.find(attempt.policy_id)
        if policy is None:
            attempt.metadata["policy_missing"] = True
            logger.warning(
                "Attempt %s references missing retry policy %s; using default interval %s",
                attempt.attempt_id,
                attempt.policy_id,
                self.default_interval,
            )
        return policy

    def escalate_uncovered(self, attempt: PaymentAttempt, now: datetime) -> None:
        """PENDING -> PROCESSING -> ESCALATED for a failure no policy covers."""
        self.transition(attempt, AttemptStatus.PROCESSING)
        self.transition(attempt, AttemptStatus.ESCALATED)
        attempt.escalated = True
        attempt.processed_at = now
        attempt.next_retry_at = None
        attempt.metadata["no_applicable_policy"] = True

    def cancel(self, attempt: PaymentAttempt, reason: str | None = None) -> None:
        self.transition(attempt, AttemptStatus.CANCELLED)
        attempt.next_retry_at = None
        if reason:
            attempt.metadata["cancel_reason"] = reason

    def record_success(
        self, attempt: PaymentAttempt, result: SubmissionResult, now: datetime
    ) -> RetryPolicy | None:
        """PROCESSING -> SUCCESS."""
        self.transition(attempt, AttemptStatus.SUCCESS)
        attempt.processed_at = now
        attempt.transaction_id = result.transaction_id
        attempt.next_retry_at = None
        return self.resolve_policy(attempt)

    def record_failure(
        self, attempt: PaymentAttempt, result: SubmissionResult, now: datetime
    ) -> FailureOutcome:
        """PROCESSING -> FAILED (with successor) or ESCALATED."""
        policy = self.resolve_policy(attempt)
        attempt.processed_at = now
        attempt.last_failure_reason = result.failure_reason
        attempt.last_failure_code = result.failure_code
        attempt.next_retry_at = None

        if attempt.attempt_number >= attempt.max_retries:
            self.transition(attempt, AttemptStatus.ESCALATED)
            attempt.escalated = True
            if policy is None:
                enqueue = self.escalate_on_missing_policy
            else:
                enqueue = policy.escalate_after_max_retries
            logger.warning(
                "Attempt %s for loan %s exhausted %d/%d retries",
                attempt.attempt_id,
                attempt.loan_id,
                attempt.attempt_number,
                attempt.max_retries,
            )
            return FailureOutcome(
                attempt=attempt, escalated=True, enqueue_failure=enqueue, policy=policy
            )

        self.transition(attempt, AttemptStatus.FAILED)
        delay = retry_delay(policy, attempt.attempt_number, self.default_interval)
        successor = self._successor(attempt, now + delay)
        logger.info(
            "Attempt %s failed (%s); retry %d/%d scheduled for %s",
            attempt.attempt_id,
            result.failure_reason,
            successor.attempt_number,
            successor.max_retries,
            successor.next_retry_at,
        )
        return FailureOutcome(attempt=attempt, successor=successor, policy=policy)

    def _successor(self, attempt: PaymentAttempt, next_retry_at: datetime) -> PaymentAttempt:
        metadata = dict(attempt.metadata)
        metadata["previous_attempt_id"] = attempt.attempt_id
        return PaymentAttempt(
            attempt_id=uuid.uuid4().hex,
            loan_id=attempt.loan_id,
            original_payment_id=attempt.original_payment_id,
            amount=attempt.amount,
            payment_method=attempt.payment_method,
            attempt_number=attempt.attempt_number + 1,
            max_retries=attempt.max_retries,
            status=AttemptStatus.PENDING,
            scheduled_for=next_retry_at,
            next_retry_at=next_retry_at,
            policy_id=attempt.policy_id,
            last_failure_reason=attempt.last_failure_reason,
            last_failure_code=attempt.last_failure_code,
            borrower_notified=attempt.borrower_notified,
            metadata=metadata,
        )
