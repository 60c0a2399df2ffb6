"""Manual failure queue for payments that exhausted their retries."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable

from payment_recovery.exceptions import InvalidEntityStateError
from payment_recovery.models.financial import (
    FailureQueueEntry,
    FailureQueueStatus,
    FailureReason,
    PaymentAttempt,
)
from payment_recovery.store.recovery import RecoveryDataStore

logger = logging.getLogger(__name__)


def _stamp(now: datetime, text: str) -> str:
    return f"{now:%b %d, %Y}: {text}"


class FailureQueue:
    """Agent actions over escalated payments.

    Entries are owned by the queue once created. RESOLVED and CANCELLED are
    terminal; every other action on a terminal entry raises
    :class:`InvalidEntityStateError`.
    """

    def __init__(
        self,
        store: RecoveryDataStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock

    def escalate(
        self,
        attempt: PaymentAttempt,
        borrower_name: str,
        failure_code: str = FailureReason.MAX_RETRIES.value,
    ) -> FailureQueueEntry:
        """Create an EXHAUSTED entry for an attempt that ran out of retries."""
        now = self.clock()
        entry = FailureQueueEntry(
            entry_id=uuid.uuid4().hex,
            loan_id=attempt.loan_id,
            borrower_name=borrower_name,
            amount=attempt.amount,
            payment_method=attempt.payment_method,
            failure_reason=attempt.last_failure_reason or "Unknown failure",
            failure_code=failure_code,
            failed_at=now,
            retry_attempts=attempt.attempt_number,
            status=FailureQueueStatus.EXHAUSTED,
            escalated=True,
            attempt_id=attempt.attempt_id,
            original_payment_id=attempt.original_payment_id,
            policy_id=attempt.policy_id,
        )
        if attempt.metadata.get("policy_missing"):
            entry.notes.append(_stamp(now, f"Retry policy {attempt.policy_id} was missing"))
        self.store.add_failure(entry)
        logger.warning(
            "Escalated loan %s payment %s after %d attempts (%s)",
            entry.loan_id,
            entry.original_payment_id,
            entry.retry_attempts,
            entry.failure_reason,
        )
        return entry

    def get(self, entry_id: str) -> FailureQueueEntry:
        return self.store.failures.get(entry_id)

    def list(
        self,
        status: FailureQueueStatus | None = None,
        escalated: bool | None = None,
    ) -> list[FailureQueueEntry]:
        """Entries filtered by status and escalation flag, newest first."""
        entries = self.store.failures.filter(
            lambda e: (status is None or e.status == status)
            and (escalated is None or e.escalated == escalated)
        )
        return sorted(entries, key=lambda e: e.failed_at, reverse=True)

    def record_contact(self, entry_id: str, note: str | None = None) -> FailureQueueEntry:
        now = self.clock()

        def _contact(entry: FailureQueueEntry) -> FailureQueueEntry:
            self._require_open(entry)
            entry.last_contact_at = now
            entry.notes.append(_stamp(now, note or "Borrower contacted"))
            return entry

        return self.store.failures.update(entry_id, _contact)

    def schedule_retry(self, entry_id: str, at: datetime | None = None) -> FailureQueueEntry:
        """Mark the entry ACTIVE_RETRY with a manual retry due at ``at``."""
        now = self.clock()

        def _schedule(entry: FailureQueueEntry) -> FailureQueueEntry:
            self._require_open(entry)
            if entry.status == FailureQueueStatus.ACTIVE_RETRY:
                raise InvalidEntityStateError(
                    f"Failure entry {entry.entry_id} already has a retry in progress"
                )
            entry.status = FailureQueueStatus.ACTIVE_RETRY
            entry.next_retry_at = at or now
            entry.notes.append(_stamp(now, "Manual retry scheduled"))
            return entry

        entry = self.store.failures.update(entry_id, _schedule)
        logger.info("Manual retry scheduled for failure entry %s", entry_id)
        return entry

    def mark_exhausted(
        self,
        entry_id: str,
        failure_reason: str | None = None,
        failure_code: str | None = None,
    ) -> FailureQueueEntry:
        """Return an ACTIVE_RETRY entry to EXHAUSTED after its retry failed."""
        now = self.clock()

        def _exhaust(entry: FailureQueueEntry) -> FailureQueueEntry:
            self._require_open(entry)
            entry.status = FailureQueueStatus.EXHAUSTED
            entry.retry_attempts += 1
            entry.next_retry_at = None
            entry.failed_at = now
            if failure_reason:
                entry.failure_reason = failure_reason
            if failure_code:
                entry.failure_code = failure_code
            entry.notes.append(_stamp(now, f"Manual retry failed: {entry.failure_reason}"))
            return entry

        return self.store.failures.update(entry_id, _exhaust)

    def resolve(self, entry_id: str, note: str | None = None) -> FailureQueueEntry:
        now = self.clock()

        def _resolve(entry: FailureQueueEntry) -> FailureQueueEntry:
            self._require_open(entry)
            entry.status = FailureQueueStatus.RESOLVED
            entry.next_retry_at = None
            entry.notes.append(_stamp(now, note or "Resolved"))
            return entry

        entry = self.store.failures.update(entry_id, _resolve)
        logger.info("Failure entry %s resolved", entry_id)
        return entry

    def cancel(self, entry_id: str, reason: str) -> FailureQueueEntry:
        now = self.clock()

        def _cancel(entry: FailureQueueEntry) -> FailureQueueEntry:
            self._require_open(entry)
            entry.status = FailureQueueStatus.CANCELLED
            entry.next_retry_at = None
            entry.notes.append(_stamp(now, f"Cancelled: {reason}"))
            return entry

        entry = self.store.failures.update(entry_id, _cancel)
        logger.info("Failure entry %s cancelled: %s", entry_id, reason)
        return entry

    @staticmethod
    def _require_open(entry: FailureQueueEntry) -> None:
        if entry.is_terminal:
            raise InvalidEntityStateError(
                f"Failure entry {entry.entry_id} is {entry.status.value}"
            )
