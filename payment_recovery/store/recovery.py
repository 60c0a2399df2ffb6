"""Recovery data store with relationship tracking."""

import threading
from dataclasses import dataclass, field
from datetime import datetime

from payment_recovery.exceptions import ReferentialIntegrityError
from payment_recovery.models.financial import (
    AttemptStatus,
    FailureQueueEntry,
    PaymentAttempt,
    PaymentBatch,
    SuspensePayment,
)
from payment_recovery.store.repository import Repository


def _attempts() -> Repository[PaymentAttempt]:
    return Repository("Attempt", lambda a: a.attempt_id)


def _failures() -> Repository[FailureQueueEntry]:
    return Repository("Failure queue entry", lambda f: f.entry_id)


def _suspense() -> Repository[SuspensePayment]:
    return Repository("Suspense payment", lambda p: p.payment_id)


def _batches() -> Repository[PaymentBatch]:
    return Repository("Batch", lambda b: b.batch_id)


@dataclass
class RecoveryDataStore:
    """In-memory store for recovery entities with relationship tracking."""

    attempts: Repository[PaymentAttempt] = field(default_factory=_attempts)
    failures: Repository[FailureQueueEntry] = field(default_factory=_failures)
    suspense: Repository[SuspensePayment] = field(default_factory=_suspense)
    batches: Repository[PaymentBatch] = field(default_factory=_batches)

    # Relationship indexes
    _payment_attempts: dict[str, list[str]] = field(default_factory=dict)
    _loan_attempts: dict[str, list[str]] = field(default_factory=dict)
    _attempt_failures: dict[str, str] = field(default_factory=dict)
    _index_lock: threading.Lock = field(default_factory=threading.Lock)

    def add_attempt(self, attempt: PaymentAttempt) -> None:
        """Add a payment attempt to the store."""
        if attempt.created_at is None:
            attempt.created_at = datetime.now()
        self.attempts.add(attempt)
        with self._index_lock:
            self._payment_attempts.setdefault(attempt.original_payment_id, []).append(
                attempt.attempt_id
            )
            self._loan_attempts.setdefault(attempt.loan_id, []).append(attempt.attempt_id)

    def add_failure(self, entry: FailureQueueEntry) -> None:
        """Add a failure queue entry to the store."""
        if entry.attempt_id and entry.attempt_id not in self.attempts:
            raise ReferentialIntegrityError(f"Attempt {entry.attempt_id} not found")

        self.failures.add(entry)
        if entry.attempt_id:
            with self._index_lock:
                self._attempt_failures[entry.attempt_id] = entry.entry_id

    def add_suspense_payment(self, payment: SuspensePayment) -> None:
        """Add a suspense payment to the store."""
        self.suspense.add(payment)

    def add_batch(self, batch: PaymentBatch) -> None:
        """Add a payment batch to the store."""
        self.batches.add(batch)

    # Query methods
    def get_payment_attempts(self, original_payment_id: str) -> list[PaymentAttempt]:
        """Get every attempt (siblings) for an original payment."""
        attempt_ids = self._payment_attempts.get(original_payment_id, [])
        return [self.attempts.get(aid) for aid in attempt_ids]

    def get_loan_attempts(self, loan_id: str) -> list[PaymentAttempt]:
        """Get all attempts for a loan."""
        attempt_ids = self._loan_attempts.get(loan_id, [])
        return [self.attempts.get(aid) for aid in attempt_ids]

    def get_attempt_failure(self, attempt_id: str) -> FailureQueueEntry | None:
        """Get the failure queue entry emitted for an attempt, if any."""
        entry_id = self._attempt_failures.get(attempt_id)
        return self.failures.get(entry_id) if entry_id else None

    def attempts_with_status(self, *statuses: AttemptStatus) -> list[PaymentAttempt]:
        return self.attempts.filter(lambda a: a.status in statuses)

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        return {
            "attempts": len(self.attempts),
            "failures": len(self.failures),
            "suspense_payments": len(self.suspense),
            "batches": len(self.batches),
        }
