"""Recovery engine facade.

Wires the retry, reconciliation and batch components over one store and
exposes the query and command operations reporting layers consume.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

from payment_recovery.batch import (
    TEMPLATE_CSV,
    BatchExecutor,
    BatchValidator,
    parse_batch,
    read_batch_file,
)
from payment_recovery.config import RecoveryConfig
from payment_recovery.models.financial import (
    AttemptStatus,
    FailureQueueEntry,
    FailureQueueStatus,
    LoanMatch,
    LoanSummary,
    PaymentAttempt,
    PaymentBatch,
    PaymentMethod,
    RetryPolicy,
    RetryStatistics,
    SuspensePayment,
    SuspenseReason,
    SuspenseStatus,
)
from payment_recovery.reconciliation import ReconciliationMatcher, SuspenseManager
from payment_recovery.retry import FailureQueue, RetryPolicyRegistry, RetryScheduler
from payment_recovery.services import LoggingNotificationService
from payment_recovery.services.contracts import (
    AllocationService,
    LoanDirectory,
    NotificationService,
    PaymentApplicationService,
)
from payment_recovery.sinks import KafkaNotificationService, KafkaSink, export_batch_results
from payment_recovery.store import RecoveryDataStore

logger = logging.getLogger(__name__)


class RecoveryEngine:
    """Payment exception and recovery engine.

    Parameters
    ----------
    loan_directory : LoanDirectory
        Loan lookup collaborator.
    payment_service : PaymentApplicationService
        Collaborator that moves money.
    allocation_service : AllocationService | None
        Loan terms collaborator for allocation breakdowns.
    notifier : NotificationService | None
        Fire-and-forget borrower notifications.
    registry : RetryPolicyRegistry | None
        Retry policies (defaults loaded when omitted).
    store : RecoveryDataStore | None
        Entity store (a fresh in-memory store when omitted).
    config : RecoveryConfig | None
        Engine configuration.
    on_payment_applied : Callable[[SuspensePayment, LoanSummary], None] | None
        Loan balance update hook for applied suspense payments.
    clock : Callable[[], datetime]
        Current time source shared by every component.
    """

    def __init__(
        self,
        loan_directory: LoanDirectory,
        payment_service: PaymentApplicationService,
        allocation_service: AllocationService | None = None,
        notifier: NotificationService | None = None,
        registry: RetryPolicyRegistry | None = None,
        store: RecoveryDataStore | None = None,
        config: RecoveryConfig | None = None,
        on_payment_applied: Callable[[SuspensePayment, LoanSummary], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or RecoveryConfig()
        self.store = store or RecoveryDataStore()
        self.registry = registry or RetryPolicyRegistry()
        self.loan_directory = loan_directory
        self.notifier = notifier
        self.clock = clock

        self.failure_queue = FailureQueue(self.store, clock)
        self.scheduler = RetryScheduler(
            self.store,
            self.registry,
            payment_service,
            loan_directory=loan_directory,
            notifier=notifier,
            failure_queue=self.failure_queue,
            config=self.config.scheduler,
            clock=clock,
        )
        self.matcher = ReconciliationMatcher(loan_directory, self.config.matching)
        self.suspense = SuspenseManager(
            self.store,
            self.matcher,
            loan_directory,
            allocation_service=allocation_service,
            notifier=notifier,
            on_applied=on_payment_applied,
            clock=clock,
        )
        self.validator = BatchValidator(self.config.batch, loan_directory, clock)
        self.executor = BatchExecutor(
            self.store,
            payment_service,
            loan_directory=loan_directory,
            allocation_service=allocation_service,
            config=self.config.batch,
            clock=clock,
        )

    @classmethod
    def from_config(
        cls,
        config: RecoveryConfig,
        loan_directory: LoanDirectory,
        payment_service: PaymentApplicationService,
        **kwargs: Any,
    ) -> "RecoveryEngine":
        """Build an engine whose notifier follows ``config``.

        Notifications go to Kafka when enabled, otherwise they are only
        logged.
        """
        if "notifier" not in kwargs:
            if config.notifications_enabled:
                kwargs["notifier"] = KafkaNotificationService(KafkaSink(config.kafka))
            else:
                kwargs["notifier"] = LoggingNotificationService()
        return cls(loan_directory, payment_service, config=config, **kwargs)

    # Lifecycle

    def start(self) -> None:
        """Start the background retry scheduler."""
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        if isinstance(self.notifier, KafkaNotificationService):
            self.notifier.sink.close()

    # Retries

    def report_payment_failure(
        self,
        loan_id: str,
        original_payment_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        failure_reason: str,
        failure_code: str | None = None,
        policy_id: str | None = None,
        scheduled_for: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PaymentAttempt:
        """Entry point for a payment that failed on its first try."""
        return self.scheduler.report_failure(
            loan_id,
            original_payment_id,
            amount,
            payment_method,
            failure_reason,
            failure_code=failure_code,
            policy_id=policy_id,
            scheduled_for=scheduled_for,
            metadata=metadata,
        )

    def list_attempts(
        self,
        status: AttemptStatus | None = None,
        loan_id: str | None = None,
    ) -> list[PaymentAttempt]:
        return self.scheduler.attempts(status, loan_id)

    def run_due_retries(self) -> int:
        """Run one scheduler scan on the calling thread."""
        return self.scheduler.scan_once()

    def retry_now(self, attempt_id: str) -> PaymentAttempt:
        return self.scheduler.process_now(attempt_id)

    def cancel_retry(self, attempt_id: str, reason: str = "Cancelled by operator") -> PaymentAttempt:
        return self.scheduler.cancel(attempt_id, reason)

    def update_policy(self, policy: RetryPolicy) -> RetryPolicy:
        """Replace a policy; attempts already scheduled keep their max retries."""
        return self.registry.update(policy)

    def retry_statistics(self) -> RetryStatistics:
        return self.scheduler.statistics()

    # Failure queue

    def list_failures(
        self,
        status: FailureQueueStatus | None = None,
        escalated: bool | None = None,
    ) -> list[FailureQueueEntry]:
        return self.failure_queue.list(status, escalated)

    def retry_failure(self, entry_id: str, at: datetime | None = None) -> PaymentAttempt:
        """Manually retry an escalated payment.

        Without ``at`` the retry is submitted immediately; otherwise the
        scheduler picks it up once due.
        """
        attempt = self.scheduler.schedule_manual_retry(entry_id, at)
        if at is None:
            return self.scheduler.process_now(attempt.attempt_id)
        return attempt

    def record_contact(self, entry_id: str, note: str | None = None) -> FailureQueueEntry:
        return self.failure_queue.record_contact(entry_id, note)

    def resolve_failure(self, entry_id: str, note: str | None = None) -> FailureQueueEntry:
        return self.failure_queue.resolve(entry_id, note)

    def cancel_failure(self, entry_id: str, reason: str) -> FailureQueueEntry:
        return self.failure_queue.cancel(entry_id, reason)

    # Suspense

    def receive_suspense_payment(self, payment: SuspensePayment) -> SuspensePayment:
        return self.suspense.receive(payment)

    def list_suspense(
        self,
        status: SuspenseStatus | None = None,
        reason: SuspenseReason | None = None,
        age_bucket: str | None = None,
        search: str | None = None,
        sort_by: str = "date",
        descending: bool = True,
    ) -> list[SuspensePayment]:
        return self.suspense.list_payments(status, reason, age_bucket, search, sort_by, descending)

    def refresh_matches(self, payment_id: str) -> list[LoanMatch]:
        return self.suspense.refresh_candidates(payment_id)

    def apply_match(self, payment_id: str, loan_id: str, applied_by: str) -> SuspensePayment:
        return self.suspense.apply_match(payment_id, loan_id, applied_by)

    def reject_payment(self, payment_id: str, reason: str) -> SuspensePayment:
        return self.suspense.reject(payment_id, reason)

    def add_note(self, payment_id: str, note: str) -> SuspensePayment:
        return self.suspense.add_note(payment_id, note)

    def assign_payment(self, payment_id: str, handler: str | None) -> SuspensePayment:
        return self.suspense.assign(payment_id, handler)

    def set_suspense_status(self, payment_id: str, status: SuspenseStatus) -> SuspensePayment:
        return self.suspense.set_status(payment_id, status)

    # Batches

    def upload_batch(self, content: str, file_name: str) -> PaymentBatch:
        """Parse, store and validate a batch from CSV text."""
        batch = parse_batch(content, file_name, uploaded_at=self.clock())
        self.store.add_batch(batch)
        logger.info("Batch %s uploaded from %s: %d records", batch.batch_id, file_name, batch.record_count)
        return self.store.batches.update(batch.batch_id, self.validator.validate_batch)

    def upload_batch_file(self, path: str | Path) -> PaymentBatch:
        return self.upload_batch(read_batch_file(path), Path(path).name)

    def get_batch(self, batch_id: str) -> PaymentBatch:
        return self.store.batches.get(batch_id)

    def list_batches(self) -> list[PaymentBatch]:
        return sorted(self.store.batches.values(), key=lambda b: b.uploaded_at, reverse=True)

    def start_batch(self, batch_id: str, wait: bool = True) -> PaymentBatch:
        """Execute a validated batch, on this thread or in the background."""
        if wait:
            return self.executor.run(batch_id)
        self.executor.start(batch_id)
        return self.store.batches.get(batch_id)

    def pause_batch(self, batch_id: str) -> PaymentBatch:
        return self.executor.pause(batch_id)

    def resume_batch(self, batch_id: str, wait: bool = True) -> PaymentBatch:
        return self.executor.resume(batch_id, background=not wait)

    def cancel_batch(self, batch_id: str) -> PaymentBatch:
        return self.executor.cancel(batch_id)

    def wait_for_batch(self, batch_id: str, timeout: float | None = None) -> PaymentBatch:
        return self.executor.wait(batch_id, timeout)

    def export_batch_results(
        self,
        batch_id: str,
        fmt: str = "csv",
        output_dir: str | Path | None = None,
    ) -> Path:
        batch = self.store.batches.get(batch_id)
        return export_batch_results(
            batch,
            output_dir or self.config.output.export_dir,
            fmt=fmt,
            pretty=self.config.output.pretty_json,
        )

    @staticmethod
    def batch_template() -> str:
        """CSV template for bulk payment uploads."""
        return TEMPLATE_CSV

    def summary(self) -> dict[str, Any]:
        """Counts of stored entities and retry outcomes."""
        stats = self.retry_statistics()
        return {
            **self.store.summary(),
            "attempts_by_status": dict(stats.by_status),
            "retry_success_rate": round(stats.success_rate, 4),
            "open_failures": len(
                [e for e in self.failure_queue.list() if not e.is_terminal]
            ),
        }
