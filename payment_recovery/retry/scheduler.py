"""Time-driven retry scheduler."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from payment_recovery.config import SchedulerConfig
from payment_recovery.exceptions import InvalidEntityStateError, RecoveryEngineError
from payment_recovery.models.financial import (
    AttemptStatus,
    FailureReason,
    LoanSummary,
    PaymentAttempt,
    PaymentMethod,
    RetryPolicy,
    RetryStatistics,
)
from payment_recovery.retry.escalation import FailureQueue
from payment_recovery.retry.registry import RetryPolicyRegistry
from payment_recovery.retry.state_machine import (
    NO_POLICY_ID,
    AttemptStateMachine,
    FailureOutcome,
)
from payment_recovery.services.contracts import (
    AccountDetails,
    LoanDirectory,
    NotificationService,
    PaymentApplicationService,
    SubmissionResult,
)
from payment_recovery.services.notifications import build_event, safe_notify
from payment_recovery.store.recovery import RecoveryDataStore

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Drive due payment attempts through the attempt state machine.

    Each attempt is claimed with a compare-and-set of its status from
    PENDING to PROCESSING before the payment service is called, so a
    scheduled scan and a manual ``process_now`` can never submit the same
    attempt twice.

    Parameters
    ----------
    store : RecoveryDataStore
        Where attempts and failure entries live.
    registry : RetryPolicyRegistry
        Retry policies.
    payment_service : PaymentApplicationService
        Collaborator that moves money.
    loan_directory : LoanDirectory | None
        Used for borrower names and bank details.
    notifier : NotificationService | None
        Borrower notifications, fire-and-forget.
    failure_queue : FailureQueue | None
        Escalation target. Created over ``store`` when omitted.
    config : SchedulerConfig | None
        Poll cadence and fallback interval.
    clock : Callable[[], datetime]
        Current time source.
    """

    def __init__(
        self,
        store: RecoveryDataStore,
        registry: RetryPolicyRegistry,
        payment_service: PaymentApplicationService,
        loan_directory: LoanDirectory | None = None,
        notifier: NotificationService | None = None,
        failure_queue: FailureQueue | None = None,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.registry = registry
        self.payment_service = payment_service
        self.loan_directory = loan_directory
        self.notifier = notifier
        self.config = config or SchedulerConfig()
        self.clock = clock
        self.failure_queue = failure_queue or FailureQueue(store, clock)
        self.state_machine = AttemptStateMachine(
            registry,
            default_interval=self.config.default_retry_interval,
            escalate_on_missing_policy=self.config.escalate_on_missing_policy,
        )
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    # Attempt creation

    def report_failure(
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
        """Register a failed payment and schedule its first retry attempt.

        The policy is ``policy_id`` when given, otherwise the first enabled
        policy covering the method and reason. A failure no policy covers is
        recorded as an escalated attempt and sent straight to the failure
        queue.
        """
        now = self.clock()
        if policy_id is not None:
            policy: RetryPolicy | None = self.registry.get(policy_id)
        else:
            policy = self.registry.select(payment_method, failure_reason)

        reason = getattr(failure_reason, "value", failure_reason)
        code = getattr(failure_code, "value", failure_code) or reason

        if policy is None:
            return self._escalate_uncovered(
                loan_id, original_payment_id, amount, payment_method, reason, code, metadata
            )

        attempt = self.state_machine.new_attempt(
            loan_id=loan_id,
            original_payment_id=original_payment_id,
            amount=amount,
            payment_method=payment_method,
            policy_id=policy.policy_id,
            max_retries=policy.max_attempts,
            scheduled_for=scheduled_for or now,
            failure_reason=reason,
            failure_code=code,
            metadata=metadata,
        )
        attempt.created_at = now
        self.store.add_attempt(attempt)
        logger.info(
            "Scheduled retry 1/%d for loan %s payment %s under policy %s",
            attempt.max_retries,
            loan_id,
            original_payment_id,
            policy.policy_id,
        )
        return attempt

    def _escalate_uncovered(
        self,
        loan_id: str,
        original_payment_id: str,
        amount: Decimal,
        payment_method: PaymentMethod,
        reason: str,
        code: str,
        metadata: dict[str, Any] | None,
    ) -> PaymentAttempt:
        now = self.clock()
        attempt = self.state_machine.new_attempt(
            loan_id=loan_id,
            original_payment_id=original_payment_id,
            amount=amount,
            payment_method=payment_method,
            policy_id=NO_POLICY_ID,
            max_retries=1,
            scheduled_for=now,
            failure_reason=reason,
            failure_code=code,
            metadata=metadata,
        )
        attempt.created_at = now
        self.state_machine.escalate_uncovered(attempt, now)
        self.store.add_attempt(attempt)
        logger.warning(
            "No retry policy covers %s/%s for loan %s; escalating",
            getattr(payment_method, "value", payment_method),
            reason,
            loan_id,
        )
        self.failure_queue.escalate(attempt, self._borrower_name(loan_id), failure_code=code)
        return attempt

    def schedule_manual_retry(self, entry_id: str, at: datetime | None = None) -> PaymentAttempt:
        """Spawn a one-shot attempt for a failure queue entry."""
        entry = self.failure_queue.schedule_retry(entry_id, at)
        attempt = self.state_machine.new_attempt(
            loan_id=entry.loan_id,
            original_payment_id=entry.original_payment_id or entry.entry_id,
            amount=entry.amount,
            payment_method=entry.payment_method,
            policy_id=entry.policy_id or NO_POLICY_ID,
            max_retries=1,
            scheduled_for=entry.next_retry_at or self.clock(),
            failure_reason=entry.failure_reason,
            failure_code=entry.failure_code,
            metadata={"failure_entry_id": entry.entry_id, "manual": True},
        )
        self.store.add_attempt(attempt)
        return attempt

    # Processing

    def scan_once(self) -> int:
        """Process every PENDING attempt that is due right now.

        Works on a snapshot: successors spawned during the scan wait for a
        later scan even if already due.

        Returns
        -------
        int
            Number of attempts this scan submitted.
        """
        now = self.clock()
        due = [a for a in self.store.attempts_with_status(AttemptStatus.PENDING) if a.due_at <= now]
        due.sort(key=lambda a: a.due_at)

        processed = 0
        for attempt in due:
            try:
                if self._execute(attempt.attempt_id) is not None:
                    processed += 1
            except RecoveryEngineError:
                logger.exception("Failed to process attempt %s", attempt.attempt_id)

        if processed:
            logger.info("Retry scan processed %d of %d due attempts", processed, len(due))
        return processed

    def process_now(self, attempt_id: str) -> PaymentAttempt:
        """Process a PENDING attempt immediately, ignoring its due time."""
        attempt = self.store.attempts.get(attempt_id)
        if attempt.status != AttemptStatus.PENDING:
            raise InvalidEntityStateError(
                f"Attempt {attempt_id} is {attempt.status.value}, not PENDING"
            )
        result = self._execute(attempt_id)
        if result is None:
            raise InvalidEntityStateError(f"Attempt {attempt_id} is already being processed")
        return result

    def cancel(self, attempt_id: str, reason: str = "Cancelled by operator") -> PaymentAttempt:
        """PENDING -> CANCELLED."""

        def _cancel(attempt: PaymentAttempt) -> PaymentAttempt:
            self.state_machine.cancel(attempt, reason)
            return attempt

        attempt = self.store.attempts.update(attempt_id, _cancel)
        logger.info("Cancelled attempt %s: %s", attempt_id, reason)
        return attempt

    def _claim(self, attempt_id: str) -> bool:
        claimed = self.store.attempts.compare_and_set(
            attempt_id, "status", AttemptStatus.PENDING, AttemptStatus.PROCESSING
        )
        if not claimed:
            logger.debug("Attempt %s already claimed; skipping", attempt_id)
        return claimed

    def _execute(self, attempt_id: str) -> PaymentAttempt | None:
        if not self._claim(attempt_id):
            return None

        attempt = self.store.attempts.get(attempt_id)
        loan = self._find_loan(attempt.loan_id)
        details = AccountDetails(
            account_number=loan.account_number if loan else None,
            routing_number=loan.routing_number if loan else None,
            reference=attempt.original_payment_id,
        )

        try:
            result = self.payment_service.submit(
                attempt.loan_id, attempt.amount, attempt.payment_method.value, details
            )
        except Exception as exc:
            logger.exception("Payment service raised for attempt %s", attempt_id)
            result = SubmissionResult.failed(
                f"Payment service error: {exc}", FailureReason.SERVICE_ERROR.value
            )

        now = self.clock()
        if result.success:
            policy = self.store.attempts.update(
                attempt_id, lambda a: self.state_machine.record_success(a, result, now)
            )
            self._after_success(attempt, policy, loan)
        else:
            outcome = self.store.attempts.update(
                attempt_id, lambda a: self.state_machine.record_failure(a, result, now)
            )
            self._after_failure(outcome, loan)
        return attempt

    def _after_success(
        self,
        attempt: PaymentAttempt,
        policy: RetryPolicy | None,
        loan: LoanSummary | None,
    ) -> None:
        logger.info(
            "Attempt %s for loan %s succeeded (%s)",
            attempt.attempt_id,
            attempt.loan_id,
            attempt.transaction_id,
        )
        if policy is None or policy.stop_on_success:
            for sibling in self.store.get_payment_attempts(attempt.original_payment_id):
                if sibling.attempt_id != attempt.attempt_id:
                    self._cancel_if_pending(sibling.attempt_id, "Sibling attempt succeeded")

        entry_id = attempt.metadata.get("failure_entry_id")
        if entry_id:
            self.failure_queue.resolve(entry_id, f"Manual retry succeeded ({attempt.transaction_id})")

        self._notify(attempt, "payment_retry.succeeded", loan)

    def _after_failure(self, outcome: FailureOutcome, loan: LoanSummary | None) -> None:
        attempt = outcome.attempt
        if outcome.successor is not None:
            self.store.add_attempt(outcome.successor)

        policy = outcome.policy
        if policy is None or policy.notify_on_failure:
            if self._notify(attempt, "payment_retry.failed", loan):
                attempt.borrower_notified = True
                if outcome.successor is not None:
                    outcome.successor.borrower_notified = True

        if not outcome.escalated:
            return

        entry_id = attempt.metadata.get("failure_entry_id")
        if entry_id:
            self.failure_queue.mark_exhausted(
                entry_id, attempt.last_failure_reason, attempt.last_failure_code
            )
        elif outcome.enqueue_failure:
            self.failure_queue.escalate(
                attempt,
                loan.borrower_name if loan else attempt.loan_id,
            )
        self._notify(attempt, "payment_retry.escalated", loan)

    def _cancel_if_pending(self, attempt_id: str, reason: str) -> bool:
        def _cancel(attempt: PaymentAttempt) -> bool:
            if attempt.status != AttemptStatus.PENDING:
                return False
            self.state_machine.cancel(attempt, reason)
            return True

        cancelled = self.store.attempts.update(attempt_id, _cancel)
        if cancelled:
            logger.info("Cancelled attempt %s: %s", attempt_id, reason)
        return cancelled

    def _notify(self, attempt: PaymentAttempt, event_type: str, loan: LoanSummary | None) -> bool:
        event = build_event(
            event_type,
            attempt.attempt_id,
            {
                "loan_id": attempt.loan_id,
                "original_payment_id": attempt.original_payment_id,
                "amount": str(attempt.amount),
                "payment_method": attempt.payment_method.value,
                "attempt_number": attempt.attempt_number,
                "max_retries": attempt.max_retries,
                "status": attempt.status.value,
                "failure_reason": attempt.last_failure_reason,
                "next_retry_at": attempt.next_retry_at.isoformat()
                if attempt.next_retry_at
                else None,
            },
            now=self.clock(),
        )
        borrower_ref = (loan.borrower_email if loan else None) or attempt.loan_id
        return safe_notify(self.notifier, borrower_ref, event)

    def _find_loan(self, loan_id: str) -> LoanSummary | None:
        if self.loan_directory is None:
            return None
        try:
            return self.loan_directory.find_loan(loan_id)
        except Exception:
            logger.exception("Loan directory lookup failed for %s", loan_id)
            return None

    def _borrower_name(self, loan_id: str) -> str:
        loan = self._find_loan(loan_id)
        return loan.borrower_name if loan else loan_id

    # Queries

    def attempts(
        self,
        status: AttemptStatus | None = None,
        loan_id: str | None = None,
    ) -> list[PaymentAttempt]:
        """Attempts filtered by status and loan, ordered by due time."""
        attempts = self.store.attempts.filter(
            lambda a: (status is None or a.status == status)
            and (loan_id is None or a.loan_id == loan_id)
        )
        return sorted(attempts, key=lambda a: a.due_at)

    def statistics(self) -> RetryStatistics:
        stats = RetryStatistics()
        for attempt in self.store.attempts.values():
            stats.total_attempts += 1
            key = attempt.status.value
            stats.by_status[key] = stats.by_status.get(key, 0) + 1
            if attempt.escalated:
                stats.escalated += 1
        return stats

    # Background loop

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Run ``scan_once`` on a background thread every poll interval."""
        if self.running:
            logger.info("Retry scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="retry-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(
            "Retry scheduler started (poll every %.1fs)", self.config.poll_interval_seconds
        )

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the current scan to finish."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Retry scheduler stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.scan_once()
            except Exception:
                logger.exception("Unhandled error during retry scan")
            self._stop_event.wait(self.config.poll_interval_seconds)
