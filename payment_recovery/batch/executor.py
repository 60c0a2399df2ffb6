"""Execution of validated batch records against the payment service."""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable

from payment_recovery.allocation import (
    allocate_payment,
    normalize_allocation,
    to_money,
    waterfall_allocation,
)
from payment_recovery.config import BatchConfig
from payment_recovery.exceptions import AllocationError, InvalidEntityStateError
from payment_recovery.logging import get_logger
from payment_recovery.models.financial import (
    Allocation,
    BatchRecord,
    BatchRecordStatus,
    BatchStatus,
    FailureReason,
    LoanSummary,
    PaymentBatch,
    ProcessingResult,
    ProcessingStats,
)
from payment_recovery.services.contracts import (
    AccountDetails,
    AllocationService,
    LoanDirectory,
    PaymentApplicationService,
    SubmissionResult,
)
from payment_recovery.store.recovery import RecoveryDataStore

logger = logging.getLogger(__name__)


@dataclass
class _Accumulator:
    """Running counters for one batch, shared by all workers."""

    succeeded: int = 0
    failed: int = 0
    amount: Decimal = Decimal("0.00")
    total_ms: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock)

    def record(self, batch: PaymentBatch, success: bool, amount: Decimal, elapsed_ms: float) -> None:
        with self.lock:
            if success:
                self.succeeded += 1
                self.amount += amount
            else:
                self.failed += 1
            self.total_ms += elapsed_ms
            batch.processed_records = self.succeeded + self.failed

    def stats(self) -> ProcessingStats:
        with self.lock:
            processed = self.succeeded + self.failed
            return ProcessingStats(
                successful_payments=self.succeeded,
                failed_payments=self.failed,
                total_amount_processed=self.amount,
                avg_processing_ms=self.total_ms / processed if processed else 0.0,
            )


@dataclass
class _BatchRun:
    accumulator: _Accumulator = field(default_factory=_Accumulator)
    pause_requested: threading.Event = field(default_factory=threading.Event)
    cancel_requested: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None

    @property
    def stopping(self) -> bool:
        return self.pause_requested.is_set() or self.cancel_requested.is_set()


class BatchExecutor:
    """Submit a batch's VALIDATED records with bounded concurrency.

    ``max_workers`` workers pull records from a shared queue in original
    order. Pause and cancel stop workers from pulling new records; records
    already submitted always finish. Resuming picks up the records that are
    still VALIDATED, so completed records are never submitted twice.

    Parameters
    ----------
    store : RecoveryDataStore
        Holds the batches.
    payment_service : PaymentApplicationService
        Collaborator that moves money.
    loan_directory : LoanDirectory | None
        Resolves loan references to loan ids.
    allocation_service : AllocationService | None
        Loan terms collaborator for allocation breakdowns.
    config : BatchConfig | None
        Worker count.
    clock : Callable[[], datetime]
        Current time source.
    """

    def __init__(
        self,
        store: RecoveryDataStore,
        payment_service: PaymentApplicationService,
        loan_directory: LoanDirectory | None = None,
        allocation_service: AllocationService | None = None,
        config: BatchConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.payment_service = payment_service
        self.loan_directory = loan_directory
        self.allocation_service = allocation_service
        self.config = config or BatchConfig()
        self.clock = clock
        self._runs: dict[str, _BatchRun] = {}
        self._runs_lock = threading.Lock()

    def _run_for(self, batch_id: str) -> _BatchRun:
        with self._runs_lock:
            return self._runs.setdefault(batch_id, _BatchRun())

    def run(self, batch_id: str) -> PaymentBatch:
        """Process the batch on the calling thread until done, paused or cancelled."""
        run = self._run_for(batch_id)

        def _begin(batch: PaymentBatch) -> PaymentBatch:
            if batch.status not in (BatchStatus.VALIDATED, BatchStatus.PAUSED):
                raise InvalidEntityStateError(
                    f"Batch {batch.batch_id} is {batch.status.value}; cannot start processing"
                )
            if run.cancel_requested.is_set():
                raise InvalidEntityStateError(f"Batch {batch.batch_id} has a pending cancel")
            run.pause_requested.clear()
            batch.status = BatchStatus.PROCESSING
            return batch

        batch = self.store.batches.update(batch_id, _begin)

        work: queue.Queue[BatchRecord] = queue.Queue()
        for record in batch.records_with_status(BatchRecordStatus.VALIDATED):
            work.put(record)

        get_logger(__name__, batch_id=batch_id).info(
            "Processing %d records with %d workers",
            work.qsize(),
            self.config.max_workers,
        )

        workers = max(1, self.config.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"batch-{batch_id}") as pool:
            futures = [pool.submit(self._worker, batch, run, work) for _ in range(workers)]
            for future in futures:
                future.result()

        return self.store.batches.update(batch_id, lambda b: self._finish(b, run))

    def start(self, batch_id: str) -> threading.Thread:
        """Run the batch on a background thread."""
        run = self._run_for(batch_id)
        if run.thread is not None and run.thread.is_alive():
            raise InvalidEntityStateError(f"Batch {batch_id} is already processing")
        batch = self.store.batches.get(batch_id)
        if batch.status not in (BatchStatus.VALIDATED, BatchStatus.PAUSED):
            raise InvalidEntityStateError(
                f"Batch {batch_id} is {batch.status.value}; cannot start processing"
            )
        run.thread = threading.Thread(
            target=self._run_background, args=(batch_id,), name=f"batch-{batch_id}", daemon=True
        )
        run.thread.start()
        return run.thread

    def _run_background(self, batch_id: str) -> None:
        try:
            self.run(batch_id)
        except Exception:
            logger.exception("Batch %s processing failed", batch_id)

    def wait(self, batch_id: str, timeout: float | None = None) -> PaymentBatch:
        """Block until a background run finishes."""
        run = self._run_for(batch_id)
        if run.thread is not None:
            run.thread.join(timeout)
        return self.store.batches.get(batch_id)

    def pause(self, batch_id: str) -> PaymentBatch:
        """Stop pulling new records; in-flight records finish."""
        run = self._run_for(batch_id)

        def _pause(batch: PaymentBatch) -> PaymentBatch:
            if batch.status != BatchStatus.PROCESSING:
                raise InvalidEntityStateError(
                    f"Batch {batch.batch_id} is {batch.status.value}, not PROCESSING"
                )
            run.pause_requested.set()
            return batch

        batch = self.store.batches.update(batch_id, _pause)
        logger.info("Pause requested for batch %s", batch_id)
        return batch

    def resume(self, batch_id: str, background: bool = True) -> PaymentBatch:
        """Continue a paused batch with its remaining VALIDATED records."""
        batch = self.store.batches.get(batch_id)
        if batch.status != BatchStatus.PAUSED:
            raise InvalidEntityStateError(f"Batch {batch_id} is {batch.status.value}, not PAUSED")
        logger.info("Resuming batch %s", batch_id)
        if background:
            self.start(batch_id)
            return batch
        return self.run(batch_id)

    def cancel(self, batch_id: str) -> PaymentBatch:
        """Stop the batch for good. In-flight records drain first."""
        run = self._run_for(batch_id)

        def _cancel(batch: PaymentBatch) -> PaymentBatch:
            if batch.status == BatchStatus.PROCESSING:
                run.cancel_requested.set()
            elif batch.status in (BatchStatus.UPLOADED, BatchStatus.VALIDATED, BatchStatus.PAUSED):
                batch.status = BatchStatus.CANCELLED
                batch.completed_at = self.clock()
                batch.processing_stats = run.accumulator.stats()
            else:
                raise InvalidEntityStateError(
                    f"Batch {batch.batch_id} is {batch.status.value}; cannot cancel"
                )
            return batch

        batch = self.store.batches.update(batch_id, _cancel)
        logger.info("Cancel requested for batch %s", batch_id)
        return batch

    def _worker(self, batch: PaymentBatch, run: _BatchRun, work: "queue.Queue[BatchRecord]") -> None:
        while not run.stopping:
            try:
                record = work.get_nowait()
            except queue.Empty:
                return
            self._process_record(batch, record, run.accumulator)

    def _process_record(self, batch: PaymentBatch, record: BatchRecord, acc: _Accumulator) -> None:
        record.status = BatchRecordStatus.PROCESSING
        started = time.perf_counter()

        loan = self._find_loan(record.loan_number)
        loan_id = loan.loan_id if loan else record.loan_number
        details = AccountDetails(
            account_number=record.account_number or None,
            routing_number=record.routing_number or None,
            reference=record.customer_reference or None,
        )
        try:
            result = self.payment_service.submit(loan_id, record.amount, record.payment_method, details)
        except Exception as exc:
            logger.exception("Payment service raised for batch record %s", record.record_id)
            result = SubmissionResult.failed(
                f"Payment service error: {exc}", FailureReason.SERVICE_ERROR.value
            )

        elapsed_ms = (time.perf_counter() - started) * 1000
        if result.success:
            allocation = self._allocation(record, loan_id, loan, result)
            remaining = result.remaining_balance
            if remaining is None and loan is not None:
                remaining = max(to_money(loan.current_balance) - allocation.principal, Decimal("0.00"))
            record.processing_result = ProcessingResult(
                transaction_id=result.transaction_id,
                applied_amount=record.amount,
                principal_applied=allocation.principal,
                interest_applied=allocation.interest,
                fees_applied=allocation.fees,
                remaining_balance=remaining,
                processing_ms=elapsed_ms,
            )
            record.status = BatchRecordStatus.COMPLETED
        else:
            record.validation_errors.append(f"Payment failed: {result.failure_reason}")
            record.processing_result = ProcessingResult(processing_ms=elapsed_ms)
            record.status = BatchRecordStatus.FAILED
            logger.warning(
                "Batch %s record %s failed: %s",
                batch.batch_id,
                record.record_id,
                result.failure_reason,
            )

        acc.record(batch, result.success, record.amount, elapsed_ms)

    def _allocation(
        self,
        record: BatchRecord,
        loan_id: str,
        loan: LoanSummary | None,
        result: SubmissionResult,
    ) -> Allocation:
        try:
            if result.allocation is not None:
                return normalize_allocation(result.allocation, record.amount)
            return allocate_payment(record.amount, loan_id, loan, self.allocation_service)
        except AllocationError:
            logger.exception("Allocation for record %s inconsistent; using waterfall", record.record_id)
            return normalize_allocation(waterfall_allocation(record.amount, loan), record.amount)

    def _find_loan(self, loan_ref: str) -> LoanSummary | None:
        if self.loan_directory is None:
            return None
        try:
            return self.loan_directory.find_loan(loan_ref)
        except Exception:
            logger.exception("Loan lookup failed for %s", loan_ref)
            return None

    def _finish(self, batch: PaymentBatch, run: _BatchRun) -> PaymentBatch:
        batch.processing_stats = run.accumulator.stats()
        if run.cancel_requested.is_set():
            batch.status = BatchStatus.CANCELLED
            batch.completed_at = self.clock()
        elif run.pause_requested.is_set() and batch.records_with_status(BatchRecordStatus.VALIDATED):
            batch.status = BatchStatus.PAUSED
        else:
            batch.status = BatchStatus.COMPLETED
            batch.completed_at = self.clock()

        stats = batch.processing_stats
        get_logger(__name__, batch_id=batch.batch_id).info(
            "Batch %s: %d succeeded, %d failed, %s moved, avg %.1fms",
            batch.status.value.lower(),
            stats.successful_payments,
            stats.failed_payments,
            stats.total_amount_processed,
            stats.avg_processing_ms,
        )
        return batch
