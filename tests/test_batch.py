"""Tests for batch parsing, validation and execution."""

import threading
import time
from datetime import datetime
from decimal import Decimal

import pytest

from payment_recovery.batch import (
    TEMPLATE_CSV,
    BatchExecutor,
    BatchValidator,
    build_batch,
    find_duplicate_loans,
    parse_batch,
    parse_rows,
    read_batch_file,
)
from payment_recovery.batch.parser import canonical_header
from payment_recovery.batch.validation import parse_amount, parse_payment_date
from payment_recovery.config import BatchConfig
from payment_recovery.exceptions import BatchParseError, InvalidEntityStateError
from payment_recovery.models.financial import (
    BatchRecordStatus,
    BatchStatus,
    PaymentBatch,
    ValidationCategory,
)
from payment_recovery.scenarios import SimulationClock
from payment_recovery.services import ScriptedPaymentService, SubmissionResult
from payment_recovery.store import InMemoryLoanDirectory, RecoveryDataStore

HEADER = (
    "loan_number,payment_amount,payment_date,payment_method,"
    "account_number,routing_number,customer_reference"
)


def _csv(*rows: str) -> str:
    return "\n".join((HEADER,) + rows) + "\n"


def _ten_rows_two_bad_routing() -> str:
    rows = []
    for i in range(10):
        loan, amount = ("LN123456", "1500.00") if i % 2 == 0 else ("LN789012", "2500.00")
        routing = "021000021"
        if i == 3:
            routing = "12345"
        elif i == 6:
            routing = "02100002A"
        rows.append(f"{loan},{amount},2024-02-28,ACH,1234567890,{routing},REF{i:03d}")
    return _csv(*rows)


class TestParser:
    """Tests for CSV parsing."""

    def test_canonical_header(self) -> None:
        assert canonical_header("Loan Number") == "loan_number"
        assert canonical_header(" payment-amount ") == "payment_amount"
        assert canonical_header("PaymentMethod") == "payment_method"
        assert canonical_header("memo") is None

    def test_template_parses(self) -> None:
        rows = parse_rows(TEMPLATE_CSV)
        assert len(rows) == 2
        assert rows[0]["loan_number"] == "LN123456"
        assert rows[1]["routing_number"] == "031000503"

    def test_short_rows_padded(self) -> None:
        rows = parse_rows("loan_number,payment_amount,payment_date,payment_method\nLN123456,100.00\n")
        assert rows[0]["payment_date"] == ""
        assert rows[0]["customer_reference"] == ""

    def test_blank_lines_skipped(self) -> None:
        rows = parse_rows(_csv("", "LN123456,100.00,2024-02-28,CHECK,,,", " , , "))
        assert len(rows) == 1

    def test_empty_file_raises(self) -> None:
        with pytest.raises(BatchParseError, match="empty"):
            parse_rows("\n\n")

    def test_missing_columns_raise(self) -> None:
        with pytest.raises(BatchParseError, match="payment_date, payment_method"):
            parse_rows("loan_number,payment_amount\nLN123456,100.00\n")

    def test_build_batch(self) -> None:
        uploaded = datetime(2024, 3, 1, 9, 0)
        batch = build_batch(parse_rows(TEMPLATE_CSV), "payments.csv", uploaded, batch_id="BATCH-1")

        assert batch.batch_id == "BATCH-1"
        assert batch.status == BatchStatus.UPLOADED
        assert batch.record_count == 2
        assert batch.total_amount == Decimal("4000.00")
        assert [r.record_id for r in batch.records] == ["REC-00001", "REC-00002"]
        assert [r.row_number for r in batch.records] == [2, 3]
        assert all(r.status == BatchRecordStatus.PENDING for r in batch.records)

    def test_total_ignores_unparseable_amounts(self) -> None:
        batch = parse_batch(
            _csv(
                "LN123456,abc,2024-02-28,CHECK,,,",
                "LN789012,$250.50,2024-02-28,CHECK,,,",
                "LN789012,-10,2024-02-28,CHECK,,,",
            ),
            "f.csv",
        )
        assert batch.batch_id.startswith("BATCH-")
        assert batch.total_amount == Decimal("250.50")

    def test_read_batch_file_strips_bom(self, tmp_path) -> None:
        path = tmp_path / "payments.csv"
        path.write_bytes(b"\xef\xbb\xbf" + TEMPLATE_CSV.encode("utf-8"))

        rows = parse_rows(read_batch_file(path))
        assert rows[0]["loan_number"] == "LN123456"

    def test_read_missing_file_raises(self, tmp_path) -> None:
        with pytest.raises(BatchParseError):
            read_batch_file(tmp_path / "missing.csv")


class TestValueParsing:
    def test_parse_amount(self) -> None:
        assert parse_amount("$1,500.00") == Decimal("1500.00")
        assert parse_amount("abc") is None
        assert parse_amount("NaN") is None

    def test_parse_payment_date(self) -> None:
        expected = datetime(2024, 2, 28).date()
        for raw in ("2024-02-28", "02/28/2024", "2024/02/28", "02-28-2024"):
            assert parse_payment_date(raw) == expected
        assert parse_payment_date("28th Feb") is None

    def test_find_duplicate_loans(self) -> None:
        batch = parse_batch(
            _csv(
                "LN123456,1,2024-02-28,CHECK,,,",
                "ln123456,1,2024-02-28,CHECK,,,",
                "LN789012,1,2024-02-28,CHECK,,,",
            ),
            "f.csv",
        )
        assert find_duplicate_loans(batch.records) == ["LN123456"]


class TestBatchValidator:
    """Tests for per-record and cross-record validation."""

    @pytest.fixture
    def validator(self, directory: InMemoryLoanDirectory, clock: SimulationClock) -> BatchValidator:
        return BatchValidator(BatchConfig(), directory, clock)

    def _errors(self, validator: BatchValidator, row: str) -> list[str]:
        batch = validator.validate_batch(parse_batch(_csv(row), "f.csv"))
        return batch.records[0].validation_errors

    def test_ten_records_two_bad_routing_numbers(self, validator: BatchValidator) -> None:
        batch = validator.validate_batch(parse_batch(_ten_rows_two_bad_routing(), "f.csv"))

        assert batch.status == BatchStatus.VALIDATED
        assert batch.valid_records == 8
        assert batch.invalid_records == 2
        assert batch.validation_summary.invalid_payment_methods == 0
        assert batch.validation_summary.missing_required_fields == 2
        assert batch.validation_summary.duplicate_loans == 2
        assert batch.duplicate_loan_numbers == ["LN123456", "LN789012"]
        rejected = batch.records_with_status(BatchRecordStatus.REJECTED)
        assert [r.row_number for r in rejected] == [5, 8]
        assert rejected[0].validation_errors == ["Valid routing number required for ACH/WIRE"]

    def test_valid_record_is_parsed(self, validator: BatchValidator) -> None:
        batch = validator.validate_batch(
            parse_batch(_csv("LN123456,\"1,500\",02/28/2024,ach,1234567890,021000021,R1"), "f.csv")
        )
        record = batch.records[0]
        assert record.status == BatchRecordStatus.VALIDATED
        assert record.amount == Decimal("1500.00")
        assert record.payment_date == datetime(2024, 2, 28).date()
        assert record.payment_method == "ACH"

    def test_missing_fields(self, validator: BatchValidator) -> None:
        errors = self._errors(validator, ",,,CHECK,,,")
        assert "Missing required field: loan_number" in errors
        assert "Missing required field: payment_amount" in errors
        assert "Missing required field: payment_date" in errors

    def test_invalid_loan_number(self, validator: BatchValidator) -> None:
        assert self._errors(validator, "LN1,100.00,2024-02-28,CHECK,,,") == ["Invalid loan number"]
        assert self._errors(validator, "LN 12345,100.00,2024-02-28,CHECK,,,") == ["Invalid loan number"]

    @pytest.mark.parametrize("amount", ["-50.00", "0", "abc", "2500000.00"])
    def test_invalid_amount(self, validator: BatchValidator, amount: str) -> None:
        assert self._errors(validator, f"LN123456,{amount},2024-02-28,CHECK,,,") == [
            "Invalid payment amount"
        ]

    @pytest.mark.parametrize("amount", ["100.005", "99.999", "1500.0001"])
    def test_sub_cent_amount_rejected(self, validator: BatchValidator, amount: str) -> None:
        batch = validator.validate_batch(
            parse_batch(_csv(f"LN123456,{amount},2024-02-28,CHECK,,,R1"), "f.csv")
        )

        record = batch.records[0]
        assert record.status == BatchRecordStatus.REJECTED
        assert record.validation_errors == ["Invalid payment amount"]
        assert record.amount is None
        assert batch.validation_summary.invalid_amounts == 1

    def test_whole_cent_amount_keeps_value(self, validator: BatchValidator) -> None:
        errors = self._errors(validator, "LN123456,100.50,2024-02-28,CHECK,,,R1")
        assert errors == []

    @pytest.mark.parametrize("raw_date", ["not-a-date", "2024-03-31", "2024-13-01"])
    def test_invalid_date(self, validator: BatchValidator, raw_date: str) -> None:
        assert self._errors(validator, f"LN123456,100.00,{raw_date},CHECK,,,") == [
            "Invalid payment date"
        ]

    def test_today_is_allowed(self, validator: BatchValidator) -> None:
        assert self._errors(validator, "LN123456,100.00,2024-03-01,CHECK,,,") == []

    def test_invalid_method(self, validator: BatchValidator) -> None:
        batch = validator.validate_batch(parse_batch(_csv("LN123456,100.00,2024-02-28,BITCOIN,,,"), "f.csv"))
        assert batch.records[0].validation_errors == ["Invalid payment method"]
        assert batch.validation_summary.invalid_payment_methods == 1

    def test_bank_details_required(self, validator: BatchValidator) -> None:
        errors = self._errors(validator, "LN123456,100.00,2024-02-28,WIRE,12,,")
        assert errors == [
            "Account number required for ACH/WIRE",
            "Valid routing number required for ACH/WIRE",
        ]

    def test_loan_not_found(self, validator: BatchValidator) -> None:
        batch = validator.validate_batch(parse_batch(_csv("LN000001,100.00,2024-02-28,CHECK,,,"), "f.csv"))
        assert batch.records[0].validation_errors == ["Loan not found in system"]
        assert batch.records[0].error_categories == [ValidationCategory.LOAN_NOT_FOUND]
        assert batch.validation_summary.loan_not_found == 1

    def test_multiple_errors_collected(self, validator: BatchValidator) -> None:
        errors = self._errors(validator, "LN1,abc,not-a-date,BITCOIN,,,")
        assert len(errors) == 4

    def test_one_bad_row_does_not_stop_validation(self, validator: BatchValidator) -> None:
        batch = validator.validate_batch(
            parse_batch(
                _csv(
                    "LN123456,100.00,2024-02-28,CHECK,,,",
                    "garbage",
                    "LN789012,100.00,2024-02-28,CHECK,,,",
                ),
                "f.csv",
            )
        )
        assert [r.status for r in batch.records] == [
            BatchRecordStatus.VALIDATED,
            BatchRecordStatus.REJECTED,
            BatchRecordStatus.VALIDATED,
        ]

    def test_duplicates_rejected_when_configured(
        self, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        validator = BatchValidator(BatchConfig(reject_duplicates=True), directory, clock)
        batch = validator.validate_batch(
            parse_batch(
                _csv("LN123456,100.00,2024-02-28,CHECK,,,", "LN123456,200.00,2024-02-28,CHECK,,,"),
                "f.csv",
            )
        )
        assert batch.valid_records == 0
        assert batch.records[0].validation_errors == ["Duplicate loan number in batch"]


def _validated_batch(
    store: RecoveryDataStore,
    directory: InMemoryLoanDirectory,
    clock: SimulationClock,
    content: str,
) -> PaymentBatch:
    batch = parse_batch(content, "payments.csv", uploaded_at=clock())
    store.add_batch(batch)
    return BatchValidator(BatchConfig(), directory, clock).validate_batch(batch)


def _valid_rows(count: int) -> str:
    return _csv(
        *(f"LN123456,{100 + i}.00,2024-02-28,CHECK,,,REF{i:03d}" for i in range(count))
    )


class HookedPaymentService(ScriptedPaymentService):
    """Calls ``hook`` just before answering the n-th submission."""

    def __init__(self, at: int, hook) -> None:
        super().__init__()
        self.at = at
        self.hook = hook

    def submit(self, loan_id, amount, method, account_details=None) -> SubmissionResult:
        result = super().submit(loan_id, amount, method, account_details)
        if len(self.submissions) == self.at:
            self.hook()
        return result


class OverlapTracker(ScriptedPaymentService):
    """Tracks the largest number of overlapping submissions."""

    def __init__(self) -> None:
        super().__init__()
        self.active = 0
        self.peak = 0
        self.lock = threading.Lock()

    def submit(self, loan_id, amount, method, account_details=None) -> SubmissionResult:
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.05)
        with self.lock:
            self.active -= 1
        return super().submit(loan_id, amount, method, account_details)


class TestBatchExecutor:
    """Tests for executing validated batches."""

    def test_only_validated_records_submitted(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _ten_rows_two_bad_routing())
        service = ScriptedPaymentService()
        executor = BatchExecutor(store, service, loan_directory=directory, clock=clock)

        result = executor.run(batch.batch_id)

        assert len(service.submissions) == 8
        assert result.status == BatchStatus.COMPLETED
        assert result.completed_at == clock()
        assert result.processed_records == 8
        assert result.processing_stats.successful_payments == 8
        assert result.processing_stats.total_amount_processed == Decimal("16000.00")
        assert len(result.records_with_status(BatchRecordStatus.REJECTED)) == 2

    def test_successful_record_result(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(
            store, directory, clock, _csv("LN123456,1500.00,2024-02-28,ACH,1234567890,021000021,R1")
        )
        service = ScriptedPaymentService()
        BatchExecutor(store, service, loan_directory=directory, clock=clock).run(batch.batch_id)

        record = batch.records[0]
        assert record.status == BatchRecordStatus.COMPLETED
        assert service.submissions == [("loan-test-001", Decimal("1500.00"), "ACH")]
        result = record.processing_result
        assert result.transaction_id == "TXN-000001"
        assert result.principal_applied + result.interest_applied + result.fees_applied == Decimal("1500.00")
        assert result.remaining_balance == Decimal("148500.00")

    def test_failed_submissions(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(3))
        service = ScriptedPaymentService(
            [SubmissionResult.succeeded("TXN-1"), SubmissionResult.failed("NSF")]
        )
        result = BatchExecutor(store, service, loan_directory=directory, clock=clock).run(batch.batch_id)

        assert result.status == BatchStatus.COMPLETED
        assert result.processing_stats.successful_payments == 2
        assert result.processing_stats.failed_payments == 1
        failed = result.records[1]
        assert failed.status == BatchRecordStatus.FAILED
        assert failed.validation_errors == ["Payment failed: NSF"]

    def test_service_exception_fails_record(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        class Offline:
            def submit(self, loan_id, amount, method, account_details=None) -> SubmissionResult:
                raise ConnectionError("offline")

        batch = _validated_batch(store, directory, clock, _valid_rows(2))
        result = BatchExecutor(store, Offline(), loan_directory=directory, clock=clock).run(batch.batch_id)

        assert result.processing_stats.failed_payments == 2
        assert "Payment service error: offline" in result.records[0].validation_errors[0]

    def test_run_requires_validated_batch(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = parse_batch(TEMPLATE_CSV, "payments.csv")
        store.add_batch(batch)
        executor = BatchExecutor(store, ScriptedPaymentService(), clock=clock)

        with pytest.raises(InvalidEntityStateError):
            executor.run(batch.batch_id)

    def test_pause_and_resume(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(8))
        holder: dict[str, BatchExecutor] = {}
        service = HookedPaymentService(3, lambda: holder["executor"].pause(batch.batch_id))
        executor = BatchExecutor(store, service, loan_directory=directory, clock=clock)
        holder["executor"] = executor

        paused = executor.run(batch.batch_id)

        assert paused.status == BatchStatus.PAUSED
        assert paused.processed_records == 3
        assert len(paused.records_with_status(BatchRecordStatus.VALIDATED)) == 5
        assert paused.completed_at is None

        resumed = executor.resume(batch.batch_id, background=False)

        assert resumed.status == BatchStatus.COMPLETED
        assert resumed.processed_records == 8
        assert len(service.submissions) == 8
        assert len({amount for _, amount, _ in service.submissions}) == 8

    def test_pause_on_first_submission(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(5))
        holder: dict[str, BatchExecutor] = {}
        service = HookedPaymentService(1, lambda: holder["executor"].pause(batch.batch_id))
        executor = BatchExecutor(store, service, loan_directory=directory, clock=clock)
        holder["executor"] = executor

        paused = executor.run(batch.batch_id)

        assert paused.status == BatchStatus.PAUSED
        assert len(service.submissions) == 1
        assert len(paused.records_with_status(BatchRecordStatus.COMPLETED)) == 1
        assert len(paused.records_with_status(BatchRecordStatus.VALIDATED)) == 4

        # A resumed run starts with the pause flag cleared
        resumed = executor.resume(batch.batch_id, background=False)
        assert resumed.status == BatchStatus.COMPLETED
        assert len(service.submissions) == 5

    def test_pause_requires_processing(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(1))
        executor = BatchExecutor(store, ScriptedPaymentService(), clock=clock)

        with pytest.raises(InvalidEntityStateError):
            executor.pause(batch.batch_id)
        with pytest.raises(InvalidEntityStateError):
            executor.resume(batch.batch_id)

    def test_cancel_while_processing(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(6))
        holder: dict[str, BatchExecutor] = {}
        service = HookedPaymentService(2, lambda: holder["executor"].cancel(batch.batch_id))
        executor = BatchExecutor(store, service, loan_directory=directory, clock=clock)
        holder["executor"] = executor

        result = executor.run(batch.batch_id)

        assert result.status == BatchStatus.CANCELLED
        assert result.processed_records == 2
        assert len(service.submissions) == 2
        with pytest.raises(InvalidEntityStateError):
            executor.cancel(batch.batch_id)
        with pytest.raises(InvalidEntityStateError):
            executor.run(batch.batch_id)

    def test_cancel_before_start(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(2))
        service = ScriptedPaymentService()
        executor = BatchExecutor(store, service, clock=clock)

        assert executor.cancel(batch.batch_id).status == BatchStatus.CANCELLED
        assert service.submissions == []

    def test_concurrent_workers(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(8))
        service = OverlapTracker()
        executor = BatchExecutor(
            store, service, loan_directory=directory, config=BatchConfig(max_workers=4), clock=clock
        )

        result = executor.run(batch.batch_id)

        assert result.status == BatchStatus.COMPLETED
        assert result.processed_records == 8
        assert len(service.submissions) == 8
        assert service.peak > 1
        assert all(r.status == BatchRecordStatus.COMPLETED for r in result.records)

    def test_background_run(
        self, store: RecoveryDataStore, directory: InMemoryLoanDirectory, clock: SimulationClock
    ) -> None:
        batch = _validated_batch(store, directory, clock, _valid_rows(4))
        executor = BatchExecutor(store, ScriptedPaymentService(), loan_directory=directory, clock=clock)

        executor.start(batch.batch_id)
        result = executor.wait(batch.batch_id, timeout=5)

        assert result.status == BatchStatus.COMPLETED
        assert result.processed_records == 4
