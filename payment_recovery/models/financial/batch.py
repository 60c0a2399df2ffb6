"""Bulk payment batch models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from payment_recovery.models.financial.enums import (
    BatchRecordStatus,
    BatchStatus,
    ValidationCategory,
)


@dataclass
class ProcessingResult:
    """Outcome of submitting one batch record."""

    transaction_id: str | None = None
    applied_amount: Decimal | None = None
    principal_applied: Decimal | None = None
    interest_applied: Decimal | None = None
    fees_applied: Decimal | None = None
    remaining_balance: Decimal | None = None
    processing_ms: float | None = None


@dataclass
class BatchRecord:
    """One row of a bulk payment file.

    Raw string fields are kept as submitted; ``amount`` and ``payment_date``
    hold the parsed values once validation succeeds.
    """

    record_id: str
    row_number: int
    loan_number: str
    raw_amount: str
    raw_payment_date: str
    payment_method: str
    account_number: str = ""
    routing_number: str = ""
    customer_reference: str = ""
    amount: Decimal | None = None
    payment_date: date | None = None
    status: BatchRecordStatus = BatchRecordStatus.PENDING
    validation_errors: list[str] = field(default_factory=list)
    error_categories: list[ValidationCategory] = field(default_factory=list)
    processing_result: ProcessingResult | None = None


@dataclass
class ValidationSummary:
    """Per-category tallies of records with validation errors."""

    duplicate_loans: int = 0
    invalid_amounts: int = 0
    invalid_dates: int = 0
    invalid_payment_methods: int = 0
    missing_required_fields: int = 0
    loan_not_found: int = 0
    invalid_loan_numbers: int = 0


@dataclass
class ProcessingStats:
    """Aggregate statistics once a batch finishes executing."""

    successful_payments: int = 0
    failed_payments: int = 0
    total_amount_processed: Decimal = Decimal("0.00")
    avg_processing_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        total = self.successful_payments + self.failed_payments
        return self.successful_payments / total if total > 0 else 0.0


@dataclass
class PaymentBatch:
    """A file-sourced set of payment records processed together."""

    batch_id: str
    file_name: str
    uploaded_at: datetime
    record_count: int
    total_amount: Decimal
    status: BatchStatus = BatchStatus.UPLOADED
    valid_records: int = 0
    invalid_records: int = 0
    processed_records: int = 0
    records: list[BatchRecord] = field(default_factory=list)
    validation_summary: ValidationSummary = field(default_factory=ValidationSummary)
    duplicate_loan_numbers: list[str] = field(default_factory=list)
    processing_stats: ProcessingStats | None = None
    completed_at: datetime | None = None

    def records_with_status(self, *statuses: BatchRecordStatus) -> list[BatchRecord]:
        return [r for r in self.records if r.status in statuses]
