"""Per-record and cross-record validation of bulk payment batches."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable

from payment_recovery.allocation import is_whole_cents, to_money
from payment_recovery.batch.parser import REQUIRED_FIELDS
from payment_recovery.config import BatchConfig
from payment_recovery.models.financial import (
    BatchRecord,
    BatchRecordStatus,
    BatchStatus,
    PaymentBatch,
    ValidationCategory,
    ValidationSummary,
)
from payment_recovery.services.contracts import LoanDirectory

logger = logging.getLogger(__name__)

LOAN_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%m-%d-%Y")

_SUMMARY_FIELDS = {
    ValidationCategory.INVALID_AMOUNTS: "invalid_amounts",
    ValidationCategory.INVALID_DATES: "invalid_dates",
    ValidationCategory.INVALID_PAYMENT_METHODS: "invalid_payment_methods",
    ValidationCategory.MISSING_REQUIRED_FIELDS: "missing_required_fields",
    ValidationCategory.LOAN_NOT_FOUND: "loan_not_found",
    ValidationCategory.INVALID_LOAN_NUMBER: "invalid_loan_numbers",
}


def parse_amount(raw: str) -> Decimal | None:
    try:
        value = Decimal(raw.strip().replace(",", "").replace("$", ""))
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def parse_payment_date(raw: str) -> date | None:
    value = raw.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def find_duplicate_loans(records: Iterable[BatchRecord]) -> list[str]:
    """Loan references that appear more than once, in first-seen order."""
    counts = Counter(r.loan_number.strip().upper() for r in records if r.loan_number.strip())
    return [ref for ref, count in counts.items() if count > 1]


class BatchValidator:
    """Validate batch records independently, then tally across the batch.

    A bad record is marked REJECTED with its messages and never stops the
    remaining records from being checked.
    """

    def __init__(
        self,
        config: BatchConfig | None = None,
        loan_directory: LoanDirectory | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or BatchConfig()
        self.loan_directory = loan_directory
        self.clock = clock

    def validate_record(
        self,
        record: BatchRecord,
        duplicates: frozenset[str] = frozenset(),
    ) -> BatchRecord:
        record.status = BatchRecordStatus.VALIDATING
        record.validation_errors = []
        record.error_categories = []

        def fail(message: str, category: ValidationCategory) -> None:
            record.validation_errors.append(message)
            if category not in record.error_categories:
                record.error_categories.append(category)

        raw = {
            "loan_number": record.loan_number,
            "payment_amount": record.raw_amount,
            "payment_date": record.raw_payment_date,
            "payment_method": record.payment_method,
        }
        for name in REQUIRED_FIELDS:
            if not raw[name].strip():
                fail(f"Missing required field: {name}", ValidationCategory.MISSING_REQUIRED_FIELDS)

        cfg = self.config
        loan_number = record.loan_number.strip()
        loan_number_ok = len(loan_number) >= cfg.min_loan_number_length and bool(
            LOAN_NUMBER_PATTERN.match(loan_number)
        )
        if loan_number and not loan_number_ok:
            fail("Invalid loan number", ValidationCategory.INVALID_LOAN_NUMBER)

        if record.raw_amount.strip():
            amount = parse_amount(record.raw_amount)
            if (
                amount is None
                or amount <= 0
                or amount > cfg.max_amount
                or not is_whole_cents(amount)
            ):
                fail("Invalid payment amount", ValidationCategory.INVALID_AMOUNTS)
            else:
                record.amount = to_money(amount)

        if record.raw_payment_date.strip():
            payment_date = parse_payment_date(record.raw_payment_date)
            if payment_date is None or payment_date > self.clock().date():
                fail("Invalid payment date", ValidationCategory.INVALID_DATES)
            else:
                record.payment_date = payment_date

        method = record.payment_method.strip().upper()
        record.payment_method = method
        if method and method not in cfg.allowed_methods:
            fail("Invalid payment method", ValidationCategory.INVALID_PAYMENT_METHODS)

        if method in cfg.bank_detail_methods:
            if len(record.account_number.strip()) < cfg.min_account_number_length:
                fail(
                    "Account number required for ACH/WIRE",
                    ValidationCategory.MISSING_REQUIRED_FIELDS,
                )
            routing = record.routing_number.strip()
            if not routing.isdigit() or len(routing) != cfg.routing_number_length:
                fail(
                    "Valid routing number required for ACH/WIRE",
                    ValidationCategory.MISSING_REQUIRED_FIELDS,
                )

        if loan_number_ok and self.loan_directory is not None:
            try:
                loan = self.loan_directory.find_loan(loan_number)
            except Exception:
                logger.exception("Loan lookup failed for batch record %s", record.record_id)
                loan = None
            if loan is None:
                fail("Loan not found in system", ValidationCategory.LOAN_NOT_FOUND)

        if cfg.reject_duplicates and loan_number.upper() in duplicates:
            fail("Duplicate loan number in batch", ValidationCategory.DUPLICATE_LOANS)

        record.status = (
            BatchRecordStatus.REJECTED if record.validation_errors else BatchRecordStatus.VALIDATED
        )
        return record

    def validate_batch(self, batch: PaymentBatch) -> PaymentBatch:
        """Validate every record and compute the batch's validation summary."""
        batch.status = BatchStatus.VALIDATING
        duplicates = find_duplicate_loans(batch.records)
        duplicate_set = frozenset(duplicates)

        for record in batch.records:
            self.validate_record(record, duplicate_set)

        summary = ValidationSummary(duplicate_loans=len(duplicates))
        for record in batch.records:
            for category in record.error_categories:
                attr = _SUMMARY_FIELDS.get(category)
                if attr:
                    setattr(summary, attr, getattr(summary, attr) + 1)

        batch.validation_summary = summary
        batch.duplicate_loan_numbers = duplicates
        batch.valid_records = len(batch.records_with_status(BatchRecordStatus.VALIDATED))
        batch.invalid_records = batch.record_count - batch.valid_records
        batch.status = BatchStatus.VALIDATED

        logger.info(
            "Batch %s validated: %d valid, %d invalid, %d duplicate loan refs",
            batch.batch_id,
            batch.valid_records,
            batch.invalid_records,
            len(duplicates),
        )
        return batch
