"""Bulk payment file parsing."""

from __future__ import annotations

import csv
import io
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

from payment_recovery.exceptions import BatchParseError
from payment_recovery.models.financial import BatchRecord, PaymentBatch

REQUIRED_FIELDS = ("loan_number", "payment_amount", "payment_date", "payment_method")
OPTIONAL_FIELDS = ("account_number", "routing_number", "customer_reference")
ALL_FIELDS = REQUIRED_FIELDS + OPTIONAL_FIELDS

# "loannumber", "Loan Number" and "loan_number" all name the same column
_HEADER_ALIASES = {name.replace("_", ""): name for name in ALL_FIELDS}

TEMPLATE_CSV = (
    "loan_number,payment_amount,payment_date,payment_method,"
    "account_number,routing_number,customer_reference\n"
    "LN123456,1500.00,2024-03-15,ACH,1234567890,021000021,REF001\n"
    "LN789012,2500.00,2024-03-15,WIRE,9876543210,031000503,REF002\n"
)


def canonical_header(header: str) -> str | None:
    """Map a raw column header to its field name, or None if unknown."""
    compact = "".join(header.strip().lower().replace("-", "_").split()).replace("_", "")
    return _HEADER_ALIASES.get(compact)


def parse_rows(text: str) -> list[dict[str, str]]:
    """Parse CSV text into ordered field-sets keyed by canonical field name.

    Every field-set carries every known field; values missing from a short
    row are empty strings so validation can reject the row on its own.

    Raises
    ------
    BatchParseError
        If the file is empty or lacks a required column.
    """
    reader = csv.reader(io.StringIO(text))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        raise BatchParseError("Batch file is empty")

    headers = [canonical_header(h) for h in rows[0]]
    missing = [name for name in REQUIRED_FIELDS if name not in headers]
    if missing:
        raise BatchParseError(f"Missing required columns: {', '.join(missing)}")

    field_sets = []
    for values in rows[1:]:
        record = {name: "" for name in ALL_FIELDS}
        for header, value in zip(headers, values):
            if header and not record[header]:
                record[header] = value.strip().strip('"')
        field_sets.append(record)
    return field_sets


def read_batch_file(path: str | Path) -> str:
    """Read a batch file, tolerating a UTF-8 byte order mark."""
    try:
        return Path(path).read_text(encoding="utf-8-sig")
    except OSError as e:
        raise BatchParseError(f"Cannot read batch file {path}: {e}") from e


def _declared_amount(raw: str) -> Decimal:
    try:
        value = Decimal(raw.replace(",", "").replace("$", ""))
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    return value if value.is_finite() and value > 0 else Decimal("0.00")


def build_batch(
    field_sets: list[dict[str, str]],
    file_name: str,
    uploaded_at: datetime | None = None,
    batch_id: str | None = None,
) -> PaymentBatch:
    """Create an UPLOADED batch with one PENDING record per field-set."""
    records = [
        BatchRecord(
            record_id=f"REC-{index:05d}",
            row_number=index + 1,  # header is row 1
            loan_number=fields.get("loan_number", ""),
            raw_amount=fields.get("payment_amount", ""),
            raw_payment_date=fields.get("payment_date", ""),
            payment_method=fields.get("payment_method", "").upper(),
            account_number=fields.get("account_number", ""),
            routing_number=fields.get("routing_number", ""),
            customer_reference=fields.get("customer_reference", ""),
        )
        for index, fields in enumerate(field_sets, start=1)
    ]
    return PaymentBatch(
        batch_id=batch_id or f"BATCH-{uuid.uuid4().hex[:12].upper()}",
        file_name=file_name,
        uploaded_at=uploaded_at or datetime.now(),
        record_count=len(records),
        total_amount=sum((_declared_amount(r.raw_amount) for r in records), Decimal("0.00")),
        records=records,
    )


def parse_batch(
    text: str,
    file_name: str,
    uploaded_at: datetime | None = None,
) -> PaymentBatch:
    """Parse CSV text straight into a batch."""
    return build_batch(parse_rows(text), file_name, uploaded_at)
