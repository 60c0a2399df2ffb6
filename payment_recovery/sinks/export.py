"""Export of batch processing results."""

import logging
from pathlib import Path
from typing import Any

from payment_recovery.models.financial import BatchRecord, PaymentBatch
from payment_recovery.sinks.csv_file import CsvFileSink
from payment_recovery.sinks.json_file import JsonFileSink
from payment_recovery.sinks.serialization import to_dict

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")


def result_row(batch: PaymentBatch, record: BatchRecord) -> dict[str, Any]:
    """Flatten one batch record and its outcome into an export row."""
    result = record.processing_result
    return {
        "batch_id": batch.batch_id,
        "record_id": record.record_id,
        "row_number": record.row_number,
        "loan_number": record.loan_number,
        "payment_amount": record.amount if record.amount is not None else record.raw_amount,
        "payment_date": record.payment_date or record.raw_payment_date,
        "payment_method": record.payment_method,
        "customer_reference": record.customer_reference,
        "status": record.status,
        "transaction_id": result.transaction_id if result else None,
        "principal_applied": result.principal_applied if result else None,
        "interest_applied": result.interest_applied if result else None,
        "fees_applied": result.fees_applied if result else None,
        "remaining_balance": result.remaining_balance if result else None,
        "processing_ms": round(result.processing_ms, 3) if result and result.processing_ms else None,
        "errors": "; ".join(record.validation_errors),
    }


def export_batch_results(
    batch: PaymentBatch,
    output_dir: str | Path,
    fmt: str = "csv",
    pretty: bool = False,
) -> Path:
    """Write per-record results of a batch and return the file path.

    CSV holds one row per record; JSON holds the batch summary with the
    same rows nested under ``records``.
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")

    rows = [result_row(batch, record) for record in batch.records]
    name = f"{batch.batch_id}_results"

    if fmt == "csv":
        path = CsvFileSink(output_dir).write(name, rows)
    else:
        summary = {
            "batch_id": batch.batch_id,
            "file_name": batch.file_name,
            "status": batch.status,
            "record_count": batch.record_count,
            "valid_records": batch.valid_records,
            "invalid_records": batch.invalid_records,
            "processed_records": batch.processed_records,
            "validation_summary": batch.validation_summary,
            "processing_stats": batch.processing_stats,
            "records": rows,
        }
        path = JsonFileSink(output_dir, pretty=pretty).write(name, [to_dict(summary)])

    logger.info("Exported %d results for batch %s to %s", len(rows), batch.batch_id, path)
    return path
