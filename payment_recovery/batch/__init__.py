"""Bulk payment batch parsing, validation and execution."""

from payment_recovery.batch.executor import BatchExecutor
from payment_recovery.batch.parser import (
    REQUIRED_FIELDS,
    TEMPLATE_CSV,
    build_batch,
    parse_batch,
    parse_rows,
    read_batch_file,
)
from payment_recovery.batch.validation import BatchValidator, find_duplicate_loans

__all__ = [
    "REQUIRED_FIELDS",
    "TEMPLATE_CSV",
    "BatchExecutor",
    "BatchValidator",
    "build_batch",
    "find_duplicate_loans",
    "parse_batch",
    "parse_rows",
    "read_batch_file",
]
