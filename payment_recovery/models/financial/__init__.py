"""Payment recovery domain models."""

from payment_recovery.models.financial.batch import (
    BatchRecord,
    PaymentBatch,
    ProcessingResult,
    ProcessingStats,
    ValidationSummary,
)
from payment_recovery.models.financial.enums import (
    AttemptStatus,
    BatchRecordStatus,
    BatchStatus,
    FailureQueueStatus,
    FailureReason,
    MatchTier,
    PaymentMethod,
    SuspenseReason,
    SuspenseStatus,
    ValidationCategory,
)
from payment_recovery.models.financial.loan import IdentitySignals, LoanSummary
from payment_recovery.models.financial.retry import (
    FailureQueueEntry,
    PaymentAttempt,
    RetryPolicy,
    RetryStatistics,
)
from payment_recovery.models.financial.suspense import (
    Allocation,
    AppliedPayment,
    LoanMatch,
    SuspensePayment,
)

__all__ = [
    "Allocation",
    "AppliedPayment",
    "AttemptStatus",
    "BatchRecord",
    "BatchRecordStatus",
    "BatchStatus",
    "FailureQueueEntry",
    "FailureQueueStatus",
    "FailureReason",
    "IdentitySignals",
    "LoanMatch",
    "LoanSummary",
    "MatchTier",
    "PaymentAttempt",
    "PaymentBatch",
    "PaymentMethod",
    "ProcessingResult",
    "ProcessingStats",
    "RetryPolicy",
    "RetryStatistics",
    "SuspensePayment",
    "SuspenseReason",
    "SuspenseStatus",
    "ValidationCategory",
    "ValidationSummary",
]
