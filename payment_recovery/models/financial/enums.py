"""Enumeration types for payment recovery entities."""

from enum import Enum


class PaymentMethod(str, Enum):
    ACH = "ACH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    WIRE = "WIRE"
    CASH = "CASH"


class FailureReason(str, Enum):
    """Failure codes reported by the payment-application service."""

    NSF = "NSF"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    ACCOUNT_CLOSED = "ACCOUNT_CLOSED"
    CARD_DECLINED = "CARD_DECLINED"
    EXPIRED_CARD = "EXPIRED_CARD"
    INVALID_CARD = "INVALID_CARD"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    SERVICE_ERROR = "SERVICE_ERROR"
    MAX_RETRIES = "MAX_RETRIES"


class AttemptStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    ESCALATED = "ESCALATED"


class FailureQueueStatus(str, Enum):
    ACTIVE_RETRY = "ACTIVE_RETRY"
    EXHAUSTED = "EXHAUSTED"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


class SuspenseStatus(str, Enum):
    UNMATCHED = "UNMATCHED"
    RESEARCHING = "RESEARCHING"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    MATCHED = "MATCHED"
    REJECTED = "REJECTED"
    REFUNDED = "REFUNDED"


class SuspenseReason(str, Enum):
    UNKNOWN_CUSTOMER = "UNKNOWN_CUSTOMER"
    INSUFFICIENT_INFO = "INSUFFICIENT_INFO"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
    OVERPAYMENT = "OVERPAYMENT"
    LOAN_CLOSED = "LOAN_CLOSED"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    OTHER = "OTHER"


class MatchTier(str, Enum):
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"


class BatchRecordStatus(str, Enum):
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    VALIDATED = "VALIDATED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"


class BatchStatus(str, Enum):
    UPLOADED = "UPLOADED"
    VALIDATING = "VALIDATING"
    VALIDATED = "VALIDATED"
    PROCESSING = "PROCESSING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class ValidationCategory(str, Enum):
    """Reporting bucket for a batch validation error."""

    DUPLICATE_LOANS = "DUPLICATE_LOANS"
    INVALID_AMOUNTS = "INVALID_AMOUNTS"
    INVALID_DATES = "INVALID_DATES"
    INVALID_PAYMENT_METHODS = "INVALID_PAYMENT_METHODS"
    MISSING_REQUIRED_FIELDS = "MISSING_REQUIRED_FIELDS"
    LOAN_NOT_FOUND = "LOAN_NOT_FOUND"
    INVALID_LOAN_NUMBER = "INVALID_LOAN_NUMBER"
