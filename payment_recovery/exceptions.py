"""Custom exception hierarchy for payment-recovery."""


class RecoveryEngineError(Exception):
    """Base exception for all payment-recovery errors."""


class EntityNotFoundError(RecoveryEngineError):
    """Raised when a referenced entity does not exist."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when an entity references another entity that is missing."""


class PolicyNotFoundError(EntityNotFoundError):
    """Raised when a retry policy id is not registered."""


class InvalidEntityStateError(RecoveryEngineError):
    """Raised when an entity is in an invalid state for the operation."""


class ConfigurationError(RecoveryEngineError):
    """Raised when configuration is invalid or missing."""


class AllocationError(RecoveryEngineError):
    """Raised when a payment allocation does not sum to the payment amount."""


class BatchParseError(RecoveryEngineError):
    """Raised when a batch file cannot be parsed at all."""


class SinkError(RecoveryEngineError):
    """Raised when a sink operation fails."""
