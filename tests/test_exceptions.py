"""Tests for custom exception hierarchy."""

from payment_recovery.exceptions import (
    AllocationError,
    BatchParseError,
    ConfigurationError,
    EntityNotFoundError,
    InvalidEntityStateError,
    PolicyNotFoundError,
    RecoveryEngineError,
    ReferentialIntegrityError,
    SinkError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_recovery_engine_error_is_exception(self) -> None:
        assert isinstance(RecoveryEngineError("test"), Exception)

    def test_entity_not_found_is_recovery_engine_error(self) -> None:
        assert isinstance(EntityNotFoundError("test"), RecoveryEngineError)

    def test_referential_integrity_is_entity_not_found(self) -> None:
        err = ReferentialIntegrityError("test")
        assert isinstance(err, EntityNotFoundError)
        assert isinstance(err, RecoveryEngineError)

    def test_policy_not_found_is_entity_not_found(self) -> None:
        assert isinstance(PolicyNotFoundError("test"), EntityNotFoundError)

    def test_invalid_entity_state_is_recovery_engine_error(self) -> None:
        assert isinstance(InvalidEntityStateError("test"), RecoveryEngineError)

    def test_configuration_error_is_recovery_engine_error(self) -> None:
        assert isinstance(ConfigurationError("test"), RecoveryEngineError)

    def test_allocation_and_parse_errors(self) -> None:
        assert isinstance(AllocationError("test"), RecoveryEngineError)
        assert isinstance(BatchParseError("test"), RecoveryEngineError)

    def test_sink_error_is_recovery_engine_error(self) -> None:
        assert isinstance(SinkError("test"), RecoveryEngineError)

    def test_exception_message(self) -> None:
        err = PolicyNotFoundError("Policy ach_nsf not found")
        assert str(err) == "Policy ach_nsf not found"
