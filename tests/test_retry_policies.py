"""Tests for retry policies, backoff and the attempt state machine."""

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from payment_recovery.exceptions import (
    ConfigurationError,
    InvalidEntityStateError,
    PolicyNotFoundError,
)
from payment_recovery.models.financial import (
    AttemptStatus,
    PaymentMethod,
    RetryPolicy,
)
from payment_recovery.retry import (
    AttemptStateMachine,
    RetryPolicyRegistry,
    default_policies,
    retry_delay,
    validate_policy,
)
from payment_recovery.services.contracts import SubmissionResult

NOW = datetime(2024, 3, 1, 9, 0, 0)


def _policy(**kwargs) -> RetryPolicy:
    defaults = dict(
        policy_id="custom",
        name="Custom",
        intervals=[timedelta(days=3), timedelta(days=7), timedelta(days=14)],
        max_attempts=3,
        payment_methods=frozenset({"ACH"}),
        failure_reasons=frozenset({"NSF"}),
    )
    defaults.update(kwargs)
    return RetryPolicy(**defaults)


class TestDefaultPolicies:
    def test_three_policies(self) -> None:
        ids = [p.policy_id for p in default_policies()]
        assert ids == ["ach_nsf", "card_decline", "network_error"]

    def test_all_defaults_are_valid(self) -> None:
        for policy in default_policies():
            validate_policy(policy)


class TestValidatePolicy:
    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_policy(_policy(max_attempts=0))

    def test_rejects_short_max_attempts(self) -> None:
        with pytest.raises(ConfigurationError, match="shorter than the interval sequence"):
            validate_policy(_policy(max_attempts=2))

    def test_rejects_negative_interval(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_policy(_policy(intervals=[timedelta(days=-1)], max_attempts=1))

    def test_rejects_shrinking_multiplier(self) -> None:
        with pytest.raises(ConfigurationError):
            validate_policy(_policy(backoff_multiplier=Decimal("0.5")))


class TestRetryPolicyRegistry:
    """Tests for policy lookup and replacement."""

    def test_select_first_applicable(self, registry: RetryPolicyRegistry) -> None:
        assert registry.select("ACH", "NSF").policy_id == "ach_nsf"
        assert registry.select(PaymentMethod.CARD, "EXPIRED_CARD").policy_id == "card_decline"
        assert registry.select("BANK_TRANSFER", "TIMEOUT").policy_id == "network_error"
        assert registry.select("CHECK", "NSF") is None

    def test_disabled_policy_skipped(self, registry: RetryPolicyRegistry) -> None:
        registry.set_enabled("ach_nsf", False)
        assert registry.select("ACH", "NSF") is None
        assert registry.select("ACH", "NETWORK_ERROR").policy_id == "network_error"

    def test_register_duplicate_raises(self, registry: RetryPolicyRegistry) -> None:
        with pytest.raises(ConfigurationError):
            registry.register(default_policies()[0])

    def test_get_unknown_raises(self, registry: RetryPolicyRegistry) -> None:
        with pytest.raises(PolicyNotFoundError):
            registry.get("nope")
        assert registry.find("nope") is None

    def test_update_and_remove(self, registry: RetryPolicyRegistry) -> None:
        updated = replace(registry.get("ach_nsf"), notify_on_failure=False)
        registry.update(updated)
        assert registry.get("ach_nsf").notify_on_failure is False

        registry.remove("ach_nsf")
        assert "ach_nsf" not in registry
        with pytest.raises(PolicyNotFoundError):
            registry.update(updated)

    def test_empty_registry(self) -> None:
        assert len(RetryPolicyRegistry([])) == 0


class TestRetryDelay:
    """Tests for the backoff schedule."""

    def test_explicit_intervals(self) -> None:
        policy = _policy()
        assert retry_delay(policy, 1) == timedelta(days=3)
        assert retry_delay(policy, 2) == timedelta(days=7)
        assert retry_delay(policy, 3) == timedelta(days=14)

    def test_beyond_sequence_scales_last_interval(self) -> None:
        policy = _policy(
            intervals=[timedelta(hours=1), timedelta(hours=2)],
            max_attempts=6,
            backoff_multiplier=Decimal("2.0"),
        )
        assert retry_delay(policy, 3) == timedelta(hours=4)
        assert retry_delay(policy, 4) == timedelta(hours=8)
        assert retry_delay(policy, 5) == timedelta(hours=16)

    def test_delays_never_shrink(self) -> None:
        for policy in default_policies():
            delays = [retry_delay(policy, n) for n in range(1, 10)]
            assert delays == sorted(delays)

    def test_missing_policy_uses_default(self) -> None:
        assert retry_delay(None, 2) == timedelta(days=7)
        assert retry_delay(None, 2, timedelta(hours=1)) == timedelta(hours=1)


class TestAttemptStateMachine:
    """Tests for attempt transitions."""

    @pytest.fixture
    def machine(self, registry: RetryPolicyRegistry) -> AttemptStateMachine:
        return AttemptStateMachine(registry)

    def _processing(self, machine: AttemptStateMachine, policy_id: str = "ach_nsf", max_retries: int = 3):
        attempt = machine.new_attempt(
            loan_id="loan-1",
            original_payment_id="pmt-1",
            amount=Decimal("1500.00"),
            payment_method=PaymentMethod.ACH,
            policy_id=policy_id,
            max_retries=max_retries,
            scheduled_for=NOW,
            failure_reason="NSF",
        )
        machine.transition(attempt, AttemptStatus.PROCESSING)
        return attempt

    def test_new_attempt(self, machine: AttemptStateMachine) -> None:
        attempt = machine.new_attempt(
            "loan-1", "pmt-1", Decimal("10.00"), PaymentMethod.ACH, "ach_nsf", 3, NOW
        )
        assert attempt.attempt_number == 1
        assert attempt.status == AttemptStatus.PENDING
        assert attempt.due_at == NOW

    def test_illegal_transition_raises(self, machine: AttemptStateMachine) -> None:
        attempt = self._processing(machine)
        machine.record_success(attempt, SubmissionResult.succeeded("TXN-1"), NOW)
        with pytest.raises(InvalidEntityStateError):
            machine.transition(attempt, AttemptStatus.PENDING)
        with pytest.raises(InvalidEntityStateError):
            machine.cancel(attempt)

    def test_success(self, machine: AttemptStateMachine) -> None:
        attempt = self._processing(machine)
        policy = machine.record_success(attempt, SubmissionResult.succeeded("TXN-1"), NOW)

        assert attempt.status == AttemptStatus.SUCCESS
        assert attempt.transaction_id == "TXN-1"
        assert attempt.processed_at == NOW
        assert policy.policy_id == "ach_nsf"

    def test_failure_spawns_successor(self, machine: AttemptStateMachine) -> None:
        attempt = self._processing(machine)
        outcome = machine.record_failure(attempt, SubmissionResult.failed("NSF"), NOW)

        assert attempt.status == AttemptStatus.FAILED
        assert outcome.escalated is False
        successor = outcome.successor
        assert successor.attempt_number == 2
        assert successor.status == AttemptStatus.PENDING
        assert successor.next_retry_at == NOW + timedelta(days=3)
        assert successor.max_retries == 3
        assert successor.metadata["previous_attempt_id"] == attempt.attempt_id

    def test_final_failure_escalates(self, machine: AttemptStateMachine) -> None:
        attempt = self._processing(machine, max_retries=1)
        outcome = machine.record_failure(attempt, SubmissionResult.failed("NSF"), NOW)

        assert attempt.status == AttemptStatus.ESCALATED
        assert attempt.escalated is True
        assert outcome.successor is None
        assert outcome.enqueue_failure is True

    def test_missing_policy_falls_back(self, machine: AttemptStateMachine) -> None:
        attempt = self._processing(machine, policy_id="deleted")
        outcome = machine.record_failure(attempt, SubmissionResult.failed("NSF"), NOW)

        assert attempt.metadata["policy_missing"] is True
        assert outcome.successor.next_retry_at == NOW + timedelta(days=7)

    def test_missing_policy_escalation_follows_setting(self, registry: RetryPolicyRegistry) -> None:
        machine = AttemptStateMachine(registry, escalate_on_missing_policy=False)
        attempt = self._processing(machine, policy_id="deleted", max_retries=1)
        outcome = machine.record_failure(attempt, SubmissionResult.failed("NSF"), NOW)

        assert outcome.escalated is True
        assert outcome.enqueue_failure is False

    def test_cancel_pending(self, machine: AttemptStateMachine) -> None:
        attempt = machine.new_attempt(
            "loan-1", "pmt-1", Decimal("10.00"), PaymentMethod.ACH, "ach_nsf", 3, NOW
        )
        machine.cancel(attempt, "Borrower paid by phone")
        assert attempt.status == AttemptStatus.CANCELLED
        assert attempt.metadata["cancel_reason"] == "Borrower paid by phone"
