"""Retry policies, attempt lifecycle, scheduling and escalation."""

from payment_recovery.retry.escalation import FailureQueue
from payment_recovery.retry.registry import RetryPolicyRegistry, default_policies, validate_policy
from payment_recovery.retry.scheduler import RetryScheduler
from payment_recovery.retry.state_machine import (
    ALLOWED_TRANSITIONS,
    DEFAULT_RETRY_INTERVAL,
    NO_POLICY_ID,
    AttemptStateMachine,
    FailureOutcome,
    retry_delay,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DEFAULT_RETRY_INTERVAL",
    "NO_POLICY_ID",
    "AttemptStateMachine",
    "FailureOutcome",
    "FailureQueue",
    "RetryPolicyRegistry",
    "RetryScheduler",
    "default_policies",
    "retry_delay",
    "validate_policy",
]
