"""Registry of named retry policies."""

import logging
import threading
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

from payment_recovery.exceptions import ConfigurationError, PolicyNotFoundError
from payment_recovery.models.financial import RetryPolicy
from payment_recovery.models.financial.enums import FailureReason, PaymentMethod

logger = logging.getLogger(__name__)


def default_policies() -> list[RetryPolicy]:
    """Built-in policies for common failure families."""
    return [
        RetryPolicy(
            policy_id="ach_nsf",
            name="ACH NSF Retry",
            description="Retry failed ACH payments due to insufficient funds",
            intervals=[timedelta(days=3), timedelta(days=7), timedelta(days=14)],
            max_attempts=3,
            backoff_multiplier=Decimal("1.0"),
            escalate_after_max_retries=True,
            notify_on_failure=True,
            payment_methods=frozenset({PaymentMethod.ACH.value}),
            failure_reasons=frozenset(
                {
                    FailureReason.NSF.value,
                    FailureReason.INSUFFICIENT_FUNDS.value,
                    FailureReason.ACCOUNT_CLOSED.value,
                }
            ),
        ),
        RetryPolicy(
            policy_id="card_decline",
            name="Card Decline Retry",
            description="Retry declined card payments",
            intervals=[timedelta(days=1), timedelta(days=3)],
            max_attempts=2,
            backoff_multiplier=Decimal("1.0"),
            escalate_after_max_retries=True,
            notify_on_failure=True,
            payment_methods=frozenset({PaymentMethod.CARD.value}),
            failure_reasons=frozenset(
                {
                    FailureReason.CARD_DECLINED.value,
                    FailureReason.EXPIRED_CARD.value,
                    FailureReason.INVALID_CARD.value,
                }
            ),
        ),
        RetryPolicy(
            policy_id="network_error",
            name="Network Error Retry",
            description="Retry payments that failed due to network issues",
            intervals=[
                timedelta(hours=2, minutes=24),
                timedelta(hours=4, minutes=48),
                timedelta(hours=12),
                timedelta(days=1),
                timedelta(days=2),
            ],
            max_attempts=5,
            backoff_multiplier=Decimal("2.0"),
            escalate_after_max_retries=False,
            notify_on_failure=False,
            payment_methods=frozenset(
                {
                    PaymentMethod.ACH.value,
                    PaymentMethod.CARD.value,
                    PaymentMethod.BANK_TRANSFER.value,
                }
            ),
            failure_reasons=frozenset(
                {
                    FailureReason.NETWORK_ERROR.value,
                    FailureReason.TIMEOUT.value,
                    FailureReason.CONNECTION_FAILED.value,
                }
            ),
        ),
    ]


def validate_policy(policy: RetryPolicy) -> None:
    """Check policy invariants.

    Raises
    ------
    ConfigurationError
        If the policy can never produce a well-defined schedule.
    """
    if not policy.policy_id:
        raise ConfigurationError("Retry policy requires an id")
    if policy.max_attempts < 1:
        raise ConfigurationError(f"Policy {policy.policy_id}: max_attempts must be >= 1")
    if policy.max_attempts < len(policy.intervals):
        raise ConfigurationError(
            f"Policy {policy.policy_id}: max_attempts ({policy.max_attempts}) "
            f"is shorter than the interval sequence ({len(policy.intervals)})"
        )
    if any(interval < timedelta(0) for interval in policy.intervals):
        raise ConfigurationError(f"Policy {policy.policy_id}: intervals must be non-negative")
    if policy.backoff_multiplier < 1:
        raise ConfigurationError(f"Policy {policy.policy_id}: backoff_multiplier must be >= 1")


class RetryPolicyRegistry:
    """Thread-safe registry of retry policies, looked up by id or applicability.

    Parameters
    ----------
    policies : list[RetryPolicy] | None
        Initial policies. ``None`` loads :func:`default_policies`.
    """

    def __init__(self, policies: list[RetryPolicy] | None = None) -> None:
        self._policies: dict[str, RetryPolicy] = {}
        self._lock = threading.Lock()
        for policy in default_policies() if policies is None else policies:
            self.register(policy)

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, policy_id: object) -> bool:
        return policy_id in self._policies

    def register(self, policy: RetryPolicy) -> RetryPolicy:
        """Add a new policy."""
        validate_policy(policy)
        with self._lock:
            if policy.policy_id in self._policies:
                raise ConfigurationError(f"Policy {policy.policy_id} already registered")
            self._policies[policy.policy_id] = policy
        logger.debug("Registered retry policy %s", policy.policy_id)
        return policy

    def update(self, policy: RetryPolicy) -> RetryPolicy:
        """Replace an existing policy.

        Attempts already scheduled keep the ``max_retries`` they copied at
        creation; only future interval lookups see the new values.
        """
        validate_policy(policy)
        with self._lock:
            if policy.policy_id not in self._policies:
                raise PolicyNotFoundError(f"Policy {policy.policy_id} not found")
            self._policies[policy.policy_id] = policy
        logger.info("Updated retry policy %s", policy.policy_id)
        return policy

    def set_enabled(self, policy_id: str, enabled: bool) -> RetryPolicy:
        return self.update(replace(self.get(policy_id), enabled=enabled))

    def remove(self, policy_id: str) -> None:
        with self._lock:
            if self._policies.pop(policy_id, None) is None:
                raise PolicyNotFoundError(f"Policy {policy_id} not found")
        logger.info("Removed retry policy %s", policy_id)

    def get(self, policy_id: str) -> RetryPolicy:
        try:
            return self._policies[policy_id]
        except KeyError:
            raise PolicyNotFoundError(f"Policy {policy_id} not found") from None

    def find(self, policy_id: str) -> RetryPolicy | None:
        return self._policies.get(policy_id)

    def policies(self) -> list[RetryPolicy]:
        with self._lock:
            return list(self._policies.values())

    def select(self, payment_method: str, failure_reason: str | None) -> RetryPolicy | None:
        """First enabled policy, in registration order, covering the pair."""
        for policy in self.policies():
            if policy.applies_to(payment_method, failure_reason):
                return policy
        return None
