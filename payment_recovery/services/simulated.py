"""Simulated collaborators for demos and local runs."""

import random
import threading
import time
import uuid
from decimal import Decimal

from payment_recovery.models.financial.enums import FailureReason
from payment_recovery.services.contracts import AccountDetails, SubmissionResult


class SimulatedPaymentService:
    """Payment-application service with a configurable success rate.

    Parameters
    ----------
    success_rate : float
        Probability that a submission succeeds (0.0 to 1.0).
    latency_seconds : float
        Artificial delay per submission.
    seed : int | None
        Random seed for reproducibility.
    failure_reasons : list[str] | None
        Reasons drawn from on failure.
    """

    def __init__(
        self,
        success_rate: float = 0.7,
        latency_seconds: float = 0.0,
        seed: int | None = None,
        failure_reasons: list[str] | None = None,
    ) -> None:
        self.success_rate = success_rate
        self.latency_seconds = latency_seconds
        self.failure_reasons = failure_reasons or [
            FailureReason.NSF.value,
            FailureReason.CARD_DECLINED.value,
            FailureReason.NETWORK_ERROR.value,
        ]
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self.submissions: list[tuple[str, Decimal, str]] = []

    def submit(
        self,
        loan_id: str,
        amount: Decimal,
        method: str,
        account_details: AccountDetails | None = None,
    ) -> SubmissionResult:
        if self.latency_seconds > 0:
            time.sleep(self.latency_seconds)

        with self._lock:
            self.submissions.append((loan_id, amount, method))
            roll = self._rng.random()
            reason = self._rng.choice(self.failure_reasons)

        if roll < self.success_rate:
            return SubmissionResult.succeeded(f"TXN-{uuid.uuid4().hex[:12].upper()}")
        return SubmissionResult.failed(reason)


class ScriptedPaymentService:
    """Payment-application service that replays a fixed list of outcomes.

    Once the script is exhausted every submission succeeds.
    """

    def __init__(self, outcomes: list[SubmissionResult] | None = None) -> None:
        self._outcomes = list(outcomes or [])
        self._lock = threading.Lock()
        self.submissions: list[tuple[str, Decimal, str]] = []

    def submit(
        self,
        loan_id: str,
        amount: Decimal,
        method: str,
        account_details: AccountDetails | None = None,
    ) -> SubmissionResult:
        with self._lock:
            self.submissions.append((loan_id, amount, method))
            if self._outcomes:
                return self._outcomes.pop(0)
            return SubmissionResult.succeeded(f"TXN-{len(self.submissions):06d}")
