"""End-to-end recovery scenario over generated loans."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta
from typing import Any

from payment_recovery.config import RecoveryConfig
from payment_recovery.engine import RecoveryEngine
from payment_recovery.generators.financial import (
    BatchFileGenerator,
    LoanSummaryGenerator,
    SuspensePaymentGenerator,
)
from payment_recovery.models.financial import FailureReason, PaymentMethod
from payment_recovery.scenarios.clock import SimulationClock
from payment_recovery.services import LoggingNotificationService, SimulatedPaymentService
from payment_recovery.store import InMemoryLoanDirectory

logger = logging.getLogger(__name__)

# Failure mixes the default policies cover
FAILURE_MIX = [
    (PaymentMethod.ACH, FailureReason.NSF),
    (PaymentMethod.ACH, FailureReason.INSUFFICIENT_FUNDS),
    (PaymentMethod.CARD, FailureReason.CARD_DECLINED),
    (PaymentMethod.CARD, FailureReason.EXPIRED_CARD),
    (PaymentMethod.ACH, FailureReason.NETWORK_ERROR),
    (PaymentMethod.BANK_TRANSFER, FailureReason.TIMEOUT),
]


class RecoveryDemoScenario:
    """Run the recovery engine against simulated collaborators.

    This scenario creates:
    - A loan directory of generated loans
    - Failed payments that go through retry scheduling over simulated days
    - Suspense payments, some traceable to loans, with ranked matches
    - A bulk payment batch with a share of invalid rows, validated and executed
    """

    def __init__(
        self,
        num_loans: int = 50,
        num_failures: int = 20,
        num_suspense: int = 15,
        batch_size: int = 25,
        invalid_rate: float = 0.1,
        success_rate: float = 0.6,
        simulate_days: int = 21,
        seed: int | None = None,
        *,
        config: RecoveryConfig | None = None,
    ) -> None:
        """Initialize the scenario.

        Parameters
        ----------
        num_loans : int
            Loans in the directory.
        num_failures : int
            Failed payments reported to the retry scheduler.
        num_suspense : int
            Unidentified payments received into suspense.
        batch_size : int
            Rows in the generated bulk payment file.
        invalid_rate : float
            Share of batch rows corrupted to fail validation.
        success_rate : float
            Probability that the simulated payment service accepts a submission.
        simulate_days : int
            Days of scheduler scans to simulate.
        seed : int | None
            Random seed for reproducibility.
        config : RecoveryConfig | None
            Engine configuration.
        """
        self.num_loans = num_loans
        self.num_failures = num_failures
        self.num_suspense = num_suspense
        self.batch_size = batch_size
        self.invalid_rate = invalid_rate
        self.success_rate = success_rate
        self.simulate_days = simulate_days
        self.seed = seed
        self.config = config or RecoveryConfig()

        if seed is not None:
            random.seed(seed)

        self.clock = SimulationClock(datetime(2024, 3, 1, 9, 0, 0))
        self.directory = InMemoryLoanDirectory()
        self.notifier = LoggingNotificationService()
        self.payment_service = SimulatedPaymentService(success_rate=success_rate, seed=seed)
        self._loan_gen = LoanSummaryGenerator(seed=seed)
        self._suspense_gen = SuspensePaymentGenerator(seed=seed)
        self._batch_gen = BatchFileGenerator(seed=seed)

    def generate(self) -> RecoveryEngine:
        """Run every stage and return the engine holding the results."""
        logger.info(
            "Starting recovery scenario: %d loans, %d failures, %d suspense, batch of %d",
            self.num_loans,
            self.num_failures,
            self.num_suspense,
            self.batch_size,
        )

        loans = self._loan_gen.generate_batch(self.num_loans, as_of=self.clock().date())
        for loan in loans:
            self.directory.add_loan(loan)

        engine = RecoveryEngine(
            self.directory,
            self.payment_service,
            notifier=self.notifier,
            config=self.config,
            clock=self.clock,
        )

        self._run_retries(engine, loans)
        self._run_suspense(engine, loans)
        self._run_batch(engine, loans)
        return engine

    def _run_retries(self, engine: RecoveryEngine, loans: list) -> None:
        for i in range(self.num_failures):
            loan = random.choice(loans)
            method, reason = random.choice(FAILURE_MIX)
            engine.report_payment_failure(
                loan_id=loan.loan_id,
                original_payment_id=f"PMT-{i + 1:06d}",
                amount=loan.expected_payment,
                payment_method=method,
                failure_reason=reason.value,
            )

        submitted = engine.run_due_retries()
        for _ in range(self.simulate_days * 4):
            self.clock.advance(timedelta(hours=6))
            submitted += engine.run_due_retries()

        stats = engine.retry_statistics()
        logger.info(
            "Retries: %d submissions, %d attempts, success rate %.0f%%, %d in failure queue",
            submitted,
            stats.total_attempts,
            stats.success_rate * 100,
            len(engine.list_failures()),
        )

    def _run_suspense(self, engine: RecoveryEngine, loans: list) -> None:
        payments = self._suspense_gen.generate_batch(self.num_suspense, loans, now=self.clock())
        for payment in payments:
            engine.receive_suspense_payment(payment)

        applied = 0
        for payment in engine.list_suspense(sort_by="confidence"):
            if payment.candidates and payment.candidates[0].confidence > engine.config.matching.strong_threshold:
                engine.apply_match(payment.payment_id, payment.candidates[0].loan_id, "auto-demo")
                applied += 1
        logger.info("Suspense: %d received, %d applied to strong matches", len(payments), applied)

    def _run_batch(self, engine: RecoveryEngine, loans: list) -> None:
        rows = self._batch_gen.generate_rows(
            loans, self.batch_size, self.invalid_rate, as_of=self.clock().date()
        )
        batch = engine.upload_batch(self._batch_gen.to_csv(rows), "demo_payments.csv")
        engine.start_batch(batch.batch_id)

    def summary(self, engine: RecoveryEngine) -> dict[str, Any]:
        """Headline numbers for the scenario run."""
        batches = engine.list_batches()
        return {
            **engine.summary(),
            "loans": len(self.directory.loans),
            "notifications": len(self.notifier.sent),
            "batch": {
                "valid_records": batches[0].valid_records,
                "invalid_records": batches[0].invalid_records,
                "processed_records": batches[0].processed_records,
                "status": batches[0].status.value,
            }
            if batches
            else None,
        }
