"""Pytest configuration and fixtures."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from payment_recovery.config import RecoveryConfig
from payment_recovery.engine import RecoveryEngine
from payment_recovery.models.financial import LoanSummary
from payment_recovery.retry import RetryPolicyRegistry
from payment_recovery.scenarios import SimulationClock
from payment_recovery.services import LoggingNotificationService, ScriptedPaymentService
from payment_recovery.store import InMemoryLoanDirectory, RecoveryDataStore


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> SimulationClock:
    """Clock pinned to 2024-03-01 09:00."""
    return SimulationClock(datetime(2024, 3, 1, 9, 0, 0))


@pytest.fixture
def sample_loan() -> LoanSummary:
    """Loan with full identity and bank details."""
    return LoanSummary(
        loan_id="loan-test-001",
        loan_number="LN123456",
        borrower_name="John Smith",
        current_balance=Decimal("150000.00"),
        expected_payment=Decimal("1500.00"),
        next_payment_due=date(2024, 3, 15),
        borrower_email="john.smith@example.com",
        borrower_phone="555-123-4567",
        account_number="1234567890",
        routing_number="021000021",
        interest_due=Decimal("600.00"),
        fees_due=Decimal("25.00"),
    )


@pytest.fixture
def other_loan() -> LoanSummary:
    """Second loan sharing no signals with ``sample_loan``."""
    return LoanSummary(
        loan_id="loan-test-002",
        loan_number="LN789012",
        borrower_name="Maria Garcia",
        current_balance=Decimal("80000.00"),
        expected_payment=Decimal("2500.00"),
        next_payment_due=date(2024, 3, 20),
        borrower_email="maria.garcia@example.com",
        borrower_phone="555-987-6543",
        account_number="9876543210",
        routing_number="031000503",
        interest_due=Decimal("300.00"),
    )


@pytest.fixture
def directory(sample_loan: LoanSummary, other_loan: LoanSummary) -> InMemoryLoanDirectory:
    """Loan directory holding the two sample loans."""
    directory = InMemoryLoanDirectory()
    directory.add_loan(sample_loan)
    directory.add_loan(other_loan)
    return directory


@pytest.fixture
def store() -> RecoveryDataStore:
    """Create a fresh store for each test."""
    return RecoveryDataStore()


@pytest.fixture
def registry() -> RetryPolicyRegistry:
    """Registry loaded with the default policies."""
    return RetryPolicyRegistry()


@pytest.fixture
def payment_service() -> ScriptedPaymentService:
    """Payment service that succeeds unless scripted otherwise."""
    return ScriptedPaymentService()


@pytest.fixture
def notifier() -> LoggingNotificationService:
    return LoggingNotificationService()


@pytest.fixture
def engine(
    directory: InMemoryLoanDirectory,
    payment_service: ScriptedPaymentService,
    notifier: LoggingNotificationService,
    registry: RetryPolicyRegistry,
    store: RecoveryDataStore,
    clock: SimulationClock,
) -> RecoveryEngine:
    """Engine wired to in-memory collaborators and the simulation clock."""
    return RecoveryEngine(
        directory,
        payment_service,
        notifier=notifier,
        registry=registry,
        store=store,
        config=RecoveryConfig(),
        clock=clock,
    )
