"""Scenarios that exercise the engine end to end."""

from payment_recovery.scenarios.clock import SimulationClock
from payment_recovery.scenarios.recovery_demo import RecoveryDemoScenario

__all__ = ["RecoveryDemoScenario", "SimulationClock"]
