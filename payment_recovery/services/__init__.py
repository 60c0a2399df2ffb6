"""Collaborator contracts and reference implementations."""

from payment_recovery.services.contracts import (
    AccountDetails,
    AllocationService,
    LoanDirectory,
    NotificationService,
    PaymentApplicationService,
    SubmissionResult,
)
from payment_recovery.services.notifications import (
    LoggingNotificationService,
    build_event,
    safe_notify,
)
from payment_recovery.services.simulated import ScriptedPaymentService, SimulatedPaymentService

__all__ = [
    "AccountDetails",
    "AllocationService",
    "LoanDirectory",
    "LoggingNotificationService",
    "NotificationService",
    "PaymentApplicationService",
    "ScriptedPaymentService",
    "SimulatedPaymentService",
    "SubmissionResult",
    "build_event",
    "safe_notify",
]
