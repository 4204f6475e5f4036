"""Database package for creator payouts."""
from .connection import get_session_factory, init_db
from .models import (
    Balance,
    Base,
    PayoutMode,
    PayoutPaymentMethod,
    PayoutRecord,
    PayoutSchedule,
    PayoutStatus,
    ProcessedWebhookEvent,
)
from .repository import PayoutRepository

__all__ = [
    "Base",
    "Balance",
    "PayoutMode",
    "PayoutPaymentMethod",
    "PayoutRecord",
    "PayoutRepository",
    "PayoutSchedule",
    "PayoutStatus",
    "ProcessedWebhookEvent",
    "get_session_factory",
    "init_db",
]
