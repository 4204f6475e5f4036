"""
Webhook reconciliation for PayPal payout batch events.

Each delivery is verified, deduplicated against the processed-event ledger,
applied to the payout record under its row lock, and sealed by inserting the
event id in the same transaction.
"""
import inspect
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Union

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creator_payouts.core.errors import (
    PayoutSystemError,
    UnknownBatchError,
    WebhookVerificationError,
)
from creator_payouts.database.models import PayoutStatus
from creator_payouts.database.repository import PayoutRepository
from creator_payouts.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EVENT_OUTCOMES: Dict[str, PayoutStatus] = {
    "PAYMENT.PAYOUTSBATCH.SUCCESS": PayoutStatus.SUCCESSFUL,
    "PAYMENT.PAYOUTSBATCH.DENIED": PayoutStatus.FAILED,
    "PAYMENT.PAYOUTSBATCH.PROCESSING": PayoutStatus.PENDING,
}

Verifier = Callable[[], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class Ack:
    """Acknowledgement returned to the webhook sender."""

    event_id: str
    duplicate: bool = False
    status: Optional[str] = None


def should_apply(current: str, outcome: PayoutStatus) -> bool:
    """
    Whether an event outcome may overwrite the current status.

    A successful record is never moved back to pending. Every other
    combination is applied, including failed after successful.
    """
    return current != PayoutStatus.SUCCESSFUL.value or outcome is not PayoutStatus.PENDING


class WebhookReconciler:
    """Applies provider status events to payout records exactly once."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    async def _verified(verify: Verifier) -> bool:
        result = verify()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def handle(
        self,
        event_id: str,
        event_type: str,
        batch_id: str,
        verify: Verifier,
    ) -> Union[Ack, PayoutSystemError]:
        """
        Apply one webhook delivery.

        Args:
            event_id: Provider event id (dedup key)
            event_type: Provider event type
            batch_id: Our payout record id, echoed back as sender_batch_id
            verify: Signature check; may be sync or async

        Returns:
            Ack, or WebhookVerificationError / UnknownBatchError
        """
        start = time.time()
        log = logger.bind(event_id=event_id, event_type=event_type, batch_id=batch_id)

        if not await self._verified(verify):
            metrics.record_webhook_event(event_type, "rejected", time.time() - start)
            log.warning("webhook_verification_failed")
            return WebhookVerificationError(event_id)

        try:
            record_id = uuid.UUID(batch_id)
        except (TypeError, ValueError):
            metrics.record_webhook_event(event_type, "unknown_batch", time.time() - start)
            log.warning("webhook_unknown_batch")
            return UnknownBatchError(batch_id)

        outcome = EVENT_OUTCOMES.get(event_type)
        applied_status: Optional[str] = None

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    repo = PayoutRepository(session)

                    if await repo.is_event_processed(event_id):
                        metrics.record_webhook_event(event_type, "duplicate", time.time() - start)
                        log.info("webhook_event_duplicate")
                        return Ack(event_id=event_id, duplicate=True)

                    record = await repo.get_payout_record(record_id, for_update=True)
                    if record is None:
                        metrics.record_webhook_event(
                            event_type, "unknown_batch", time.time() - start
                        )
                        log.warning("webhook_unknown_batch")
                        return UnknownBatchError(batch_id)

                    applied_status = record.status
                    if outcome is not None and should_apply(record.status, outcome):
                        await repo.transition_if_status(
                            record.id, PayoutStatus(record.status), outcome
                        )
                        applied_status = outcome.value
                    elif outcome is None:
                        log.info("webhook_event_type_ignored")

                    repo.mark_event_processed(event_id)
            except IntegrityError:
                # A concurrent delivery of the same event sealed it first
                metrics.record_webhook_event(event_type, "duplicate", time.time() - start)
                log.info("webhook_event_duplicate", concurrent=True)
                return Ack(event_id=event_id, duplicate=True)

        metrics.record_webhook_event(event_type, "applied", time.time() - start)
        log.info("webhook_event_applied", status=applied_status)
        return Ack(event_id=event_id, duplicate=False, status=applied_status)
