"""
Payout service facade.

Wires the fee schedule, calculator, eligibility evaluator, execution engine
and webhook reconciler behind the operations the API and worker call.
"""
import json
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creator_payouts.config import Settings
from creator_payouts.core.eligibility import Eligible, Ineligible, PayoutEligibilityEvaluator
from creator_payouts.core.errors import (
    ExternalProviderError,
    NoPayoutMethodError,
    PayoutSystemError,
    WebhookPayloadError,
)
from creator_payouts.core.fee_calculator import FeeCalculator, TaxService
from creator_payouts.core.fee_schedule import FeeSchedule
from creator_payouts.core.payout_engine import PayoutExecutor
from creator_payouts.core.reconciler import Ack, WebhookReconciler
from creator_payouts.database.models import PayoutRecord
from creator_payouts.database.repository import PayoutRepository, payout_period_start
from creator_payouts.integrations.paypal_client import PayPalError, PayPalPayoutClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PayoutSummary:
    """Payout schedule plus what is left of the period allowance. Amounts in cents."""

    profile_id: int
    mode: str
    threshold: int
    max_payout: int
    period_total: int
    remaining: int
    balance: int


@dataclass(frozen=True)
class WebhookEvent:
    """The fields of a PayPal payouts webhook the reconciler needs."""

    event_id: str
    event_type: str
    batch_id: str
    body: dict


def parse_webhook_event(raw_body: Union[bytes, str]) -> WebhookEvent:
    """
    Extract event id, type and sender batch id from a PayPal webhook body.

    Raises:
        WebhookPayloadError: If the body is not JSON or a field is missing
    """
    try:
        body = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        raise WebhookPayloadError("Webhook body is not valid JSON") from e
    if not isinstance(body, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")

    event_id = body.get("id")
    event_type = body.get("event_type")
    try:
        batch_id = body["resource"]["batch_header"]["sender_batch_header"]["sender_batch_id"]
    except (KeyError, TypeError):
        batch_id = None

    if not event_id or not event_type or not batch_id:
        raise WebhookPayloadError("Webhook body is missing id, event_type or sender_batch_id")
    return WebhookEvent(
        event_id=str(event_id), event_type=str(event_type), batch_id=str(batch_id), body=body
    )


class PayoutService:
    """Entry point for fee calculation, payout execution and webhook handling."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        payout_client: PayPalPayoutClient,
        tax_service: Optional[TaxService] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.payout_client = payout_client
        self.schedule = FeeSchedule.from_settings(settings)
        self.fees = FeeCalculator(self.schedule, tax_service)
        self.evaluator = PayoutEligibilityEvaluator(session_factory, self.schedule)
        self.executor = PayoutExecutor(session_factory, self.fees, payout_client, settings)
        self.reconciler = WebhookReconciler(session_factory)

    async def evaluate_and_execute_payout(
        self,
        profile_id: int,
        bypass_threshold: bool = False,
        timeout: Optional[float] = None,
    ) -> Union[PayoutRecord, Ineligible, PayoutSystemError]:
        """
        Evaluate eligibility and, when eligible, execute the payout.

        Returns:
            The submitted PayoutRecord, the Ineligible decision, or an execution error
        """
        decision = await self.evaluator.evaluate(profile_id, bypass_threshold=bypass_threshold)
        if not isinstance(decision, Eligible):
            return decision
        return await self.executor.execute(profile_id, decision.amount, timeout=timeout)

    async def handle_webhook(
        self, headers: Mapping[str, str], raw_body: Union[bytes, str]
    ) -> Union[Ack, PayoutSystemError]:
        """Verify and apply a PayPal payouts webhook delivery."""
        try:
            event = parse_webhook_event(raw_body)
        except WebhookPayloadError as e:
            logger.warning("webhook_payload_invalid", error=e.message)
            return e

        async def verify() -> bool:
            return await self.payout_client.verify_webhook(headers, event.body)

        try:
            return await self.reconciler.handle(
                event.event_id, event.event_type, event.batch_id, verify
            )
        except PayPalError as e:
            logger.error(
                "webhook_verification_unavailable",
                event_id=event.event_id,
                error=str(e),
            )
            return ExternalProviderError(str(e), status_code=e.status_code)

    async def payout_summary(self, profile_id: int) -> Union[PayoutSummary, PayoutSystemError]:
        """Schedule settings and the remaining allowance for the current period."""
        async with self.session_factory() as session:
            async with session.begin():
                repo = PayoutRepository(session)
                schedule = await repo.get_schedule(profile_id)
                if schedule is None:
                    return NoPayoutMethodError(profile_id)
                balance = await repo.get_balance(profile_id)
                period_total = await repo.period_payout_total(profile_id, payout_period_start())

        max_payout = (
            schedule.max_payout
            if schedule.max_payout is not None
            else self.schedule.max_payout_cents
        )
        return PayoutSummary(
            profile_id=profile_id,
            mode=schedule.mode,
            threshold=schedule.threshold,
            max_payout=max_payout,
            period_total=period_total,
            remaining=max(max_payout - period_total, 0),
            balance=balance.amount if balance else 0,
        )

    async def list_payouts(
        self, profile_id: int, limit: int = 20, offset: int = 0
    ) -> List[PayoutRecord]:
        """Most recent payout records for a profile, newest first."""
        async with self.session_factory() as session:
            async with session.begin():
                records: Sequence[PayoutRecord] = await PayoutRepository(
                    session
                ).list_payout_records(profile_id, limit=limit, offset=offset)
        return list(records)

    async def count_payouts(self, profile_id: int) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                return await PayoutRepository(session).count_payout_records(profile_id)

    async def automatic_profile_ids(self) -> List[int]:
        """Profiles with an automatic payout schedule."""
        async with self.session_factory() as session:
            async with session.begin():
                return await PayoutRepository(session).list_automatic_profile_ids()

    async def close(self) -> None:
        await self.payout_client.close()
