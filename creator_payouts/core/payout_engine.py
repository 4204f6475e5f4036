"""
Payout execution engine.

Executes one payout as three short transactions around the provider call:

1. Reserve: lock the balance row, re-check the in-flight guard, insert an
   ``initialized`` record. The record id is the provider batch id.
2. Call PayPal with no database transaction open.
3. Commit the outcome: ``submitted`` plus the balance decrement in one
   transaction, or ``failed`` with the error detail and the balance untouched.

Webhooks finish ``submitted`` records later. Nothing here retries.
"""
import asyncio
from typing import Optional, Union

import httpx
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creator_payouts.config import Settings
from creator_payouts.core.errors import (
    ExternalProviderError,
    InsufficientBalanceError,
    MinPayoutNotMetError,
    NoPayoutMethodError,
    PayoutSystemError,
    PendingPayoutError,
)
from creator_payouts.core.fee_calculator import FeeCalculator, PayoutFee
from creator_payouts.core.fee_schedule import PayoutProvider
from creator_payouts.database.models import (
    IN_FLIGHT_INDEX,
    PayoutPaymentMethod,
    PayoutRecord,
    PayoutStatus,
)
from creator_payouts.database.repository import PayoutRepository
from creator_payouts.integrations.paypal_client import (
    PayoutBatch,
    PayPalError,
    PayPalPayoutClient,
)
from creator_payouts.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


def _is_in_flight_violation(error: IntegrityError) -> bool:
    """True if the error comes from the one-in-flight-per-profile index."""
    message = str(error.orig)
    # SQLite names the columns, not the index
    return (
        IN_FLIGHT_INDEX in message
        or "UNIQUE constraint failed: payout_records.profile_id" in message
    )


class PayoutExecutor:
    """Runs the reserve / submit / commit sequence for a single payout."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fee_calculator: FeeCalculator,
        payout_client: PayPalPayoutClient,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.fee_calculator = fee_calculator
        self.payout_client = payout_client
        self.settings = settings

    async def execute(
        self,
        profile_id: int,
        candidate_amount: int,
        timeout: Optional[float] = None,
    ) -> Union[PayoutRecord, PayoutSystemError]:
        """
        Pay out ``candidate_amount`` cents (fee included) to the profile's PayPal account.

        Args:
            profile_id: Creator profile
            candidate_amount: Gross amount reserved from the balance
            timeout: Provider call timeout; defaults to payout_request_timeout

        Returns:
            The submitted PayoutRecord, or the error describing why it was not paid

        Raises:
            SQLAlchemyError: If committing the provider's acceptance fails. The
                record stays ``initialized`` and blocks further payouts until
                it is reconciled.
        """
        log = logger.bind(profile_id=profile_id)

        async with self.session_factory() as session:
            async with session.begin():
                method = await PayoutRepository(session).get_payout_method(
                    profile_id, PayoutProvider.PAYPAL.value
                )
        if method is None:
            metrics.record_payout_execution("rejected")
            return NoPayoutMethodError(profile_id)

        fee = self.fee_calculator.compute_payout_fee(
            candidate_amount, PayoutProvider.PAYPAL, method.country
        )
        if fee.payout_amount <= 0:
            metrics.record_payout_execution("rejected")
            log.info(
                "payout_amount_below_fee",
                candidate_amount=candidate_amount,
                processing_fee=fee.processing_fee,
            )
            return MinPayoutNotMetError(self.fee_calculator.schedule.min_payout_cents)

        reserved = await self._reserve(profile_id, method, fee)
        if isinstance(reserved, PayoutSystemError):
            metrics.record_payout_execution("rejected")
            log.info("payout_reservation_rejected", error_code=reserved.error_code)
            return reserved
        record = reserved
        log = log.bind(payout_record_id=str(record.id))

        batch = PayoutBatch(
            batch_id=str(record.id),
            destination=method.destination,
            amount=record.amount,
            currency=self.settings.currency,
            sender_item_id=str(profile_id),
        )
        call_timeout = timeout if timeout is not None else self.settings.payout_request_timeout

        status_code: Optional[int] = None
        try:
            submission = await asyncio.wait_for(
                self.payout_client.send_batch_payout(batch), timeout=call_timeout
            )
        except asyncio.TimeoutError:
            detail = f"PayPal did not answer within {call_timeout}s"
        except PayPalError as e:
            detail, status_code = str(e), e.status_code
        except httpx.HTTPError as e:
            detail = f"PayPal request failed: {e}"
        else:
            if submission.accepted:
                return await self._commit_submitted(record, submission.provider_batch_id, log)
            status_code = submission.http_status
            if 200 <= submission.http_status < 300:
                detail = "PayPal response is missing payout_batch_id"
            else:
                detail = submission.detail or f"PayPal returned {submission.http_status}"

        return await self._commit_failed(record, detail, status_code, log)

    async def _reserve(
        self,
        profile_id: int,
        method: PayoutPaymentMethod,
        fee: PayoutFee,
    ) -> Union[PayoutRecord, PayoutSystemError]:
        """Insert the initialized record under the balance row lock."""
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    repo = PayoutRepository(session)
                    balance = await repo.get_balance(profile_id, for_update=True)

                    if await repo.has_in_flight_payout(profile_id):
                        return PendingPayoutError(profile_id)
                    if balance is None or balance.amount < fee.amount:
                        return InsufficientBalanceError(
                            self.fee_calculator.schedule.min_payout_cents
                        )

                    record = PayoutRecord(
                        profile_id=profile_id,
                        payout_payment_method_id=method.id,
                        amount=fee.payout_amount,
                        processing_fee=fee.processing_fee,
                        status=PayoutStatus.INITIALIZED.value,
                    )
                    session.add(record)
                    await session.flush()
            except IntegrityError as e:
                if not _is_in_flight_violation(e):
                    raise
                # Lost the race on the one-in-flight index
                return PendingPayoutError(profile_id)

        logger.info(
            "payout_record_created",
            profile_id=profile_id,
            payout_record_id=str(record.id),
            amount_cents=record.amount,
            processing_fee=record.processing_fee,
        )
        return record

    async def _commit_submitted(
        self,
        record: PayoutRecord,
        provider_batch_id: Optional[str],
        log: structlog.stdlib.BoundLogger,
    ) -> PayoutRecord:
        async with self.session_factory() as session:
            async with session.begin():
                repo = PayoutRepository(session)
                advanced = await repo.transition_if_status(
                    record.id,
                    PayoutStatus.INITIALIZED,
                    PayoutStatus.SUBMITTED,
                    external_transaction_ref=provider_batch_id,
                )
                await repo.decrement_balance(record.profile_id, record.gross_amount)
                refreshed = await repo.get_payout_record(record.id)

        metrics.record_payout_execution("submitted", record.gross_amount)
        log.info(
            "payout_submitted",
            provider_batch_id=provider_batch_id,
            amount_cents=record.amount,
            status=refreshed.status if refreshed else record.status,
            already_advanced=not advanced,
        )
        return refreshed or record

    async def _commit_failed(
        self,
        record: PayoutRecord,
        detail: str,
        status_code: Optional[int],
        log: structlog.stdlib.BoundLogger,
    ) -> ExternalProviderError:
        async with self.session_factory() as session:
            async with session.begin():
                await PayoutRepository(session).transition_if_status(
                    record.id,
                    PayoutStatus.INITIALIZED,
                    PayoutStatus.FAILED,
                    error=detail,
                )

        metrics.record_payout_execution("failed")
        log.error("payout_failed", detail=detail, status_code=status_code)
        return ExternalProviderError(detail, status_code=status_code)
