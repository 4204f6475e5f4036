"""Shared test helpers: settings factory, fake PayPal client and seed/fetch queries."""
import asyncio
import uuid
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creator_payouts.config import Settings
from creator_payouts.database.models import (
    Balance,
    PayoutPaymentMethod,
    PayoutRecord,
    PayoutSchedule,
    ProcessedWebhookEvent,
)
from creator_payouts.integrations.paypal_client import PayoutBatch, PayoutSubmission

SessionFactory = async_sessionmaker[AsyncSession]


def make_settings(**overrides: Any) -> Settings:
    """Settings with every required value filled in."""
    values: dict[str, Any] = dict(
        fan_platform_fee=Decimal("0.10"),
        fan_gems_fee=Decimal("0.05"),
        creator_platform_fee=Decimal("0.10"),
        creator_referral_fee=Decimal("0.05"),
        stripe_fee=Decimal("0.029"),
        stripe_fee_fixed=Decimal("0.30"),
        paypal_fee=Decimal("0.0349"),
        paypal_fee_fixed=Decimal("0.49"),
        authorize_net_fee=Decimal("0.029"),
        authorize_net_fee_fixed=Decimal("0.30"),
        paypal_fee_payout_international_percentage=Decimal("0.02"),
        paypal_fee_payout_us_fixed=Decimal("0.25"),
        min_payout_amount=Decimal("20"),
        max_payout_amount=Decimal("5000"),
        database_url="sqlite+aiosqlite:///:memory:",
        paypal_client_id="client-id",
        paypal_client_secret="client-secret",
        paypal_webhook_payout_id="WH-PAYOUTS",
        taxjar_api_key="taxjar-test-key",
        app_env="test",
        log_level="DEBUG",
    )
    values.update(overrides)
    return Settings(**values)


class FakePayoutClient:
    """
    Stand-in for PayPalPayoutClient.

    Returns a canned submission (or raises a canned error) after an optional
    delay and records every batch it was asked to send.
    """

    def __init__(self) -> None:
        self.http_status = 201
        self.provider_batch_id: Optional[str] = "PAYOUT-BATCH-1"
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.verified = True
        self.before_response: Optional[Callable[[PayoutBatch], Awaitable[None]]] = None
        self.batches: List[PayoutBatch] = []

    async def send_batch_payout(self, batch: PayoutBatch) -> PayoutSubmission:
        self.batches.append(batch)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.before_response is not None:
            await self.before_response(batch)
        if self.error is not None:
            raise self.error
        accepted = 200 <= self.http_status < 300
        return PayoutSubmission(
            http_status=self.http_status,
            provider_batch_id=self.provider_batch_id if accepted else None,
            detail=None if accepted else "INSUFFICIENT_FUNDS",
        )

    async def verify_webhook(self, headers: Any, body: Any) -> bool:
        return self.verified

    async def close(self) -> None:
        pass


async def seed_profile(
    session_factory: SessionFactory,
    profile_id: int = 1,
    balance: Optional[int] = 10000,
    mode: Optional[str] = "manual",
    threshold: int = 0,
    max_payout: Optional[int] = None,
    country: Optional[str] = "US",
    destination: str = "creator@example.com",
) -> Optional[int]:
    """
    Insert balance, schedule and PayPal payout method for a profile.

    Pass None for balance, mode or country to leave that row out. Returns the
    payout method id.
    """
    async with session_factory() as session:
        async with session.begin():
            if balance is not None:
                session.add(Balance(profile_id=profile_id, amount=balance, currency="USD"))
            if mode is not None:
                session.add(
                    PayoutSchedule(
                        profile_id=profile_id,
                        mode=mode,
                        threshold=threshold,
                        max_payout=max_payout,
                    )
                )
            method = None
            if country is not None:
                method = PayoutPaymentMethod(
                    profile_id=profile_id,
                    provider="paypal",
                    country=country,
                    destination=destination,
                )
                session.add(method)
            await session.flush()
            return method.id if method is not None else None


async def insert_record(
    session_factory: SessionFactory,
    method_id: int,
    status: str,
    profile_id: int = 1,
    amount: int = 5000,
    processing_fee: int = 25,
) -> uuid.UUID:
    """Insert a payout record directly and return its id."""
    async with session_factory() as session:
        async with session.begin():
            record = PayoutRecord(
                profile_id=profile_id,
                payout_payment_method_id=method_id,
                amount=amount,
                processing_fee=processing_fee,
                status=status,
            )
            session.add(record)
            await session.flush()
            return record.id


async def fetch_record(session_factory: SessionFactory, record_id: uuid.UUID) -> PayoutRecord:
    async with session_factory() as session:
        return await session.get(PayoutRecord, record_id)


async def fetch_records(session_factory: SessionFactory, profile_id: int = 1) -> List[PayoutRecord]:
    async with session_factory() as session:
        result = await session.execute(
            select(PayoutRecord).where(PayoutRecord.profile_id == profile_id)
        )
        return list(result.scalars().all())


async def fetch_balance(session_factory: SessionFactory, profile_id: int = 1) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(Balance.amount).where(Balance.profile_id == profile_id)
        )
        return result.scalar_one()


async def ledger_ids(session_factory: SessionFactory) -> List[str]:
    async with session_factory() as session:
        result = await session.execute(select(ProcessedWebhookEvent.id))
        return list(result.scalars().all())
