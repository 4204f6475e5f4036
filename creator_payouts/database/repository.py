"""Repository queries over the payout tables."""
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creator_payouts.database.models import (
    IN_FLIGHT_STATUSES,
    Balance,
    PayoutMode,
    PayoutPaymentMethod,
    PayoutRecord,
    PayoutSchedule,
    PayoutStatus,
    ProcessedWebhookEvent,
    utcnow,
)


def payout_period_start(now: Optional[datetime] = None) -> datetime:
    """
    Start of the payout accounting window.

    The window opens on the first day of the previous calendar month, so it
    always covers at least one full month.
    """
    now = now or datetime.now(timezone.utc)
    first_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if first_of_month.month == 1:
        return first_of_month.replace(year=first_of_month.year - 1, month=12)
    return first_of_month.replace(month=first_of_month.month - 1)


class PayoutRepository:
    """Row-level reads and writes used by the payout services."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def has_in_flight_payout(self, profile_id: int) -> bool:
        stmt = (
            select(PayoutRecord.id)
            .where(
                PayoutRecord.profile_id == profile_id,
                PayoutRecord.status.in_(IN_FLIGHT_STATUSES),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def get_schedule(self, profile_id: int) -> Optional[PayoutSchedule]:
        stmt = select(PayoutSchedule).where(PayoutSchedule.profile_id == profile_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_payout_method(
        self, profile_id: int, provider: str
    ) -> Optional[PayoutPaymentMethod]:
        stmt = (
            select(PayoutPaymentMethod)
            .where(
                PayoutPaymentMethod.profile_id == profile_id,
                PayoutPaymentMethod.provider == provider,
            )
            .order_by(PayoutPaymentMethod.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_balance(self, profile_id: int, for_update: bool = False) -> Optional[Balance]:
        """Load a balance row, optionally taking the row lock."""
        stmt = select(Balance).where(Balance.profile_id == profile_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def period_payout_total(self, profile_id: int, since: datetime) -> int:
        """Sum of non-failed payout amounts created since the given time."""
        stmt = select(func.coalesce(func.sum(PayoutRecord.amount), 0)).where(
            PayoutRecord.profile_id == profile_id,
            PayoutRecord.created_at >= since,
            PayoutRecord.status != PayoutStatus.FAILED.value,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def get_payout_record(
        self, record_id: uuid.UUID, for_update: bool = False
    ) -> Optional[PayoutRecord]:
        stmt = select(PayoutRecord).where(PayoutRecord.id == record_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_payout_records(
        self, profile_id: int, limit: int = 20, offset: int = 0
    ) -> Sequence[PayoutRecord]:
        stmt = (
            select(PayoutRecord)
            .where(PayoutRecord.profile_id == profile_id)
            .order_by(PayoutRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_payout_records(self, profile_id: int) -> int:
        stmt = select(func.count()).select_from(PayoutRecord).where(
            PayoutRecord.profile_id == profile_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def list_automatic_profile_ids(self) -> List[int]:
        stmt = (
            select(PayoutSchedule.profile_id)
            .where(PayoutSchedule.mode == PayoutMode.AUTOMATIC.value)
            .order_by(PayoutSchedule.profile_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition_if_status(
        self,
        record_id: uuid.UUID,
        expected: PayoutStatus,
        new_status: PayoutStatus,
        **values: object,
    ) -> bool:
        """
        Move a record to a new status only if it still has the expected one.

        Returns True when the row was updated.
        """
        stmt = (
            update(PayoutRecord)
            .where(PayoutRecord.id == record_id, PayoutRecord.status == expected.value)
            .values(status=new_status.value, updated_at=utcnow(), **values)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def decrement_balance(self, profile_id: int, amount: int) -> None:
        stmt = (
            update(Balance)
            .where(Balance.profile_id == profile_id)
            .values(amount=Balance.amount - amount, updated_at=utcnow())
        )
        await self.session.execute(stmt)

    async def is_event_processed(self, event_id: str) -> bool:
        return await self.session.get(ProcessedWebhookEvent, event_id) is not None

    def mark_event_processed(self, event_id: str) -> None:
        self.session.add(ProcessedWebhookEvent(id=event_id, created_at=utcnow()))
