"""
Payout eligibility.

Decides whether a profile may be paid out now and how much. The decision is
returned as Eligible or Ineligible; nothing here raises for business reasons.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creator_payouts.core.errors import (
    InsufficientBalanceError,
    MaxPayoutExceededError,
    MinPayoutNotMetError,
    NoPayoutMethodError,
    PayoutSystemError,
    PendingPayoutError,
    ThresholdNotMetError,
)
from creator_payouts.core.fee_schedule import FeeSchedule, PayoutProvider
from creator_payouts.database.models import PayoutMode
from creator_payouts.database.repository import PayoutRepository, payout_period_start
from creator_payouts.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class IneligibleReason(str, Enum):
    PENDING_PAYOUT = "pending_payout"
    NO_PAYOUT_METHOD = "no_payout_method"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    MIN_PAYOUT_NOT_MET = "min_payout_not_met"
    MAX_PAYOUT_EXCEEDED = "max_payout_exceeded"
    THRESHOLD_NOT_MET = "threshold_not_met"


@dataclass(frozen=True)
class Eligible:
    """Payout may proceed for this amount (cents)."""

    amount: int


@dataclass(frozen=True)
class Ineligible:
    """Payout may not proceed."""

    profile_id: int
    reason: IneligibleReason
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    def to_error(self) -> PayoutSystemError:
        """The taxonomy error carrying the user-facing message for this reason."""
        if self.reason is IneligibleReason.PENDING_PAYOUT:
            return PendingPayoutError(self.profile_id)
        elif self.reason is IneligibleReason.NO_PAYOUT_METHOD:
            return NoPayoutMethodError(self.profile_id)
        elif self.reason is IneligibleReason.INSUFFICIENT_BALANCE:
            return InsufficientBalanceError(self.minimum or 0)
        elif self.reason is IneligibleReason.MIN_PAYOUT_NOT_MET:
            return MinPayoutNotMetError(self.minimum or 0)
        elif self.reason is IneligibleReason.MAX_PAYOUT_EXCEEDED:
            return MaxPayoutExceededError(self.maximum or 0)
        return ThresholdNotMetError(self.profile_id)


EligibilityDecision = Union[Eligible, Ineligible]


class PayoutEligibilityEvaluator:
    """
    Go/no-go decision for a payout.

    Checks run in a fixed order so a profile always gets the same answer for
    the same state:

    1. A payout already in flight blocks everything else.
    2. Schedule and PayPal payout method must exist; a balance row must exist.
    3. The period allowance is the schedule's max payout (or the global
       ceiling) minus what was paid out since the window opened.
    4. Balance below the minimum, exhausted allowance, and a capped amount
       below the minimum are rejected in that order.
    5. Unless bypassed, only automatic schedules whose balance reached the
       threshold proceed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        schedule: FeeSchedule,
    ):
        self.session_factory = session_factory
        self.schedule = schedule

    def _ineligible(self, profile_id: int, reason: IneligibleReason, **limits: int) -> Ineligible:
        metrics.record_eligibility(reason.value)
        logger.info("payout_ineligible", profile_id=profile_id, reason=reason.value, **limits)
        return Ineligible(profile_id=profile_id, reason=reason, **limits)

    async def evaluate(
        self, profile_id: int, bypass_threshold: bool = False
    ) -> EligibilityDecision:
        """
        Decide whether the profile can be paid out now.

        Args:
            profile_id: Creator profile
            bypass_threshold: Skip the automatic-mode threshold check (manual trigger)

        Returns:
            Eligible with the payable amount in cents, or Ineligible with a reason
        """
        min_payout = self.schedule.min_payout_cents

        async with self.session_factory() as session:
            async with session.begin():
                repo = PayoutRepository(session)

                if await repo.has_in_flight_payout(profile_id):
                    return self._ineligible(profile_id, IneligibleReason.PENDING_PAYOUT)

                schedule = await repo.get_schedule(profile_id)
                method = await repo.get_payout_method(profile_id, PayoutProvider.PAYPAL.value)
                if schedule is None or method is None:
                    return self._ineligible(profile_id, IneligibleReason.NO_PAYOUT_METHOD)

                balance = await repo.get_balance(profile_id)
                if balance is None:
                    return self._ineligible(
                        profile_id, IneligibleReason.INSUFFICIENT_BALANCE, minimum=min_payout
                    )

                period_total = await repo.period_payout_total(profile_id, payout_period_start())

        max_payout = (
            schedule.max_payout
            if schedule.max_payout is not None
            else self.schedule.max_payout_cents
        )
        remaining = max_payout - period_total
        candidate = min(balance.amount, remaining)

        if balance.amount < min_payout:
            return self._ineligible(
                profile_id, IneligibleReason.INSUFFICIENT_BALANCE, minimum=min_payout
            )
        if remaining <= 0:
            return self._ineligible(
                profile_id, IneligibleReason.MAX_PAYOUT_EXCEEDED, maximum=max_payout
            )
        if candidate < min_payout:
            return self._ineligible(
                profile_id, IneligibleReason.MIN_PAYOUT_NOT_MET, minimum=min_payout
            )

        threshold_met = (
            schedule.mode == PayoutMode.AUTOMATIC.value and balance.amount >= schedule.threshold
        )
        if not (bypass_threshold or threshold_met):
            return self._ineligible(profile_id, IneligibleReason.THRESHOLD_NOT_MET)

        metrics.record_eligibility("eligible")
        logger.info(
            "payout_eligible",
            profile_id=profile_id,
            amount_cents=candidate,
            period_total=period_total,
            max_payout=max_payout,
        )
        return Eligible(amount=candidate)
