"""
Tests for payout eligibility decisions.
"""
from datetime import datetime, timezone

import pytest

from creator_payouts.core.eligibility import (
    Eligible,
    Ineligible,
    IneligibleReason,
    PayoutEligibilityEvaluator,
)
from creator_payouts.core.errors import (
    MaxPayoutExceededError,
    MinPayoutNotMetError,
    PendingPayoutError,
    ThresholdNotMetError,
)
from creator_payouts.core.fee_schedule import FeeSchedule
from creator_payouts.database.repository import payout_period_start
from helpers import SessionFactory, insert_record, seed_profile


@pytest.fixture
def evaluator(
    session_factory: SessionFactory, fee_schedule: FeeSchedule
) -> PayoutEligibilityEvaluator:
    return PayoutEligibilityEvaluator(session_factory, fee_schedule)


class TestPeriodWindow:
    @pytest.mark.unit
    def test_window_opens_on_first_of_previous_month(self) -> None:
        now = datetime(2024, 3, 15, 12, 30, tzinfo=timezone.utc)
        assert payout_period_start(now) == datetime(2024, 2, 1, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_window_wraps_year_in_january(self) -> None:
        now = datetime(2024, 1, 3, tzinfo=timezone.utc)
        assert payout_period_start(now) == datetime(2023, 12, 1, tzinfo=timezone.utc)


class TestEligibility:
    """Test suite for PayoutEligibilityEvaluator."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_in_flight_payout_blocks(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        method_id = await seed_profile(session_factory, balance=50000)
        await insert_record(session_factory, method_id, "submitted")

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert isinstance(decision, Ineligible)
        assert decision.reason is IneligibleReason.PENDING_PAYOUT
        assert isinstance(decision.to_error(), PendingPayoutError)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_schedule(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, mode=None)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision.reason is IneligibleReason.NO_PAYOUT_METHOD

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_payout_method(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, country=None)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision.reason is IneligibleReason.NO_PAYOUT_METHOD
        assert decision.to_error().user_message == "Payment method not found."

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_balance(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=None)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision.reason is IneligibleReason.INSUFFICIENT_BALANCE
        assert decision.minimum == 2000

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_balance_below_minimum(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=1999)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision.reason is IneligibleReason.INSUFFICIENT_BALANCE
        assert decision.to_error().user_message == (
            "Insufficient balance. You need at least $20.00 to send a payout."
        )

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_schedule_ceiling_reached(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        method_id = await seed_profile(session_factory, balance=50000, max_payout=10000)
        await insert_record(session_factory, method_id, "successful", amount=10000)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision.reason is IneligibleReason.MAX_PAYOUT_EXCEEDED
        assert decision.maximum == 10000
        error = decision.to_error()
        assert isinstance(error, MaxPayoutExceededError)
        assert "$100.00" in error.user_message

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_capped_amount_below_minimum(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        method_id = await seed_profile(session_factory, balance=50000, max_payout=10000)
        await insert_record(session_factory, method_id, "successful", amount=9000)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision.reason is IneligibleReason.MIN_PAYOUT_NOT_MET
        error = decision.to_error()
        assert isinstance(error, MinPayoutNotMetError)
        assert error.user_message == "Min payout not met. You need at least $20.00 to send a payout."

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_failed_payouts_do_not_count_toward_ceiling(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        method_id = await seed_profile(session_factory, balance=50000, max_payout=10000)
        await insert_record(session_factory, method_id, "failed", amount=10000)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision == Eligible(amount=10000)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_amount_capped_by_schedule_max_payout(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        method_id = await seed_profile(session_factory, balance=50000, max_payout=30000)
        await insert_record(session_factory, method_id, "successful", amount=12000)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision == Eligible(amount=18000)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_global_ceiling_enforced_without_schedule_max(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=600000, max_payout=None)

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision == Eligible(amount=500000)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_manual_schedule_waits_without_bypass(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=10000, mode="manual")

        decision = await evaluator.evaluate(1)

        assert decision.reason is IneligibleReason.THRESHOLD_NOT_MET
        assert isinstance(decision.to_error(), ThresholdNotMetError)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bypass_threshold_pays_whole_balance(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=10000, mode="manual")

        decision = await evaluator.evaluate(1, bypass_threshold=True)

        assert decision == Eligible(amount=10000)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_automatic_schedule_below_threshold(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=10000, mode="automatic", threshold=15000)

        decision = await evaluator.evaluate(1)

        assert decision.reason is IneligibleReason.THRESHOLD_NOT_MET

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_automatic_schedule_at_threshold(
        self, session_factory: SessionFactory, evaluator: PayoutEligibilityEvaluator
    ) -> None:
        await seed_profile(session_factory, balance=15000, mode="automatic", threshold=15000)

        decision = await evaluator.evaluate(1)

        assert decision == Eligible(amount=15000)
