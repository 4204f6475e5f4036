"""
Tests for the automatic payout sweep.
"""
from typing import Any

import pytest

from creator_payouts.config import Settings
from creator_payouts.core.service import PayoutService
from creator_payouts.workers.payout_worker import run_payout_sweep
from helpers import FakePayoutClient, SessionFactory, fetch_records, seed_profile


@pytest.fixture
def service(
    test_settings: Settings,
    session_factory: SessionFactory,
    payout_client: FakePayoutClient,
) -> PayoutService:
    return PayoutService(test_settings, session_factory, payout_client)


class TestPayoutSweep:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sweep_pays_profiles_over_threshold(
        self, session_factory: SessionFactory, service: PayoutService
    ) -> None:
        await seed_profile(
            session_factory, profile_id=1, balance=10000, mode="automatic", threshold=5000
        )
        await seed_profile(
            session_factory,
            profile_id=2,
            balance=4000,
            mode="automatic",
            threshold=5000,
            destination="second@example.com",
        )
        await seed_profile(session_factory, profile_id=3, balance=10000, mode="manual")

        summary = await run_payout_sweep(service)

        assert summary == {"submitted": 1, "skipped": 1, "failed": 0}
        assert len(await fetch_records(session_factory, profile_id=1)) == 1
        assert await fetch_records(session_factory, profile_id=2) == []
        assert await fetch_records(session_factory, profile_id=3) == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_one_profile_error_does_not_stop_sweep(
        self, session_factory: SessionFactory, service: PayoutService, mocker: Any
    ) -> None:
        await seed_profile(session_factory, profile_id=1, balance=10000, mode="automatic")
        await seed_profile(session_factory, profile_id=2, balance=10000, mode="automatic")

        original = service.evaluate_and_execute_payout

        async def flaky(profile_id: int, bypass_threshold: bool = False) -> Any:
            if profile_id == 1:
                raise RuntimeError("database hiccup")
            return await original(profile_id, bypass_threshold=bypass_threshold)

        mocker.patch.object(service, "evaluate_and_execute_payout", side_effect=flaky)

        summary = await run_payout_sweep(service)

        assert summary == {"submitted": 1, "skipped": 0, "failed": 1}
        assert len(await fetch_records(session_factory, profile_id=2)) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_provider_failure_counted(
        self,
        session_factory: SessionFactory,
        service: PayoutService,
        payout_client: FakePayoutClient,
    ) -> None:
        await seed_profile(session_factory, profile_id=1, balance=10000, mode="automatic")
        payout_client.http_status = 500

        summary = await run_payout_sweep(service)

        assert summary == {"submitted": 0, "skipped": 0, "failed": 1}
