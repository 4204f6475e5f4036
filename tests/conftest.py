"""
Pytest configuration and fixtures.

Database tests run against a file-backed SQLite database (aiosqlite) so the
partial unique index, row locking and transaction rollback behave for real.
"""
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from creator_payouts.config import Settings
from creator_payouts.core.fee_calculator import FeeCalculator
from creator_payouts.core.fee_schedule import FeeSchedule
from creator_payouts.database.connection import create_engine_for, create_session_factory, init_db
from helpers import FakePayoutClient, SessionFactory, make_settings


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast tests without I/O")
    config.addinivalue_line("markers", "integration: tests that touch the database or HTTP")
    config.addinivalue_line("markers", "race: concurrency tests")


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return make_settings()


@pytest.fixture
def fee_schedule(test_settings: Settings) -> FeeSchedule:
    return FeeSchedule.from_settings(test_settings)


@pytest.fixture
def fee_calculator(fee_schedule: FeeSchedule) -> FeeCalculator:
    return FeeCalculator(fee_schedule)


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """Fresh SQLite database per test."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'payouts.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> SessionFactory:
    return create_session_factory(engine)


@pytest.fixture
def payout_client() -> FakePayoutClient:
    return FakePayoutClient()

