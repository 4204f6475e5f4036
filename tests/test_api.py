"""
API tests through the ASGI app with an injected service.
"""
import json
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from creator_payouts.api.main import create_app
from creator_payouts.config import Settings
from creator_payouts.core.service import PayoutService
from helpers import FakePayoutClient, SessionFactory, insert_record, seed_profile


@pytest_asyncio.fixture
async def client(
    test_settings: Settings,
    session_factory: SessionFactory,
    payout_client: FakePayoutClient,
) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    service = PayoutService(test_settings, session_factory, payout_client)
    app = create_app(service=service)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def webhook_body(event_id: str, event_type: str, batch_id: str) -> str:
    return json.dumps(
        {
            "id": event_id,
            "event_type": event_type,
            "resource": {
                "batch_header": {"sender_batch_header": {"sender_batch_id": batch_id}}
            },
        }
    )


class TestPayoutRoutes:
    """Test suite for /payouts routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_execute_submits_payout(
        self, client: AsyncClient, session_factory: SessionFactory
    ) -> None:
        await seed_profile(session_factory, balance=10000)

        response = await client.post("/payouts/1/execute", params={"bypass_threshold": "true"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "submitted"
        assert data["payout"]["amount"] == 9975
        assert data["payout"]["processing_fee"] == 25
        assert data["payout"]["status"] == "submitted"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_threshold_not_met_is_skipped(
        self, client: AsyncClient, session_factory: SessionFactory
    ) -> None:
        await seed_profile(session_factory, balance=10000, mode="manual")

        response = await client.post("/payouts/1/execute")

        assert response.status_code == 200
        assert response.json()["status"] == "skipped"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_pending_payout_conflict(
        self, client: AsyncClient, session_factory: SessionFactory
    ) -> None:
        method_id = await seed_profile(session_factory, balance=10000)
        await insert_record(session_factory, method_id, "pending")

        response = await client.post("/payouts/1/execute", params={"bypass_threshold": "true"})

        assert response.status_code == 409
        assert response.json()["error"] == {
            "code": "pending_payout",
            "message": "You already have a pending payout.",
            "type": "PendingPayoutError",
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_insufficient_balance(
        self, client: AsyncClient, session_factory: SessionFactory
    ) -> None:
        await seed_profile(session_factory, balance=500)

        response = await client.post("/payouts/1/execute", params={"bypass_threshold": "true"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "insufficient_balance"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_provider_failure_is_bad_gateway(
        self,
        client: AsyncClient,
        session_factory: SessionFactory,
        payout_client: FakePayoutClient,
    ) -> None:
        await seed_profile(session_factory, balance=10000)
        payout_client.http_status = 400

        response = await client.post("/payouts/1/execute", params={"bypass_threshold": "true"})

        assert response.status_code == 502
        assert response.json()["error"]["message"] == "Failed to send payout."

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_summary_and_logs(
        self, client: AsyncClient, session_factory: SessionFactory
    ) -> None:
        method_id = await seed_profile(session_factory, balance=3000, max_payout=10000)
        await insert_record(session_factory, method_id, "successful", amount=2500)

        summary = await client.get("/payouts/1/summary")
        logs = await client.get("/payouts/1/logs", params={"limit": 5})

        assert summary.status_code == 200
        assert summary.json()["remaining"] == 7500
        assert logs.status_code == 200
        assert logs.json()["limit"] == 5
        assert logs.json()["total"] == 1
        assert [p["amount"] for p in logs.json()["payouts"]] == [2500]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_summary_without_schedule(self, client: AsyncClient) -> None:
        response = await client.get("/payouts/99/summary")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "no_payout_method"


class TestWebhookRoutes:
    """Test suite for the PayPal webhook endpoint."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_webhook_processed_then_duplicate(
        self, client: AsyncClient, session_factory: SessionFactory
    ) -> None:
        method_id = await seed_profile(session_factory)
        record_id = await insert_record(session_factory, method_id, "submitted")
        body = webhook_body("WH-1", "PAYMENT.PAYOUTSBATCH.SUCCESS", str(record_id))

        first = await client.post("/webhooks/paypal", content=body)
        second = await client.post("/webhooks/paypal", content=body)

        assert first.status_code == 200
        assert first.json() == {
            "status": "processed",
            "event_id": "WH-1",
            "payout_status": "successful",
        }
        assert second.json()["status"] == "duplicate"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_signature(
        self,
        client: AsyncClient,
        session_factory: SessionFactory,
        payout_client: FakePayoutClient,
    ) -> None:
        method_id = await seed_profile(session_factory)
        record_id = await insert_record(session_factory, method_id, "submitted")
        payout_client.verified = False

        response = await client.post(
            "/webhooks/paypal",
            content=webhook_body("WH-1", "PAYMENT.PAYOUTSBATCH.SUCCESS", str(record_id)),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "webhook_signature_invalid"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_malformed_payload(self, client: AsyncClient) -> None:
        response = await client.post("/webhooks/paypal", content="not json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "webhook_payload_invalid"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_batch(self, client: AsyncClient) -> None:
        response = await client.post(
            "/webhooks/paypal",
            content=webhook_body(
                "WH-1", "PAYMENT.PAYOUTSBATCH.SUCCESS", "6f1c2b4e-0000-4000-8000-000000000001"
            ),
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "unknown_batch"


class TestFeeAndMonitoringRoutes:
    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_checkout_total(self, client: AsyncClient) -> None:
        response = await client.post("/fees/checkout", json={"amount": 1000, "kind": "gems"})

        assert response.status_code == 200
        assert response.json() == {
            "amount": 1000,
            "platform_fee": 50,
            "vat_fee": 0,
            "total_amount": 1050,
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_checkout_unknown_kind(self, client: AsyncClient) -> None:
        response = await client.post("/fees/checkout", json={"amount": 1000, "kind": "tip"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient) -> None:
        await client.post("/fees/checkout", json={"amount": 1000})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "payout_executions_total" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
