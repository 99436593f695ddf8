"""Tests for notification endpoints."""

import uuid
from datetime import date, timedelta

import pytest

from app.models.shipment import ShipmentDirection


@pytest.fixture
async def due_tomorrow(make_shipment):
    return await make_shipment(
        direction=ShipmentDirection.OUTGOING,
        agreed_shipping_date=date.today() + timedelta(days=1),
    )


class TestCheckEndpoint:

    @pytest.mark.asyncio
    async def test_check_creates_then_is_idempotent(self, client, due_tomorrow):
        response = await client.post("/api/v1/notifications/check")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["created"] == 1
        assert data["failed"] == 0
        assert data["skipped_shipment_ids"] == []
        assert "timestamp" in data

        response = await client.post("/api/v1/notifications/check")
        assert response.json()["created"] == 0


class TestInboxEndpoints:

    @pytest.mark.asyncio
    async def test_list_and_stats(self, client, due_tomorrow):
        await client.post("/api/v1/notifications/check")

        response = await client.get("/api/v1/notifications", params={"shipment_id": str(due_tomorrow.id)})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["notifications"][0]["rule_id"] == "seller_shipping_deadline"
        assert data["notifications"][0]["severity"] == "critical"

        stats = (await client.get("/api/v1/notifications/stats")).json()
        assert stats["total_active"] == 1
        assert stats["by_severity"]["critical"] == 1

    @pytest.mark.asyncio
    async def test_read_and_dismiss(self, client, due_tomorrow):
        await client.post("/api/v1/notifications/check")
        listing = (await client.get("/api/v1/notifications")).json()
        notification_id = listing["notifications"][0]["id"]

        response = await client.post(f"/api/v1/notifications/{notification_id}/read")
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        response = await client.post(
            f"/api/v1/notifications/{notification_id}/dismiss", json={"actor": "ops.lead"}
        )
        assert response.status_code == 200
        assert response.json()["is_dismissed"] is True
        assert response.json()["dismissed_by"] == "ops.lead"

        assert (await client.get("/api/v1/notifications")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_unknown_notification_is_404(self, client):
        response = await client.post(f"/api/v1/notifications/{uuid.uuid4()}/read")
        assert response.status_code == 404
        response = await client.post(f"/api/v1/notifications/{uuid.uuid4()}/dismiss")
        assert response.status_code == 404
