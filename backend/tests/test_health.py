import pytest


@pytest.mark.asyncio
async def test_health_endpoint_returns_200(client):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_endpoint_has_required_fields(client):
    response = await client.get("/api/v1/health")
    data = response.json()
    assert "status" in data
    assert "database" in data
    assert "redis" in data
    assert "scheduler" in data
    assert "timestamp" in data
    assert "environment" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_health_endpoint_reports_version(client):
    response = await client.get("/api/v1/health")
    data = response.json()
    assert data["version"] == "0.1.0"


@pytest.mark.asyncio
async def test_metrics_counts_effective_status(client, make_shipment):
    from app.models.shipment import ShipmentStatus

    await make_shipment(status=ShipmentStatus.SAILED)
    await make_shipment(status=ShipmentStatus.SAILED, status_override=ShipmentStatus.DELAYED)
    await make_shipment(status=ShipmentStatus.SAILED, is_deleted=True)

    response = await client.get("/api/v1/metrics")
    assert response.status_code == 200
    shipments = response.json()["shipments"]
    assert shipments["total"] == 2
    assert shipments["by_status"] == {"sailed": 1, "delayed": 1}
    assert shipments["overridden"] == 1


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/api/v1/health", headers={"X-Request-ID": "trace-42"})
    assert response.headers["X-Request-ID"] == "trace-42"
