"""Unit tests for health endpoints."""

import pytest

from booking_engine.core.observability import SERVICE_NAME, SERVICE_VERSION


@pytest.mark.asyncio
async def test_health_ping_rpc(test_client):
    """Test the RPC-style health ping endpoint."""
    response = await test_client.post("/v1/health/ping", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == SERVICE_NAME
    assert data["version"] == SERVICE_VERSION
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client, auth_headers, flight):
    """Booking counters show up after a booking is made."""
    await test_client.post(
        "/v1/booking/create",
        json={
            "flight_id": str(flight.id),
            "passengers": [{"first_name": "Ada", "last_name": "Lovelace", "seat_number": "12A"}],
            "payment": {"card_number": "4111111111111111", "expiry": "2099-12", "ccv": "123"},
            "booking_date": "2025-01-15",
        },
        headers=auth_headers(),
    )

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert "bookings_created_total" in response.text
