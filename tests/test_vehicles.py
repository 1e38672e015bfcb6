import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app


async def _login(client) -> str:
    response = await client.post("/api/v1/auth/login", json={"username": "driver", "password": "driver123"})
    return response.json()["data"]["session_token"]


@pytest.mark.asyncio
async def test_guest_has_no_vehicles():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/vehicles", headers={"X-Session-Token": "guest-vehicles"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["data"] == []


@pytest.mark.asyncio
async def test_vehicle_from_authenticated_submission_is_listed():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        token = await _login(client)
        headers = {"X-Session-Token": token}
        await client.post(
            "/api/v1/diagnoses",
            data={
                "category": "brakes",
                "description": "Grinding when braking",
                "vehicle_make": "Honda",
                "vehicle_model": "Civic-listed",
                "vehicle_year": "2018",
                "mileage": "64000",
            },
            headers=headers,
        )
        response = await client.get("/api/v1/vehicles", headers=headers)

    vehicles = response.json()["data"]
    civic = [v for v in vehicles if v["model"] == "Civic-listed"]
    assert len(civic) == 1
    assert civic[0]["make"] == "Honda"
    assert civic[0]["year"] == 2018
    assert civic[0]["mileage"] == 64000
