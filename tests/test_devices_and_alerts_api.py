from __future__ import annotations

import httpx
import pytest


@pytest.mark.anyio
async def test_devices_crud_and_status(async_client: httpx.AsyncClient):
    payload = {"device_id": "greenhouse-1", "device_name": "Greenhouse 1", "device_type": "climate", "location": "North"}
    res = await async_client.post("/api/devices", json=payload)
    assert res.status_code == 201
    created = res.json()
    assert created["device_id"] == "greenhouse-1"
    assert created["status"] == "active"
    assert created["id"]

    res = await async_client.post("/api/devices", json=payload)
    assert res.status_code == 409

    res = await async_client.get("/api/devices/greenhouse-1")
    assert res.status_code == 200
    assert res.json()["location"] == "North"

    res = await async_client.patch("/api/devices/greenhouse-1/status", json={"status": "maintenance"})
    assert res.status_code == 200
    assert res.json()["status"] == "maintenance"

    res = await async_client.patch("/api/devices/greenhouse-1/status", json={"status": "retired"})
    assert res.status_code == 422

    res = await async_client.get("/api/devices")
    assert res.status_code == 200
    listed = res.json()
    assert listed["total"] == 1
    assert listed["items"][0]["device_id"] == "greenhouse-1"


@pytest.mark.anyio
async def test_device_not_found(async_client: httpx.AsyncClient):
    assert (await async_client.get("/api/devices/nope")).status_code == 404
    res = await async_client.patch("/api/devices/nope/status", json={"status": "inactive"})
    assert res.status_code == 404


@pytest.mark.anyio
async def test_create_device_validates_required_fields(async_client: httpx.AsyncClient):
    res = await async_client.post("/api/devices", json={"device_id": " ", "device_name": "x"})
    assert res.status_code == 400
    assert "device_id" in res.text


@pytest.mark.anyio
async def test_latest_and_history_after_ingest(async_client: httpx.AsyncClient):
    res = await async_client.get("/api/devices/h1/readings/latest")
    assert res.status_code == 404

    for temp in (10, 11, 12):
        res = await async_client.post("/api/ingest", json={"device_id": "h1", "temperature": temp})
        assert res.status_code == 200

    res = await async_client.get("/api/devices/h1/readings/latest")
    assert res.status_code == 200
    assert res.json()["temperature"] in (10, 11, 12)

    res = await async_client.get("/api/devices/h1/readings", params={"hours": 1000})
    assert res.status_code == 200
    body = res.json()
    assert body["hours"] == 72
    assert body["total"] == 3
    stamps = [item["timestamp"] for item in body["items"]]
    assert stamps == sorted(stamps)


@pytest.mark.anyio
async def test_active_alerts_and_resolve(async_client: httpx.AsyncClient):
    res = await async_client.post("/api/ingest", json={"device_id": "a1", "temperature": -5, "humidity": 90})
    assert res.json()["alerts_created"] == 2

    res = await async_client.get("/api/alerts/active")
    assert res.status_code == 200
    items = res.json()["items"]
    assert {i["alert_type"] for i in items} == {"low_temperature", "high_humidity"}
    assert all(i["is_resolved"] is False and i["resolved_at"] is None for i in items)

    alert_id = items[0]["id"]
    res = await async_client.post(f"/api/alerts/{alert_id}/resolve")
    assert res.status_code == 200
    first = res.json()
    assert first["is_resolved"] is True
    assert first["resolved_at"] is not None

    res = await async_client.post(f"/api/alerts/{alert_id}/resolve")
    assert res.status_code == 200
    assert res.json()["resolved_at"] == first["resolved_at"]

    res = await async_client.get("/api/alerts/active", params={"deviceId": "a1"})
    assert res.json()["total"] == 1

    res = await async_client.post("/api/alerts/missing/resolve")
    assert res.status_code == 404


@pytest.mark.anyio
async def test_operator_created_alert(async_client: httpx.AsyncClient):
    alert = {"device_id": "op1", "alert_type": "low_battery", "message": "Battery swap due", "severity": "critical"}
    res = await async_client.post("/api/alerts", json=alert)
    assert res.status_code == 400

    await async_client.post("/api/ingest", json={"device_id": "op1"})
    res = await async_client.post("/api/alerts", json=alert)
    assert res.status_code == 201
    assert res.json()["severity"] == "critical"

    res = await async_client.post("/api/alerts", json={**alert, "severity": "fatal"})
    assert res.status_code == 422


@pytest.mark.anyio
async def test_get_alert_by_id_includes_resolved(async_client: httpx.AsyncClient):
    await async_client.post("/api/ingest", json={"device_id": "g1", "battery_level": 4})
    alert_id = (await async_client.get("/api/alerts/active", params={"deviceId": "g1"})).json()["items"][0]["id"]

    res = await async_client.get(f"/api/alerts/{alert_id}")
    assert res.status_code == 200
    assert res.json()["alert_type"] == "low_battery"

    await async_client.post(f"/api/alerts/{alert_id}/resolve")
    res = await async_client.get(f"/api/alerts/{alert_id}")
    assert res.json()["is_resolved"] is True

    res = await async_client.get("/api/alerts/missing")
    assert res.status_code == 404
