from __future__ import annotations

from fastapi.testclient import TestClient


def test_device_reading_stream_only_carries_that_device(sync_client: TestClient):
    with sync_client.websocket_connect("/ws/devices/d1/readings") as ws:
        assert ws.receive_json() == {"type": "subscribed", "channel": "readings:d1"}

        assert sync_client.post("/api/ingest", json={"device_id": "d2", "temperature": 5}).status_code == 200
        assert sync_client.post("/api/ingest", json={"device_id": "d1", "temperature": 7}).status_code == 200

        event = ws.receive_json()
        assert event["type"] == "reading"
        assert event["device_id"] == "d1"
        assert event["data"]["temperature"] == 7


def test_alert_stream_receives_each_stored_alert(sync_client: TestClient):
    with sync_client.websocket_connect("/ws/alerts") as ws:
        assert ws.receive_json()["type"] == "subscribed"

        res = sync_client.post("/api/ingest", json={"device_id": "d9", "temperature": 40, "battery_level": 15})
        assert res.json()["alerts_created"] == 2

        types = [ws.receive_json()["data"]["alert_type"] for _ in range(2)]
        assert types == ["high_temperature", "low_battery"]


def test_disconnect_unregisters_subscriber(sync_client: TestClient, state):
    with sync_client.websocket_connect("/ws/alerts") as ws:
        ws.receive_json()
        assert state.notifier.subscriber_count() == 1

    res = sync_client.post("/api/ingest", json={"device_id": "d10", "humidity": 95})
    assert res.status_code == 200
    assert state.notifier.subscriber_count() == 0
