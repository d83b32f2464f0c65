"""WebSocket endpoints pushing newly stored readings and alerts to dashboards.

Protocol:
1. Client connects to /ws/devices/{device_id}/readings or /ws/alerts
2. Server -> {type: "subscribed", channel}
3. Server -> {type: "reading"|"alert", device_id, data} for every new event
Events published before step 2 are never replayed.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from src.sensorhub.services.notifier import Subscription
from src.sensorhub.state import get_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


async def _drain_client(websocket: WebSocket) -> None:
    # Clients only listen; reading their frames is how a disconnect is noticed.
    while True:
        await websocket.receive_text()


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.to_message())


async def _serve(websocket: WebSocket, subscription: Subscription) -> None:
    tasks = []
    try:
        await websocket.send_json({"type": "subscribed", "channel": subscription.channel})
        tasks = [
            asyncio.create_task(_pump(websocket, subscription)),
            asyncio.create_task(_drain_client(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Realtime session on channel=%s ended with error: %r", subscription.channel, exc)
    finally:
        for task in tasks:
            task.cancel()
        subscription.close()
        logger.info("Realtime session closed channel=%s", subscription.channel)


@router.websocket("/ws/devices/{device_id}/readings")
async def device_readings_ws(websocket: WebSocket, device_id: str) -> None:
    """Stream new readings for one device."""
    await websocket.accept()
    subscription = get_state(websocket.app).notifier.subscribe_readings(device_id)
    await _serve(websocket, subscription)


@router.websocket("/ws/alerts")
async def alerts_ws(websocket: WebSocket) -> None:
    """Stream every new alert."""
    await websocket.accept()
    subscription = get_state(websocket.app).notifier.subscribe_alerts()
    await _serve(websocket, subscription)
