from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, Optional, Set

from src.sensorhub.schemas.alerts import AlertOut
from src.sensorhub.schemas.readings import ReadingOut

logger = logging.getLogger(__name__)

EVENT_READING = "reading"
EVENT_ALERT = "alert"

ALERTS_CHANNEL = "alerts"


def readings_channel(device_id: str) -> str:
    return f"readings:{device_id}"


@dataclass(frozen=True)
class ChangeEvent:
    """A newly stored reading or alert, as pushed to subscribers."""

    kind: str
    device_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.kind, "device_id": self.device_id, "data": self.data}


_CLOSED = object()


class Subscription:
    """
    A live subscriber's inbox.

    Events are handed to the subscriber's own event loop, so publishers may run
    on any thread. Iterating yields events until the subscription is closed.
    """

    def __init__(self, notifier: "ChangeNotifier", channel: str, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.channel = channel
        self._notifier = notifier
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: Any) -> None:
        # Runs on self._loop.
        if event is _CLOSED:
            if self._queue.full():
                self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)
            return
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Subscriber queue full on channel=%s; dropping %s event", self.channel, event.kind)

    def _deliver(self, event: Any) -> bool:
        """Schedule event delivery on the subscriber loop. False if the loop is gone."""
        try:
            self._loop.call_soon_threadsafe(self._offer, event)
            return True
        except RuntimeError:
            return False

    async def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Wait for the next event; None once the subscription is closed."""
        # The close sentinel is consumed once; later reads must not block.
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def close(self) -> None:
        """Unregister and wake any pending reader."""
        if self._closed:
            return
        self._closed = True
        self._notifier.unsubscribe(self)
        self._deliver(_CLOSED)


class ChangeNotifier:
    """
    In-process fan-out of reading and alert events.

    Reading events reach subscribers of that reading's device; alert events reach
    every alert subscriber. Delivery is at-most-once with no replay: a late
    subscriber never sees earlier events, and a full subscriber queue drops.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = max(1, int(queue_size))
        self._channels: Dict[str, Set[Subscription]] = {}
        self._lock = Lock()

    def _subscribe(self, channel: str) -> Subscription:
        sub = Subscription(self, channel, asyncio.get_running_loop(), self._queue_size)
        with self._lock:
            self._channels.setdefault(channel, set()).add(sub)
        logger.debug("Subscribed channel=%s", channel)
        return sub

    # PUBLIC_INTERFACE
    def subscribe_readings(self, device_id: str) -> Subscription:
        """Subscribe to readings of one device. Must be called from a running event loop."""
        return self._subscribe(readings_channel(device_id))

    # PUBLIC_INTERFACE
    def subscribe_alerts(self) -> Subscription:
        """Subscribe to every alert. Must be called from a running event loop."""
        return self._subscribe(ALERTS_CHANNEL)

    # PUBLIC_INTERFACE
    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._channels.get(sub.channel)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                self._channels.pop(sub.channel, None)

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        with self._lock:
            if channel is not None:
                return len(self._channels.get(channel, ()))
            return sum(len(s) for s in self._channels.values())

    def _publish(self, channel: str, event: ChangeEvent) -> int:
        with self._lock:
            targets = list(self._channels.get(channel, ()))
        delivered = 0
        for sub in targets:
            if sub._deliver(event):
                delivered += 1
            else:
                logger.info("Dropping subscriber on channel=%s: event loop closed", channel)
                self.unsubscribe(sub)
        return delivered

    # PUBLIC_INTERFACE
    def publish_reading(self, reading: ReadingOut) -> int:
        """Push a stored reading to its device's subscribers. Returns the number of subscribers reached."""
        event = ChangeEvent(
            kind=EVENT_READING,
            device_id=reading.device_id,
            data=reading.model_dump(mode="json"),
        )
        return self._publish(readings_channel(reading.device_id), event)

    # PUBLIC_INTERFACE
    def publish_alert(self, alert: AlertOut) -> int:
        """Push a stored alert to every alert subscriber. Returns the number of subscribers reached."""
        event = ChangeEvent(
            kind=EVENT_ALERT,
            device_id=alert.device_id,
            data=alert.model_dump(mode="json"),
        )
        return self._publish(ALERTS_CHANNEL, event)

    def close_all(self) -> None:
        """Close every subscription (shutdown)."""
        with self._lock:
            subs = [s for group in self._channels.values() for s in group]
        for sub in subs:
            sub.close()
