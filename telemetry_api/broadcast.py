"""Live fan-out of telemetry events to connected subscribers.

The registry is transport-agnostic: anything with an async ``send(event, data)``
can subscribe. Registration, removal and the publish snapshot run under one
lock, so a publish never sees a subscriber half-added or half-removed. Sends
happen outside the lock, so a stalled subscriber cannot block the registry.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Transport(Protocol):
    async def send(self, event: str, data: Any) -> None: ...


class Subscriber:
    """One live connection. Identity is fixed at creation."""

    def __init__(self, transport: Transport, subscriber_id: str | None = None) -> None:
        self.id = subscriber_id or uuid.uuid4().hex
        self.transport = transport
        self.state = SubscriberState.CONNECTING

    async def send(self, event: str, data: Any) -> None:
        await self.transport.send(event, data)

    def __repr__(self) -> str:
        return f"Subscriber({self.id}, {self.state.value})"


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the ``{"event", "data"}`` frame format."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_json({"event": event, "data": data})


class LiveEventBroadcaster:
    def __init__(self, send_timeout: float = 5.0) -> None:
        self._subscribers: dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return subscriber.id in self._subscribers

    async def connect(self, subscriber: Subscriber) -> None:
        if subscriber.state is SubscriberState.DISCONNECTED:
            raise ValueError(f"{subscriber!r} is already disconnected")
        async with self._lock:
            subscriber.state = SubscriberState.CONNECTED
            self._subscribers[subscriber.id] = subscriber
        logger.info(f"Subscriber {subscriber.id} connected ({len(self._subscribers)} live)")

    async def disconnect(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.pop(subscriber.id, None)
            subscriber.state = SubscriberState.DISCONNECTED
        logger.info(f"Subscriber {subscriber.id} disconnected ({len(self._subscribers)} live)")

    async def _deliver(self, subscriber: Subscriber, event: str, data: Any) -> bool:
        try:
            if self._send_timeout and self._send_timeout > 0:
                await asyncio.wait_for(subscriber.send(event, data), self._send_timeout)
            else:
                await subscriber.send(event, data)
        except asyncio.TimeoutError:
            logger.warning(f"Dropping subscriber {subscriber.id}: send timed out after {self._send_timeout}s")
            return False
        except Exception as exc:
            logger.warning(f"Dropping subscriber {subscriber.id}: send failed ({exc})")
            return False
        return True

    async def publish(self, event: str, data: Any, origin: Subscriber | None = None) -> int:
        """Send ``event`` to every connected subscriber except ``origin``.

        Targets are snapshotted under the lock in registry order; the sends
        run concurrently outside it, each bounded by ``send_timeout``. A
        failed or stalled send is logged and the subscriber dropped.
        Returns the number of successful deliveries.
        """
        async with self._lock:
            targets = [
                s for s in self._subscribers.values() if origin is None or s.id != origin.id
            ]
        if not targets:
            return 0
        results = await asyncio.gather(*(self._deliver(s, event, data) for s in targets))
        dead = [s for s, delivered in zip(targets, results) if not delivered]
        if dead:
            async with self._lock:
                for subscriber in dead:
                    self._subscribers.pop(subscriber.id, None)
                    subscriber.state = SubscriberState.DISCONNECTED
        return sum(results)

    async def close(self) -> None:
        async with self._lock:
            for subscriber in self._subscribers.values():
                subscriber.state = SubscriberState.DISCONNECTED
            self._subscribers.clear()
