"""Explicitly owned runtime objects shared by the HTTP and WebSocket glue."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request, WebSocket

from .broadcast import LiveEventBroadcaster
from .config import Settings
from .services.ingestion import BulkIngestionCoordinator
from .services.query import TelemetryQueryEngine
from .storage import StorageGateway


@dataclass
class AppContext:
    settings: Settings
    gateway: StorageGateway
    ingestion: BulkIngestionCoordinator
    queries: TelemetryQueryEngine
    broadcaster: LiveEventBroadcaster

    @classmethod
    def build(cls, settings: Settings, gateway: StorageGateway | None = None) -> "AppContext":
        if gateway is None:
            gateway = StorageGateway(
                settings.redis_url,
                key_prefix=settings.key_prefix,
                max_connections=settings.redis_max_connections,
            )
        return cls(
            settings=settings,
            gateway=gateway,
            ingestion=BulkIngestionCoordinator(gateway, settings),
            queries=TelemetryQueryEngine(gateway, settings),
            broadcaster=LiveEventBroadcaster(settings.broadcast_send_timeout),
        )

    async def open(self) -> None:
        await self.gateway.open()

    async def close(self) -> None:
        await self.broadcaster.close()
        await self.gateway.close()


def get_context(request: Request) -> AppContext:
    """FastAPI dependency that provides the application context."""
    return request.app.state.context


def get_ws_context(websocket: WebSocket) -> AppContext:
    return websocket.app.state.context
