from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .context import AppContext
from .errors import StorageError
from .routers.admin import router as admin_router
from .routers.telemetry import router as telemetry_router
from .storage import StorageGateway
from .ws import ws_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, gateway: StorageGateway | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Telemetry Platform API")
    app.state.context = AppContext.build(settings, gateway)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(telemetry_router)
    app.include_router(admin_router)
    app.include_router(ws_router)

    @app.get("/verifyMe")
    async def verify_me() -> dict[str, str]:
        return {"message": "IoT platform is alive"}

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        ctx: AppContext = request.app.state.context
        storage_ok = await ctx.gateway.ping()
        return {
            "status": "ok" if storage_ok else "degraded",
            "storage": ctx.gateway.state,
            "subscribers": len(ctx.broadcaster),
        }

    @app.on_event("startup")
    async def startup() -> None:
        try:
            await app.state.context.open()
            logger.info("Storage connected successfully")
        except StorageError as e:
            # requests fail with 500/internal until the store comes back
            logger.warning(f"Storage unavailable, running without persistence: {e}")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await app.state.context.close()
        logger.info("Storage connection closed")

    return app


app = create_app()
