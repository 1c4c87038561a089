import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import get_settings
from .database import async_session_factory, init_db
from .events.manager import manager
from .routers import admin, custom_rooms, wallet
from .security import decode_token
from .services.room_cleanup import expire_stale_open_rooms

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    await init_db()
    cleanup_task: asyncio.Task | None = None
    if settings.open_room_ttl_minutes:
        cleanup_task = asyncio.create_task(_room_expiry_loop())
    yield
    if cleanup_task:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(custom_rooms.router, prefix=settings.api_prefix)
    app.include_router(admin.router, prefix=settings.api_prefix)
    app.include_router(wallet.router, prefix=settings.api_prefix)

    evidence_dir = Path(settings.evidence_dir)
    evidence_dir.mkdir(parents=True, exist_ok=True)
    app.mount(settings.evidence_base_url, StaticFiles(directory=evidence_dir), name="evidence")

    @app.get("/healthz")
    async def healthcheck():
        return {"status": "ok"}

    @app.websocket("/ws/custom-rooms/{room_id}")
    async def room_socket(websocket: WebSocket, room_id: str):
        await manager.connect_room(room_id, websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect_room(room_id, websocket)

    @app.websocket("/ws/dashboard")
    async def dashboard_socket(websocket: WebSocket):
        await manager.connect_dashboard(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect_dashboard(websocket)

    @app.websocket("/ws/notifications")
    async def notification_socket(websocket: WebSocket, token: str | None = Query(default=None)):
        if not token:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        try:
            decoded = decode_token(token)
        except ValueError:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        user_id = decoded.get("sub")
        if not user_id:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await manager.connect_user(user_id, websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect_user(user_id, websocket)

    return app


async def _room_expiry_loop() -> None:
    interval = max(60, settings.room_cleanup_interval_seconds)
    ttl = timedelta(minutes=max(1, settings.open_room_ttl_minutes or 0))
    try:
        while True:
            await asyncio.sleep(interval)
            cutoff = datetime.now(timezone.utc) - ttl
            try:
                expired = await expire_stale_open_rooms(async_session_factory, cutoff=cutoff)
                if expired:
                    logger.info("Expired %s open custom rooms", expired)
            except Exception:  # noqa: BLE001
                logger.exception("Custom room expiry loop failed")
    except asyncio.CancelledError:
        logger.debug("Custom room expiry loop cancelled")
        raise


app = create_app()
