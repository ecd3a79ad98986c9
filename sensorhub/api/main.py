"""
Sensor Hub - API Server

Provides endpoints for:
- Live telemetry stream over WebSocket (/ws) and the 3D viewer page (/)
- Stored telemetry (/data, /data/{device})
- Generic named records (/items)
- Health check

The MQTT ingest loop runs as a background task for the lifetime of the app.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketState

from sensorhub.core.config import get_settings
from sensorhub.core.context import AppContext, build_context
from sensorhub.core.database import init_db
from sensorhub.models.item import Item
from sensorhub.models.telemetry import SensorData
from sensorhub.mqtt.ingest import build_ingest_loop
from sensorhub.mqtt.transport import Transport
from sensorhub.schemas.api import ItemCreate, ItemOut, SensorDataOut
from sensorhub.services.viewer import ViewerSession

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"

# How long shutdown waits for the ingest loop to drain
SHUTDOWN_TIMEOUT = 10.0


# ==================== DEPENDENCIES ====================

def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def get_db(context: AppContext = Depends(get_context)):
    """Dependency for getting database session."""
    async with context.session_maker() as session:
        yield session


router = APIRouter()


# ==================== LIVE VIEW ====================

@router.get("/")
async def viewer_page():
    """3D cube driven by the live orientation stream."""
    return FileResponse(STATIC_DIR / "viewer.html", media_type="text/html")


@router.websocket("/ws")
async def viewer_socket(websocket: WebSocket):
    """Stream every raw device payload to the browser, one text frame each."""
    context: AppContext = websocket.app.state.context

    async def wait_closed():
        # Inbound frames are ignored; only the close matters
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

    session = ViewerSession(
        context.hub,
        send=websocket.send_text,
        wait_closed=wait_closed,
        name=f"viewer {websocket.client.host if websocket.client else '?'}",
    )
    try:
        await websocket.accept()
        await session.run()
    finally:
        session.close()

    if websocket.client_state == WebSocketState.CONNECTED:
        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Viewer socket already gone: {e!r}")


# ==================== TELEMETRY ====================

@router.get("/data", response_model=list[SensorDataOut])
async def list_data(
    limit: int | None = Query(None, ge=1, le=1000),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_db),
):
    """Most recent readings from all devices, newest first."""
    return await _latest_readings(session, limit or context.settings.telemetry_query_limit)


@router.get("/data/{device}", response_model=list[SensorDataOut])
async def list_data_by_device(
    device: str,
    limit: int | None = Query(None, ge=1, le=1000),
    context: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_db),
):
    """Most recent readings from one device, newest first."""
    return await _latest_readings(
        session, limit or context.settings.telemetry_query_limit, device=device
    )


async def _latest_readings(
    session: AsyncSession, limit: int, device: str | None = None
) -> list[SensorData]:
    query = select(SensorData)
    if device is not None:
        query = query.where(SensorData.device == device)
    query = query.order_by(SensorData.ts.desc(), SensorData.id.desc()).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


# ==================== ITEMS ====================

@router.post("/items", response_model=ItemOut)
async def create_item(payload: ItemCreate, session: AsyncSession = Depends(get_db)):
    item = Item(id=uuid.uuid4(), name=payload.name)
    session.add(item)
    await session.commit()
    return item


@router.get("/items", response_model=list[ItemOut])
async def list_items(session: AsyncSession = Depends(get_db)):
    result = await session.execute(select(Item))
    return list(result.scalars().all())


# ==================== HEALTH CHECK ====================

@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    context: AppContext = request.app.state.context
    ingest = getattr(request.app.state, "ingest", None)
    return {
        "status": "ok",
        "viewers": context.hub.subscriber_count,
        "ingest": ingest.stats() if ingest is not None else None,
    }


# ==================== APP ====================

async def database_error_handler(request: Request, exc: Exception):
    logger.error(f"❌ Database error on {request.url.path}: {exc}")
    return JSONResponse({"error": "Database unavailable"}, status_code=503)


def create_app(context: AppContext | None = None, transport: Transport | None = None) -> FastAPI:
    """
    Build the application.

    Without a context one is built from the environment on startup.
    `transport` replaces the MQTT client (used by tests).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.context is None:
            app.state.context = build_context(get_settings())
        ctx: AppContext = app.state.context
        settings = ctx.settings

        if settings.create_tables and ctx.engine is not None:
            await init_db(ctx.engine)

        ingest_task = None
        if settings.ingest_enabled:
            app.state.ingest = build_ingest_loop(ctx, transport)
            ingest_task = asyncio.create_task(app.state.ingest.run(), name="ingest")

        try:
            yield
        finally:
            if ingest_task is not None:
                await app.state.ingest.stop()
                try:
                    await asyncio.wait_for(ingest_task, timeout=SHUTDOWN_TIMEOUT)
                except asyncio.TimeoutError:
                    logger.warning("⚠️ Ingest loop did not drain in time, cancelled")
            ctx.hub.close()
            if ctx.engine is not None:
                await ctx.engine.dispose()

    app = FastAPI(
        title="Sensor Hub API",
        description="Live and stored telemetry from ESP32 sensor devices",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.context = context
    app.state.ingest = None
    app.include_router(router)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(OSError, database_error_handler)
    return app


# ==================== MAIN ====================

def main():
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(build_context(settings)), host=settings.http_host, port=settings.http_port)


if __name__ == "__main__":
    main()
