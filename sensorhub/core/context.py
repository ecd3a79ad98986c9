"""
Application context - the handles shared by the ingest loop and request handlers.
Built once at startup and passed explicitly.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sensorhub.core.config import Settings
from sensorhub.core.database import create_engine, create_session_maker
from sensorhub.services.broadcast import BroadcastHub
from sensorhub.services.writer import TelemetryWriter


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine | None
    session_maker: async_sessionmaker[AsyncSession]
    hub: BroadcastHub
    writer: TelemetryWriter


def build_context(settings: Settings) -> AppContext:
    engine = create_engine(settings)
    session_maker = create_session_maker(engine)
    return AppContext(
        settings=settings,
        engine=engine,
        session_maker=session_maker,
        hub=BroadcastHub(settings.broadcast_capacity),
        writer=TelemetryWriter(session_maker),
    )
