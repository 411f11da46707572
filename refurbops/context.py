"""
Application context.

Built once at process start (FastAPI lifespan, CLI, or test fixture) and passed
into every core operation. Nothing in the core reads environment variables or
module-level engines directly.
"""
from dataclasses import dataclass, field
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from refurbops.config import Settings, get_settings
from refurbops.core.clock import Clock, utcnow
from refurbops.database import (
    create_engine_from_settings, create_session_factory, init_db, session_scope,
)
from refurbops.services.email_service import NotificationChannel, build_notification_channel

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    channel: NotificationChannel
    clock: Clock = field(default=utcnow)

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        channel: Optional[NotificationChannel] = None,
        clock: Optional[Clock] = None,
    ) -> "AppContext":
        settings = settings or get_settings()
        engine = create_engine_from_settings(settings)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            channel=channel or build_notification_channel(settings),
            clock=clock or utcnow,
        )

    def session(self):
        """Unit of work: commits on success, rolls back on any exception."""
        return session_scope(self.session_factory)

    def now(self):
        return self.clock()

    async def init_db(self) -> None:
        await init_db(self.engine)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")
