import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from program_builder.core.config import settings

logger = logging.getLogger(__name__)


def create_engine_for(url: str, **kwargs):
    """Async-движок; для SQLite включаем внешние ключи, иначе не работают каскады."""
    engine = create_async_engine(url, future=True, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


DATABASE_URL = settings.async_database_url
logger.info("ASYNC DATABASE_URL = %s", DATABASE_URL.split("@")[-1])

engine = create_engine_for(
    DATABASE_URL,
    echo=settings.SQL_ECHO,
    pool_pre_ping=True
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False
)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
