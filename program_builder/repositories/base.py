import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from program_builder.core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def store_errors(action: str):
    """Переводит ошибки SQLAlchemy в PersistenceError (повторяемую)."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Ошибка хранилища при операции '{action}': {e}")
        raise PersistenceError(f"Не удалось выполнить операцию '{action}', повторите попытку") from e


class BaseRepository:
    """Репозитории только добавляют и flush-ат; коммитом управляет сервис."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _add(self, obj, action: str):
        async with store_errors(action):
            self.db.add(obj)
            await self.db.flush()
        return obj

    async def _delete(self, obj, action: str) -> None:
        async with store_errors(action):
            await self.db.delete(obj)
            await self.db.flush()

    async def _scalar(self, statement, action: str):
        async with store_errors(action):
            result = await self.db.execute(statement)
            return result.scalar_one_or_none()

    async def _scalars(self, statement, action: str):
        async with store_errors(action):
            result = await self.db.execute(statement)
            return list(result.scalars().all())
