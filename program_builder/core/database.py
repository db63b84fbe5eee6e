import logging

from program_builder.core.config import settings
from program_builder.core.base import Base
from program_builder.core.db import engine

# Импортируем ВСЕ модели, чтобы metadata знала о таблицах
from program_builder.models.program import (  # noqa: F401
    ProgramTemplate,
    ProgramTemplateDay,
    DayModule,
    ModuleExercise,
    ExercisePrescription,
)

logger = logging.getLogger(__name__)


async def init_database(bind=None):
    """Инициализация базы данных"""
    async with (bind or engine).begin() as conn:
        # Удаляем все таблицы если RESET_DATABASE=true
        if settings.RESET_DATABASE:
            logger.warning("RESET_DATABASE=true - пересоздаем БД")
            await conn.run_sync(Base.metadata.drop_all)

        # Создаем все таблицы
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Таблицы БД созданы/проверены")
