from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from program_builder.models.program import DayModule, ModuleExercise
from program_builder.repositories.base import BaseRepository


class ModuleRepository(BaseRepository):
    async def get_by_id(self, module_id: int) -> Optional[DayModule]:
        return await self._scalar(
            select(DayModule).where(DayModule.id == module_id),
            "загрузка сессии",
        )

    async def get_with_exercises(self, module_id: int) -> Optional[DayModule]:
        """Сессия с упражнениями и предписаниями, всегда актуальное состояние из БД."""
        return await self._scalar(
            select(DayModule)
            .where(DayModule.id == module_id)
            .options(
                selectinload(DayModule.day),
                selectinload(DayModule.exercises).selectinload(ModuleExercise.prescription),
            )
            .execution_options(populate_existing=True),
            "загрузка сессии с упражнениями",
        )

    async def next_sort_order(self, day_id: int) -> int:
        """max(sort_order) + 1 внутри дня; для пустого дня 1."""
        current_max = await self._scalar(
            select(func.max(DayModule.sort_order)).where(DayModule.program_template_day_id == day_id),
            "расчёт порядка сессии",
        )
        return (current_max or 0) + 1

    async def add(self, module: DayModule) -> DayModule:
        return await self._add(module, "создание сессии")

    async def delete(self, module: DayModule) -> None:
        await self._delete(module, "удаление сессии")
