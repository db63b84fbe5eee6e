from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from program_builder.models.program import ModuleExercise, ExerciseSectionEnum
from program_builder.repositories.base import BaseRepository


class ExerciseRepository(BaseRepository):
    """Упражнения сессии и их предписания (1:1, живут и удаляются вместе)."""

    async def get_by_id(self, entry_id: int) -> Optional[ModuleExercise]:
        return await self._scalar(
            select(ModuleExercise)
            .where(ModuleExercise.id == entry_id)
            .options(selectinload(ModuleExercise.prescription))
            .execution_options(populate_existing=True),
            "загрузка упражнения",
        )

    async def get_at_position(
        self, module_id: int, section: ExerciseSectionEnum, sort_order: int
    ) -> Optional[ModuleExercise]:
        return await self._scalar(
            select(ModuleExercise)
            .where(
                ModuleExercise.day_module_id == module_id,
                ModuleExercise.section == section,
                ModuleExercise.sort_order == sort_order,
            )
            .limit(1),
            "поиск упражнения по позиции",
        )

    async def next_sort_order(self, module_id: int, section: ExerciseSectionEnum) -> int:
        current_max = await self._scalar(
            select(func.max(ModuleExercise.sort_order)).where(
                ModuleExercise.day_module_id == module_id,
                ModuleExercise.section == section,
            ),
            "расчёт порядка упражнения",
        )
        return (current_max or 0) + 1

    async def add(self, entry: ModuleExercise) -> ModuleExercise:
        return await self._add(entry, "добавление упражнения")

    async def delete(self, entry: ModuleExercise) -> None:
        await self._delete(entry, "удаление упражнения")
