from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from program_builder.models.program import ProgramTemplateDay, DayModule, ModuleExercise
from program_builder.repositories.base import BaseRepository


def default_day_title(day_index: int) -> str:
    return f"Day {day_index}"


class DayRepository(BaseRepository):
    async def get_by_index(self, template_id: int, day_index: int) -> Optional[ProgramTemplateDay]:
        return await self._scalar(
            select(ProgramTemplateDay).where(
                ProgramTemplateDay.program_template_id == template_id,
                ProgramTemplateDay.day_index == day_index,
            ),
            "поиск дня по индексу",
        )

    async def get_or_create(self, template_id: int, day_index: int) -> ProgramTemplateDay:
        """Найти или создать день по (template_id, day_index). Повторный вызов не плодит строки."""
        day = await self.get_by_index(template_id, day_index)
        if day:
            return day

        day = ProgramTemplateDay(
            program_template_id=template_id,
            day_index=day_index,
            day_title=default_day_title(day_index),
        )
        return await self._add(day, "создание дня")

    async def list_for_template(self, template_id: int) -> List[ProgramTemplateDay]:
        """Дни программы вместе с сессиями, по возрастанию day_index."""
        return await self._scalars(
            select(ProgramTemplateDay)
            .where(ProgramTemplateDay.program_template_id == template_id)
            .options(selectinload(ProgramTemplateDay.modules))
            .order_by(ProgramTemplateDay.day_index)
            .execution_options(populate_existing=True),
            "загрузка дней программы",
        )

    async def list_with_tree(self, template_id: int, day_indices: List[int]) -> List[ProgramTemplateDay]:
        """Дни с сессиями, упражнениями и предписаниями для глубокого копирования."""
        return await self._scalars(
            select(ProgramTemplateDay)
            .where(
                ProgramTemplateDay.program_template_id == template_id,
                ProgramTemplateDay.day_index.in_(day_indices),
            )
            .options(
                selectinload(ProgramTemplateDay.modules)
                .selectinload(DayModule.exercises)
                .selectinload(ModuleExercise.prescription)
            )
            .order_by(ProgramTemplateDay.day_index)
            .execution_options(populate_existing=True),
            "загрузка дней для копирования",
        )

    async def add(self, day: ProgramTemplateDay) -> ProgramTemplateDay:
        return await self._add(day, "создание дня")
