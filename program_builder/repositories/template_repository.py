from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload

from program_builder.models.program import (
    ProgramTemplate,
    ProgramTemplateDay,
    DayModule,
    ModuleExercise,
    VisibilityEnum,
)
from program_builder.repositories.base import BaseRepository


class TemplateRepository(BaseRepository):
    async def get_by_id(self, template_id: int) -> Optional[ProgramTemplate]:
        return await self._scalar(
            select(ProgramTemplate).where(ProgramTemplate.id == template_id),
            "загрузка программы",
        )

    async def get_with_tree(self, template_id: int) -> Optional[ProgramTemplate]:
        """Программа целиком: дни → сессии → упражнения → предписания."""
        return await self._scalar(
            select(ProgramTemplate)
            .where(ProgramTemplate.id == template_id)
            .options(
                selectinload(ProgramTemplate.days)
                .selectinload(ProgramTemplateDay.modules)
                .selectinload(DayModule.exercises)
                .selectinload(ModuleExercise.prescription)
            )
            .execution_options(populate_existing=True),
            "загрузка дерева программы",
        )

    async def list_visible(
        self,
        coach_id: str,
        search: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> List[ProgramTemplate]:
        """Свои программы тренера плюс общие (shared), сначала недавно изменённые."""
        query = select(ProgramTemplate).where(
            or_(
                ProgramTemplate.owner_coach_id == coach_id,
                ProgramTemplate.visibility == VisibilityEnum.shared,
            )
        )
        if search:
            query = query.where(ProgramTemplate.title.ilike(f"%{search}%"))
        query = query.order_by(ProgramTemplate.updated_at.desc(), ProgramTemplate.id.desc())

        templates = await self._scalars(query, "список программ")

        # Теги хранятся JSON-списком, фильтруем на стороне приложения
        if tags:
            wanted = set(tags)
            templates = [t for t in templates if wanted.issubset(set(t.tags or []))]
        return templates

    async def add(self, template: ProgramTemplate) -> ProgramTemplate:
        return await self._add(template, "создание программы")

    async def delete(self, template: ProgramTemplate) -> None:
        await self._delete(template, "удаление программы")
