"""
Сборка и копирование программ: дни, сессии, упражнения, предписания.

Все операции работают поверх одной AsyncSession: репозитории делают add/flush,
коммит делается здесь, один раз на операцию. Любая копия состоит из новых строк с новыми
id, исходное поддерево никогда не меняется, а скопированная сессия всегда
начинает жизнь в статусе draft.

Копирование недели и дублирование программы являются многошаговыми операциями.
При settings.ATOMIC_COPY=True они идут одной транзакцией и откатываются
при ошибке; при False каждый модуль коммитится отдельно, и повторный запуск
после сбоя создаст дубликаты уже записанных модулей.
"""
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from program_builder.core.config import settings
from program_builder.core.exceptions import (
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from program_builder.models.program import (
    PRESCRIPTION_COPY_FIELDS,
    DayModule,
    ExercisePrescription,
    ExerciseSectionEnum,
    ModuleExercise,
    ModuleStatusEnum,
    ProgramTemplate,
    ProgramTemplateDay,
    VisibilityEnum,
)
from program_builder.repositories.base import store_errors
from program_builder.repositories.day_repository import DayRepository
from program_builder.repositories.exercise_repository import ExerciseRepository
from program_builder.repositories.module_repository import ModuleRepository
from program_builder.repositories.template_repository import TemplateRepository
from program_builder.schemas.program import (
    CalendarDay,
    CalendarResponse,
    ClipboardRef,
    DayUpdate,
    ExerciseCreate,
    ExerciseUpdate,
    ModuleUpdate,
    PrescriptionInput,
    PrescriptionUpdate,
    SessionMeta,
    TemplateCreate,
    TemplateUpdate,
)
from program_builder.services.calendar_projector import CalendarProjector

logger = logging.getLogger(__name__)

SECTION_ORDER = [
    ExerciseSectionEnum.warmup,
    ExerciseSectionEnum.main,
    ExerciseSectionEnum.accessory,
    ExerciseSectionEnum.cooldown,
]

DEFAULT_PRESCRIPTION_COLUMNS = [
    {"id": "sets", "type": "sets", "label": "Sets", "visible": True, "order": 0},
    {"id": "reps", "type": "rep_range", "label": "Reps", "visible": True, "order": 1},
    {"id": "weight", "type": "weight", "label": "Weight", "visible": True, "order": 2, "unit": "kg"},
    {"id": "rir", "type": "rir", "label": "RIR", "visible": True, "order": 3},
    {"id": "rest", "type": "rest", "label": "Rest", "visible": True, "order": 4, "unit": "sec"},
]

# NOT NULL колонки: явный null в PATCH означает "не менять"
TEMPLATE_REQUIRED_FIELDS = ("tags", "visibility")
PRESCRIPTION_REQUIRED_FIELDS = ("set_count", "column_config", "allow_client_extra_sets")


@dataclass
class IdMap:
    """Таблица соответствия старый id → новый id в рамках одной операции копирования."""
    days: Dict[int, int] = field(default_factory=dict)
    modules: Dict[int, int] = field(default_factory=dict)
    exercises: Dict[int, int] = field(default_factory=dict)
    prescriptions: Dict[int, int] = field(default_factory=dict)


def ordered_exercises(module: DayModule) -> List[ModuleExercise]:
    def key(entry):
        section = ExerciseSectionEnum(entry.section)
        return SECTION_ORDER.index(section), entry.sort_order, entry.id

    return sorted(module.exercises or [], key=key)


def ordered_modules(modules) -> List[DayModule]:
    return sorted(modules or [], key=lambda m: (m.sort_order, m.id))


class CompositionEngine:
    def __init__(
        self,
        db: AsyncSession,
        atomic_copy: Optional[bool] = None,
        copy_title_suffix: Optional[str] = None,
    ):
        self.db = db
        self.templates = TemplateRepository(db)
        self.days = DayRepository(db)
        self.modules = ModuleRepository(db)
        self.exercises = ExerciseRepository(db)
        self.atomic_copy = settings.ATOMIC_COPY if atomic_copy is None else atomic_copy
        self.copy_title_suffix = (
            settings.COPY_TITLE_SUFFIX if copy_title_suffix is None else copy_title_suffix
        )

    # ==========================
    # ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ
    # ==========================

    @staticmethod
    def _require_title(title: Optional[str], what: str = "Название") -> str:
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValidationError(f"{what} не может быть пустым")
        return cleaned

    @staticmethod
    def _require_day_index(day_index: int) -> None:
        if day_index is None or day_index < 1:
            raise ValidationError(f"day_index должен быть >= 1, получено {day_index}")

    @staticmethod
    def _require_copyable(module: DayModule) -> None:
        # Упражнение без предписания копировать нельзя
        for entry in module.exercises or []:
            if entry.prescription is None:
                raise ValidationError(
                    f"У упражнения {entry.id} в сессии '{module.title}' нет предписания, копирование невозможно"
                )

    @staticmethod
    def _drop_nulls(changes: Dict[str, Any], required: tuple) -> Dict[str, Any]:
        return {k: v for k, v in changes.items() if v is not None or k not in required}

    async def _commit(self, action: str) -> None:
        async with store_errors(action):
            await self.db.commit()

    @asynccontextmanager
    async def _operation(self, action: str):
        """Одна операция, один коммит; при любой ошибке откатываемся и пробрасываем её дальше."""
        try:
            yield
            await self._commit(action)
        except Exception:
            await self.db.rollback()
            raise

    async def _get_template(self, template_id: int) -> ProgramTemplate:
        template = await self.templates.get_by_id(template_id)
        if template is None:
            raise NotFoundError("Программа", template_id)
        return template

    async def _get_module(self, module_id: int) -> DayModule:
        module = await self.modules.get_by_id(module_id)
        if module is None:
            raise NotFoundError("Сессия", module_id)
        return module

    async def _get_exercise(self, entry_id: int) -> ModuleExercise:
        entry = await self.exercises.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError("Упражнение", entry_id)
        return entry

    @staticmethod
    def _clone_prescription(source: ExercisePrescription) -> ExercisePrescription:
        # JSON-поля копируем глубоко, чтобы копия не делила изменяемые объекты с источником
        return ExercisePrescription(
            **{name: copy.deepcopy(getattr(source, name)) for name in PRESCRIPTION_COPY_FIELDS}
        )

    async def _deep_copy_module(
        self,
        source: DayModule,
        target_day_id: int,
        sort_order: int,
        id_map: IdMap,
    ) -> DayModule:
        """Новая сессия (draft) со всеми упражнениями и предписаниями источника.

        Родитель вставляется раньше детей: порядок вставок обеспечивает unit of work
        при flush, так как дерево собирается через relationship-коллекции.
        """
        source_entries = ordered_exercises(source)
        clone_entries = [
            ModuleExercise(
                exercise_id=entry.exercise_id,
                section=entry.section,
                sort_order=entry.sort_order,
                instructions=entry.instructions,
                prescription=self._clone_prescription(entry.prescription),
            )
            for entry in source_entries
        ]
        clone = DayModule(
            program_template_day_id=target_day_id,
            module_owner_coach_id=source.module_owner_coach_id,
            module_type=source.module_type,
            session_type=source.session_type,
            session_timing=source.session_timing,
            title=source.title,
            sort_order=sort_order,
            status=ModuleStatusEnum.draft,
            exercises=clone_entries,
        )
        await self.modules.add(clone)

        id_map.modules[source.id] = clone.id
        for src_entry, new_entry in zip(source_entries, clone_entries):
            id_map.exercises[src_entry.id] = new_entry.id
            id_map.prescriptions[src_entry.prescription.id] = new_entry.prescription.id
        return clone

    # ==========================
    # ПРОГРАММЫ
    # ==========================

    async def create_template(self, coach_id: str, data: TemplateCreate) -> ProgramTemplate:
        title = self._require_title(data.title, "Название программы")
        template = ProgramTemplate(
            owner_coach_id=coach_id,
            title=title,
            description=data.description,
            level=data.level,
            tags=list(dict.fromkeys(data.tags)),
            visibility=data.visibility,
        )
        async with self._operation("создание программы"):
            await self.templates.add(template)
        logger.info(f"Программа {template.id} '{template.title}' создана тренером {coach_id}")
        return template

    async def get_template(self, template_id: int) -> ProgramTemplate:
        return await self._get_template(template_id)

    async def list_templates(
        self,
        coach_id: str,
        search: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> List[ProgramTemplate]:
        return await self.templates.list_visible(coach_id, search=search, tags=tags)

    async def update_template(self, template_id: int, data: TemplateUpdate) -> ProgramTemplate:
        changes = self._drop_nulls(data.model_dump(exclude_unset=True), TEMPLATE_REQUIRED_FIELDS)
        if "title" in changes:
            changes["title"] = self._require_title(changes["title"], "Название программы")
        if "tags" in changes:
            changes["tags"] = list(dict.fromkeys(changes["tags"]))

        async with self._operation("обновление программы"):
            template = await self._get_template(template_id)
            for name, value in changes.items():
                setattr(template, name, value)
            async with store_errors("обновление программы"):
                await self.db.flush()
        return template

    async def delete_template(self, template_id: int) -> None:
        async with self._operation("удаление программы"):
            template = await self._get_template(template_id)
            await self.templates.delete(template)
        logger.info(f"Программа {template_id} удалена")

    async def update_day(self, template_id: int, day_index: int, data: DayUpdate) -> ProgramTemplateDay:
        self._require_day_index(day_index)
        changes = data.model_dump(exclude_unset=True)
        if "day_title" in changes:
            changes["day_title"] = self._require_title(changes["day_title"], "Название дня")

        async with self._operation("обновление дня"):
            await self._get_template(template_id)
            day = await self.days.get_or_create(template_id, day_index)
            for name, value in changes.items():
                setattr(day, name, value)
            async with store_errors("обновление дня"):
                await self.db.flush()
        return day

    # ==========================
    # СЕССИИ
    # ==========================

    async def add_session(self, template_id: int, day_index: int, meta: SessionMeta) -> DayModule:
        """Добавить сессию в день программы; день создаётся при первой записи."""
        title = self._require_title(meta.title, "Название сессии")
        self._require_day_index(day_index)

        async with self._operation("добавление сессии"):
            template = await self._get_template(template_id)
            day = await self.days.get_or_create(template_id, day_index)
            sort_order = await self.modules.next_sort_order(day.id)
            module = DayModule(
                program_template_day_id=day.id,
                module_owner_coach_id=meta.module_owner or template.owner_coach_id,
                module_type=meta.module_type or meta.session_type.value,
                session_type=meta.session_type,
                session_timing=meta.session_timing,
                title=title,
                sort_order=sort_order,
                status=ModuleStatusEnum.draft,
            )
            await self.modules.add(module)

        logger.info(f"Сессия {module.id} '{title}' добавлена в программу {template_id}, день {day_index}")
        return module

    async def get_module(self, module_id: int) -> DayModule:
        module = await self.modules.get_with_exercises(module_id)
        if module is None:
            raise NotFoundError("Сессия", module_id)
        return module

    async def update_module(self, module_id: int, data: ModuleUpdate) -> DayModule:
        changes = data.model_dump(exclude_unset=True)
        if "title" in changes:
            changes["title"] = self._require_title(changes["title"], "Название сессии")
        owner = changes.pop("module_owner", None)
        changes = {k: v for k, v in changes.items() if v is not None}

        async with self._operation("обновление сессии"):
            module = await self._get_module(module_id)
            for name, value in changes.items():
                setattr(module, name, value)
            if owner:
                module.module_owner_coach_id = owner
            async with store_errors("обновление сессии"):
                await self.db.flush()
        return module

    async def set_module_status(self, module_id: int, status: ModuleStatusEnum) -> DayModule:
        async with self._operation("смена статуса сессии"):
            module = await self._get_module(module_id)
            module.status = status
            async with store_errors("смена статуса сессии"):
                await self.db.flush()
        logger.info(f"Сессия {module_id}: статус {ModuleStatusEnum(status).value}")
        return module

    async def toggle_module_status(self, module_id: int) -> DayModule:
        """draft ↔ published. На упражнения и предписания не влияет."""
        module = await self._get_module(module_id)
        new_status = (
            ModuleStatusEnum.draft
            if module.status == ModuleStatusEnum.published
            else ModuleStatusEnum.published
        )
        return await self.set_module_status(module_id, new_status)

    async def delete_module(self, module_id: int) -> None:
        async with self._operation("удаление сессии"):
            module = await self._get_module(module_id)
            await self.modules.delete(module)
        logger.info(f"Сессия {module_id} удалена")

    # ==========================
    # КОПИРОВАНИЕ / ВСТАВКА СЕССИИ
    # ==========================

    @staticmethod
    def copy_session(module_id: int) -> ClipboardRef:
        """Запоминаем только id: содержимое читается в момент вставки."""
        return ClipboardRef(module_id=module_id)

    async def paste_session(
        self,
        clipboard: ClipboardRef,
        template_id: int,
        target_day_index: int,
    ) -> DayModule:
        """Глубокая копия текущего состояния сессии из буфера в указанный день.

        Вставка в тот же день, где лежит источник, создаёт соседний дубликат.
        """
        self._require_day_index(target_day_index)

        async with self._operation("вставка сессии"):
            await self._get_template(template_id)
            source = await self.modules.get_with_exercises(clipboard.module_id)
            if source is None:
                raise NotFoundError("Скопированная сессия", clipboard.module_id)
            self._require_copyable(source)

            day = await self.days.get_or_create(template_id, target_day_index)
            sort_order = await self.modules.next_sort_order(day.id)
            clone = await self._deep_copy_module(source, day.id, sort_order, IdMap())

        logger.info(
            f"Сессия {clipboard.module_id} вставлена как {clone.id} "
            f"в программу {template_id}, день {target_day_index}"
        )
        return clone

    # ==========================
    # МНОГОШАГОВЫЕ ОПЕРАЦИИ
    # ==========================

    async def _raise_multistep_failure(
        self,
        action: str,
        error: Exception,
        written: List[Dict[str, Any]],
        committed: List[Dict[str, Any]],
    ):
        await self.db.rollback()

        if self.atomic_copy:
            if not written:
                raise error
            logger.error(f"{action}: ошибка после записи {len(written)} узлов, транзакция откатена: {error}")
            raise PartialFailureError(
                f"{action} не выполнено: {error}. Изменения откатены",
                completed=written,
                rolled_back=True,
                cause=error,
            ) from error

        if not committed:
            raise error
        logger.error(f"{action}: ошибка после сохранения {len(committed)} узлов, отката нет: {error}")
        raise PartialFailureError(
            f"{action} выполнено частично: {error}. "
            f"Повторный запуск создаст дубликаты уже сохранённых сессий",
            completed=committed,
            rolled_back=False,
            cause=error,
        ) from error

    async def _checkpoint(self, action: str, pending: List, committed: List) -> None:
        # В неатомарном режиме каждый шаг фиксируется сразу
        if self.atomic_copy:
            return
        await self._commit(action)
        committed.extend(pending)
        pending.clear()

    async def copy_week(self, template_id: int, source_week: int, dest_week: int) -> List[DayModule]:
        """Скопировать все сессии недели source_week в неделю dest_week.

        Дни отдыха пропускаются, пустые строки дней не создаются. Скопированные сессии
        добавляются после уже существующих в дне назначения.
        """
        source_indices = CalendarProjector.week_day_indices(source_week)
        CalendarProjector.day_index_for(dest_week, 1)

        await self._get_template(template_id)
        days = await self.days.list_with_tree(template_id, source_indices)

        # План копирования фиксируем до первой записи: копия недели самой в себя
        # не должна подхватывать только что созданные сессии
        plan = []
        for day in days:
            dest_index = CalendarProjector.day_index_for(
                dest_week, CalendarProjector.day_of_week_for(day.day_index)
            )
            for module in ordered_modules(day.modules):
                self._require_copyable(module)
                plan.append((dest_index, module))

        action = f"Копирование недели {source_week} → {dest_week}"
        created: List[DayModule] = []
        written: List[Dict[str, Any]] = []
        pending: List[Dict[str, Any]] = []
        committed: List[Dict[str, Any]] = []
        id_map = IdMap()

        try:
            for dest_index, source in plan:
                day = await self.days.get_or_create(template_id, dest_index)
                sort_order = await self.modules.next_sort_order(day.id)
                clone = await self._deep_copy_module(source, day.id, sort_order, id_map)
                created.append(clone)

                node = {"module_id": clone.id, "source_module_id": source.id, "day_index": dest_index}
                written.append(node)
                pending.append(node)
                await self._checkpoint(action, pending, committed)

            await self._commit(action)
        except Exception as e:
            await self._raise_multistep_failure(action, e, written, committed)

        logger.info(f"{action}: программа {template_id}, создано сессий: {len(created)}")
        return created

    async def duplicate_program(self, template_id: int, coach_id: str) -> ProgramTemplate:
        """Полная независимая копия программы: новый id, приватная, владелец: текущий тренер."""
        source = await self.templates.get_with_tree(template_id)
        if source is None:
            raise NotFoundError("Программа", template_id)
        for day in source.days:
            for module in day.modules:
                self._require_copyable(module)

        action = f"Дублирование программы {template_id}"
        written: List[Dict[str, Any]] = []
        pending: List[Dict[str, Any]] = []
        committed: List[Dict[str, Any]] = []
        id_map = IdMap()

        new_template = ProgramTemplate(
            owner_coach_id=coach_id,
            title=f"{source.title}{self.copy_title_suffix}",
            description=source.description,
            level=source.level,
            tags=list(source.tags or []),
            visibility=VisibilityEnum.private,
        )

        try:
            await self.templates.add(new_template)
            node = {"template_id": new_template.id}
            written.append(node)
            pending.append(node)
            await self._checkpoint(action, pending, committed)

            for day in source.days:
                new_day = ProgramTemplateDay(
                    program_template_id=new_template.id,
                    day_index=day.day_index,
                    day_title=day.day_title,
                    notes=day.notes,
                )
                await self.days.add(new_day)
                id_map.days[day.id] = new_day.id

                for module in ordered_modules(day.modules):
                    # sort_order сохраняем как в источнике
                    clone = await self._deep_copy_module(module, new_day.id, module.sort_order, id_map)
                    node = {"module_id": clone.id, "source_module_id": module.id, "day_index": day.day_index}
                    written.append(node)
                    pending.append(node)
                    await self._checkpoint(action, pending, committed)

            await self._commit(action)
        except Exception as e:
            await self._raise_multistep_failure(action, e, written, committed)

        logger.info(
            f"{action}: создана программа {new_template.id}, "
            f"дней {len(id_map.days)}, сессий {len(id_map.modules)}"
        )
        return new_template

    # ==========================
    # УПРАЖНЕНИЯ
    # ==========================

    async def add_exercise(self, module_id: int, data: ExerciseCreate) -> ModuleExercise:
        """Упражнение добавляется в конец своей секции и всегда получает предписание."""
        prescription_data = data.prescription or PrescriptionInput()
        self._check_rep_range(prescription_data.rep_range_min, prescription_data.rep_range_max)

        async with self._operation("добавление упражнения"):
            await self._get_module(module_id)
            sort_order = await self.exercises.next_sort_order(module_id, data.section)
            values = prescription_data.model_dump()
            if values.get("column_config") is None:
                values["column_config"] = copy.deepcopy(DEFAULT_PRESCRIPTION_COLUMNS)
            entry = ModuleExercise(
                day_module_id=module_id,
                exercise_id=data.exercise_id,
                section=data.section,
                sort_order=sort_order,
                instructions=data.instructions,
                prescription=ExercisePrescription(**values),
            )
            await self.exercises.add(entry)
        return entry

    async def update_exercise(self, entry_id: int, data: ExerciseUpdate) -> ModuleExercise:
        """Правка упражнения. sort_order уникален внутри (сессия, секция):

        - при переносе в другую секцию без sort_order упражнение встаёт в её конец;
        - занятая позиция в той же секции меняется местами с текущей;
        - занятая позиция в другой секции даёт ValidationError.
        """
        changes = data.model_dump(exclude_unset=True)
        # instructions можно очистить, остальные поля обязательны
        changes = {k: v for k, v in changes.items() if v is not None or k == "instructions"}

        async with self._operation("обновление упражнения"):
            entry = await self._get_exercise(entry_id)
            section = ExerciseSectionEnum(changes.get("section", entry.section))
            section_changed = section != ExerciseSectionEnum(entry.section)

            if "sort_order" in changes:
                occupant = await self.exercises.get_at_position(
                    entry.day_module_id, section, changes["sort_order"]
                )
                if occupant is not None and occupant.id != entry.id:
                    if section_changed:
                        raise ValidationError(
                            f"Позиция {changes['sort_order']} в секции {section.value} уже занята"
                        )
                    occupant.sort_order = entry.sort_order
            elif section_changed:
                changes["sort_order"] = await self.exercises.next_sort_order(entry.day_module_id, section)

            for name, value in changes.items():
                setattr(entry, name, value)
            async with store_errors("обновление упражнения"):
                await self.db.flush()
        return entry

    @staticmethod
    def _check_rep_range(rep_min: Optional[int], rep_max: Optional[int]) -> None:
        if rep_min is not None and rep_max is not None and rep_max < rep_min:
            raise ValidationError(f"rep_range_max ({rep_max}) меньше rep_range_min ({rep_min})")

    async def update_prescription(self, entry_id: int, data: PrescriptionUpdate) -> ExercisePrescription:
        changes = self._drop_nulls(data.model_dump(exclude_unset=True), PRESCRIPTION_REQUIRED_FIELDS)

        async with self._operation("обновление предписания"):
            entry = await self._get_exercise(entry_id)
            prescription = entry.prescription
            if prescription is None:
                raise NotFoundError("Предписание упражнения", entry_id)
            self._check_rep_range(
                changes.get("rep_range_min", prescription.rep_range_min),
                changes.get("rep_range_max", prescription.rep_range_max),
            )
            for name, value in changes.items():
                setattr(prescription, name, value)
            async with store_errors("обновление предписания"):
                await self.db.flush()
        return prescription

    async def delete_exercise(self, entry_id: int) -> None:
        async with self._operation("удаление упражнения"):
            entry = await self._get_exercise(entry_id)
            await self.exercises.delete(entry)

    # ==========================
    # КАЛЕНДАРЬ
    # ==========================

    async def get_calendar(self, template_id: int, week: int) -> List[CalendarDay]:
        CalendarProjector.day_index_for(week, 1)
        await self._get_template(template_id)
        days = await self.days.list_for_template(template_id)
        return CalendarProjector.project_week(days, week)

    async def get_full_calendar(self, template_id: int) -> CalendarResponse:
        await self._get_template(template_id)
        days = await self.days.list_for_template(template_id)
        return CalendarResponse(
            template_id=template_id,
            summary=CalendarProjector.summarize(days),
            weeks=CalendarProjector.project_calendar(days),
        )
