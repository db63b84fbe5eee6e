from fastapi import APIRouter, Depends, Query, Response
from typing import List, Optional

from program_builder.core.dependencies import CoachIdentity, get_composition_engine
from program_builder.core.rbac import (
    ensure_can_assign,
    ensure_can_edit,
    ensure_can_view,
    require_builder,
    require_coach,
)
from program_builder.schemas.program import (
    CalendarDay,
    CalendarResponse,
    ClipboardRef,
    CopyWeekRequest,
    CopyWeekResponse,
    DayRead,
    DayUpdate,
    ExerciseRead,
    ModuleDetail,
    ModuleRead,
    SessionMeta,
    TemplateCreate,
    TemplateRead,
    TemplateUpdate,
)
from program_builder.services.composition_engine import CompositionEngine, ordered_exercises

router = APIRouter(tags=["programs"])


# ==========================
# ПРОГРАММЫ
# ==========================

@router.get("/", response_model=List[TemplateRead])
async def list_programs(
    search: Optional[str] = Query(None, description="Поиск по названию"),
    tags: Optional[List[str]] = Query(None, description="Все указанные теги"),
    current_coach: CoachIdentity = Depends(require_builder),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    """Свои программы и программы, которыми поделились другие тренеры"""
    return await engine.list_templates(current_coach.id, search=search, tags=tags)


@router.post("/", response_model=TemplateRead, status_code=201)
async def create_program(
    data: TemplateCreate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    return await engine.create_template(current_coach.id, data)


@router.get("/{template_id}", response_model=TemplateRead)
async def get_program(
    template_id: int,
    current_coach: CoachIdentity = Depends(require_builder),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    template = await engine.get_template(template_id)
    ensure_can_view(template, current_coach)
    return template


@router.patch("/{template_id}", response_model=TemplateRead)
async def update_program(
    template_id: int,
    data: TemplateUpdate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    ensure_can_edit(await engine.get_template(template_id), current_coach)
    return await engine.update_template(template_id, data)


@router.delete("/{template_id}", status_code=204)
async def delete_program(
    template_id: int,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    ensure_can_edit(await engine.get_template(template_id), current_coach)
    await engine.delete_template(template_id)
    return Response(status_code=204)


@router.post("/{template_id}/duplicate", response_model=TemplateRead, status_code=201)
async def duplicate_program(
    template_id: int,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    """Полная копия программы текущему тренеру (новая, приватная, все сессии в статусе draft)"""
    ensure_can_view(await engine.get_template(template_id), current_coach)
    return await engine.duplicate_program(template_id, current_coach.id)


# ==========================
# КАЛЕНДАРЬ
# ==========================

@router.get("/{template_id}/calendar", response_model=List[CalendarDay])
async def get_calendar_week(
    template_id: int,
    week: int = Query(1, ge=1),
    current_coach: CoachIdentity = Depends(require_builder),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    """Одна неделя программы: 7 слотов Пн..Вс"""
    ensure_can_view(await engine.get_template(template_id), current_coach)
    return await engine.get_calendar(template_id, week)


@router.get("/{template_id}/calendar/full", response_model=CalendarResponse)
async def get_full_calendar(
    template_id: int,
    current_coach: CoachIdentity = Depends(require_builder),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    ensure_can_view(await engine.get_template(template_id), current_coach)
    return await engine.get_full_calendar(template_id)


@router.post("/{template_id}/weeks/copy", response_model=CopyWeekResponse)
async def copy_week(
    template_id: int,
    data: CopyWeekRequest,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    ensure_can_edit(await engine.get_template(template_id), current_coach)
    created = await engine.copy_week(template_id, data.source_week, data.dest_week)
    return CopyWeekResponse(
        source_week=data.source_week,
        dest_week=data.dest_week,
        created=[ModuleRead.model_validate(m) for m in created],
    )


# ==========================
# ДНИ И СЕССИИ
# ==========================

@router.patch("/{template_id}/days/{day_index}", response_model=DayRead)
async def update_day(
    template_id: int,
    day_index: int,
    data: DayUpdate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    ensure_can_edit(await engine.get_template(template_id), current_coach)
    return await engine.update_day(template_id, day_index, data)


@router.post("/{template_id}/days/{day_index}/sessions", response_model=ModuleRead, status_code=201)
async def add_session(
    template_id: int,
    day_index: int,
    meta: SessionMeta,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    """Добавить сессию в день (день создаётся при первой записи)"""
    ensure_can_edit(await engine.get_template(template_id), current_coach)
    if meta.module_owner:
        ensure_can_assign(meta.module_owner, current_coach)
    return await engine.add_session(template_id, day_index, meta)


@router.post("/{template_id}/days/{day_index}/paste", response_model=ModuleDetail, status_code=201)
async def paste_session(
    template_id: int,
    day_index: int,
    clipboard: ClipboardRef,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    """Вставить скопированную сессию (со всеми упражнениями) в день"""
    ensure_can_edit(await engine.get_template(template_id), current_coach)
    # Источник может лежать в другой программе: её тоже должно быть видно
    source = await engine.get_module(clipboard.module_id)
    ensure_can_view(await engine.get_template(source.day.program_template_id), current_coach)
    module = await engine.paste_session(clipboard, template_id, day_index)
    detail = ModuleDetail.model_validate(module)
    detail.day_index = day_index
    detail.exercises = [ExerciseRead.model_validate(e) for e in ordered_exercises(module)]
    return detail
