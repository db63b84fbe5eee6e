import logging

import httpx
from fastapi import APIRouter, Depends, Response

from program_builder.core.dependencies import CoachIdentity, get_composition_engine
from program_builder.core.rbac import ensure_can_assign, ensure_can_edit, ensure_can_view, require_builder, require_coach
from program_builder.schemas.program import (
    ClipboardRef,
    ExerciseCreate,
    ExerciseRead,
    ExerciseUpdate,
    ModuleDetail,
    ModuleRead,
    ModuleStatusUpdate,
    ModuleUpdate,
    PrescriptionRead,
    PrescriptionUpdate,
)
from program_builder.services.composition_engine import CompositionEngine, ordered_exercises
from program_builder.services.exercise_library import ExerciseLibraryClient, get_exercise_library

logger = logging.getLogger(__name__)

router = APIRouter(tags=["modules"])


# ==========================
# ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ
# ==========================

async def check_module_access(engine: CompositionEngine, module_id: int, coach: CoachIdentity, edit: bool = True):
    """Доступ к сессии определяется правами на программу, в которой она лежит."""
    module = await engine.get_module(module_id)
    template = await engine.get_template(module.day.program_template_id)
    if edit:
        ensure_can_edit(template, coach)
    else:
        ensure_can_view(template, coach)
    return module


async def check_exercise_access(engine: CompositionEngine, entry_id: int, coach: CoachIdentity):
    entry = await engine.exercises.get_by_id(entry_id)
    if entry is not None:
        await check_module_access(engine, entry.day_module_id, coach)
    return entry


# ==========================
# СЕССИИ
# ==========================

@router.get("/{module_id}", response_model=ModuleDetail)
async def get_module(
    module_id: int,
    current_coach: CoachIdentity = Depends(require_builder),
    engine: CompositionEngine = Depends(get_composition_engine),
    library: ExerciseLibraryClient = Depends(get_exercise_library),
):
    """Сессия с упражнениями; названия упражнений подтягиваются из библиотеки, если она доступна"""
    module = await check_module_access(engine, module_id, current_coach, edit=False)

    detail = ModuleDetail.model_validate(module)
    detail.day_index = module.day.day_index
    detail.exercises = [ExerciseRead.model_validate(e) for e in ordered_exercises(module)]

    try:
        items = await library.get_exercises(e.exercise_id for e in detail.exercises)
    except httpx.HTTPError as e:
        logger.warning(f"Библиотека упражнений недоступна, отдаём сессию {module_id} без названий: {e}")
        items = {}
    for exercise in detail.exercises:
        exercise.library = items.get(exercise.exercise_id)

    return detail


@router.patch("/{module_id}", response_model=ModuleRead)
async def update_module(
    module_id: int,
    data: ModuleUpdate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_module_access(engine, module_id, current_coach)
    if data.module_owner:
        ensure_can_assign(data.module_owner, current_coach)
    return await engine.update_module(module_id, data)


@router.delete("/{module_id}", status_code=204)
async def delete_module(
    module_id: int,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_module_access(engine, module_id, current_coach)
    await engine.delete_module(module_id)
    return Response(status_code=204)


@router.post("/{module_id}/copy", response_model=ClipboardRef)
async def copy_module(
    module_id: int,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    """Скопировать сессию в буфер. Возвращается ссылка; данные читаются при вставке"""
    await check_module_access(engine, module_id, current_coach, edit=False)
    return engine.copy_session(module_id)


@router.post("/{module_id}/toggle-status", response_model=ModuleRead)
async def toggle_module_status(
    module_id: int,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_module_access(engine, module_id, current_coach)
    return await engine.toggle_module_status(module_id)


@router.put("/{module_id}/status", response_model=ModuleRead)
async def set_module_status(
    module_id: int,
    data: ModuleStatusUpdate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_module_access(engine, module_id, current_coach)
    return await engine.set_module_status(module_id, data.status)


# ==========================
# УПРАЖНЕНИЯ
# ==========================

@router.post("/{module_id}/exercises", response_model=ExerciseRead, status_code=201)
async def add_exercise(
    module_id: int,
    data: ExerciseCreate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_module_access(engine, module_id, current_coach)
    return await engine.add_exercise(module_id, data)


@router.patch("/exercises/{entry_id}", response_model=ExerciseRead)
async def update_exercise(
    entry_id: int,
    data: ExerciseUpdate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_exercise_access(engine, entry_id, current_coach)
    return await engine.update_exercise(entry_id, data)


@router.patch("/exercises/{entry_id}/prescription", response_model=PrescriptionRead)
async def update_prescription(
    entry_id: int,
    data: PrescriptionUpdate,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_exercise_access(engine, entry_id, current_coach)
    return await engine.update_prescription(entry_id, data)


@router.delete("/exercises/{entry_id}", status_code=204)
async def delete_exercise(
    entry_id: int,
    current_coach: CoachIdentity = Depends(require_coach),
    engine: CompositionEngine = Depends(get_composition_engine),
):
    await check_exercise_access(engine, entry_id, current_coach)
    await engine.delete_exercise(entry_id)
    return Response(status_code=204)
