from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from program_builder.models.program import (
    ProgramLevelEnum,
    VisibilityEnum,
    ModuleStatusEnum,
    SessionTypeEnum,
    SessionTimingEnum,
    ExerciseSectionEnum,
    IntensityTypeEnum,
)


def _level_none_to_null(value):
    # "none" приходит с фронта как отдельный уровень, в БД это NULL
    if isinstance(value, str) and value.lower() == "none":
        return None
    return value


# ==========================
# ПРОГРАММЫ (шаблоны)
# ==========================

class TemplateCreate(BaseModel):
    title: str
    description: Optional[str] = None
    level: Optional[ProgramLevelEnum] = None
    tags: List[str] = []
    visibility: VisibilityEnum = VisibilityEnum.private

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, value):
        return _level_none_to_null(value)


class TemplateUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    level: Optional[ProgramLevelEnum] = None
    tags: Optional[List[str]] = None
    visibility: Optional[VisibilityEnum] = None

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, value):
        return _level_none_to_null(value)


class TemplateRead(BaseModel):
    id: int
    owner_coach_id: str
    title: str
    description: Optional[str] = None
    level: Optional[ProgramLevelEnum] = None
    tags: List[str] = []
    visibility: VisibilityEnum
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DayUpdate(BaseModel):
    day_title: Optional[str] = None
    notes: Optional[str] = None


class DayRead(BaseModel):
    id: int
    program_template_id: int
    day_index: int
    day_title: str
    notes: Optional[str] = None

    class Config:
        from_attributes = True


# ==========================
# СЕССИИ (модули)
# ==========================

class SessionMeta(BaseModel):
    title: str
    session_type: SessionTypeEnum = SessionTypeEnum.strength
    session_timing: SessionTimingEnum = SessionTimingEnum.anytime
    module_type: Optional[str] = None
    module_owner: Optional[str] = Field(None, description="Тренер/специалист; по умолчанию владелец программы")


class ModuleUpdate(BaseModel):
    title: Optional[str] = None
    session_type: Optional[SessionTypeEnum] = None
    session_timing: Optional[SessionTimingEnum] = None
    module_type: Optional[str] = None
    module_owner: Optional[str] = None


class ModuleStatusUpdate(BaseModel):
    status: ModuleStatusEnum


class ModuleRead(BaseModel):
    id: int
    program_template_day_id: int
    module_owner_coach_id: str
    module_type: str
    session_type: SessionTypeEnum
    session_timing: SessionTimingEnum
    title: str
    sort_order: int
    status: ModuleStatusEnum

    class Config:
        from_attributes = True


# ==========================
# УПРАЖНЕНИЯ И ПРЕДПИСАНИЯ
# ==========================

class PrescriptionInput(BaseModel):
    set_count: int = Field(3, ge=1)
    rep_range_min: Optional[int] = Field(8, ge=0)
    rep_range_max: Optional[int] = Field(12, ge=0)
    tempo: Optional[str] = None
    rest_seconds: Optional[int] = Field(90, ge=0)
    intensity_type: Optional[IntensityTypeEnum] = IntensityTypeEnum.RIR
    intensity_value: Optional[float] = 2
    column_config: Optional[List[Dict[str, Any]]] = None
    sets_json: Optional[Any] = None
    warmup_sets_json: Optional[Any] = None
    custom_fields_json: Optional[Any] = None
    progression_notes: Optional[str] = None
    allow_client_extra_sets: bool = False


class PrescriptionUpdate(BaseModel):
    set_count: Optional[int] = Field(None, ge=1)
    rep_range_min: Optional[int] = Field(None, ge=0)
    rep_range_max: Optional[int] = Field(None, ge=0)
    tempo: Optional[str] = None
    rest_seconds: Optional[int] = Field(None, ge=0)
    intensity_type: Optional[IntensityTypeEnum] = None
    intensity_value: Optional[float] = None
    column_config: Optional[List[Dict[str, Any]]] = None
    sets_json: Optional[Any] = None
    warmup_sets_json: Optional[Any] = None
    custom_fields_json: Optional[Any] = None
    progression_notes: Optional[str] = None
    allow_client_extra_sets: Optional[bool] = None


class PrescriptionRead(BaseModel):
    id: int
    set_count: int
    rep_range_min: Optional[int] = None
    rep_range_max: Optional[int] = None
    tempo: Optional[str] = None
    rest_seconds: Optional[int] = None
    intensity_type: Optional[IntensityTypeEnum] = None
    intensity_value: Optional[float] = None
    column_config: List[Dict[str, Any]] = []
    sets_json: Optional[Any] = None
    warmup_sets_json: Optional[Any] = None
    custom_fields_json: Optional[Any] = None
    progression_notes: Optional[str] = None
    allow_client_extra_sets: bool = False

    class Config:
        from_attributes = True


class ExerciseCreate(BaseModel):
    exercise_id: int
    section: ExerciseSectionEnum = ExerciseSectionEnum.main
    instructions: Optional[str] = None
    prescription: Optional[PrescriptionInput] = None


class ExerciseUpdate(BaseModel):
    exercise_id: Optional[int] = None
    section: Optional[ExerciseSectionEnum] = None
    sort_order: Optional[int] = Field(None, ge=1)
    instructions: Optional[str] = None


class ExerciseLibraryItem(BaseModel):
    id: int
    name: str
    muscle_group: Optional[str] = None


class ExerciseRead(BaseModel):
    id: int
    day_module_id: int
    exercise_id: int
    section: ExerciseSectionEnum
    sort_order: int
    instructions: Optional[str] = None
    prescription: Optional[PrescriptionRead] = None
    library: Optional[ExerciseLibraryItem] = None

    class Config:
        from_attributes = True


class ModuleDetail(ModuleRead):
    day_index: Optional[int] = None
    exercises: List[ExerciseRead] = []


# ==========================
# КОПИРОВАНИЕ
# ==========================

class ClipboardRef(BaseModel):
    """Ссылка на скопированную сессию. Хранится у клиента, а не на сервере."""
    module_id: int


class CopyWeekRequest(BaseModel):
    source_week: int = Field(ge=1)
    dest_week: int = Field(ge=1)


class CopyWeekResponse(BaseModel):
    source_week: int
    dest_week: int
    created: List[ModuleRead]


# ==========================
# КАЛЕНДАРЬ
# ==========================

class CalendarSession(BaseModel):
    id: int
    title: str
    session_type: str
    session_timing: str
    status: ModuleStatusEnum
    sort_order: int
    module_owner_coach_id: str


class CalendarDay(BaseModel):
    day_index: int
    week: int
    day_of_week: int
    day_id: Optional[int] = None
    day_title: Optional[str] = None
    sessions: List[CalendarSession] = []
    is_rest_day: bool = True


class CalendarWeek(BaseModel):
    week_number: int
    days: List[CalendarDay]


class CalendarSummary(BaseModel):
    total_weeks: int
    training_days: int
    published_count: int
    draft_count: int


class CalendarResponse(BaseModel):
    template_id: int
    summary: CalendarSummary
    weeks: List[CalendarWeek]
