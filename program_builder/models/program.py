import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, Enum, ForeignKey, JSON,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from program_builder.core.base import Base


class ProgramLevelEnum(str, enum.Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


class VisibilityEnum(str, enum.Enum):
    private = "private"
    shared = "shared"


class ModuleStatusEnum(str, enum.Enum):
    draft = "draft"
    published = "published"


class SessionTypeEnum(str, enum.Enum):
    strength = "strength"
    cardio = "cardio"
    hiit = "hiit"
    mobility = "mobility"
    recovery = "recovery"
    sport_specific = "sport_specific"
    other = "other"


class SessionTimingEnum(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"
    anytime = "anytime"


class ExerciseSectionEnum(str, enum.Enum):
    warmup = "warmup"
    main = "main"
    accessory = "accessory"
    cooldown = "cooldown"


class IntensityTypeEnum(str, enum.Enum):
    RIR = "RIR"
    RPE = "RPE"
    PERCENT_1RM = "PERCENT_1RM"
    TARGET_LOAD = "TARGET_LOAD"
    OTHER = "OTHER"


class ProgramTemplate(Base):
    __tablename__ = "program_templates"

    id = Column(Integer, primary_key=True, index=True)
    owner_coach_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    level = Column(Enum(ProgramLevelEnum), nullable=True)  # NULL = "none"
    tags = Column(JSON, default=list, nullable=False)
    visibility = Column(Enum(VisibilityEnum), default=VisibilityEnum.private, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    days = relationship(
        "ProgramTemplateDay",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProgramTemplateDay.day_index",
    )


class ProgramTemplateDay(Base):
    __tablename__ = "program_template_days"
    __table_args__ = (
        UniqueConstraint("program_template_id", "day_index", name="uq_template_day_index"),
        CheckConstraint("day_index >= 1", name="ck_day_index_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    program_template_id = Column(
        Integer, ForeignKey("program_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_index = Column(Integer, nullable=False)
    day_title = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)

    template = relationship("ProgramTemplate", back_populates="days")
    modules = relationship(
        "DayModule",
        back_populates="day",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[DayModule.sort_order, DayModule.id]",
    )


class DayModule(Base):
    __tablename__ = "day_modules"

    id = Column(Integer, primary_key=True, index=True)
    program_template_day_id = Column(
        Integer, ForeignKey("program_template_days.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Владелец сессии (тренер или делегированный специалист), может отличаться от владельца программы
    module_owner_coach_id = Column(String(64), nullable=False, index=True)
    module_type = Column(String(50), nullable=False)
    session_type = Column(Enum(SessionTypeEnum), default=SessionTypeEnum.strength, nullable=False)
    session_timing = Column(Enum(SessionTimingEnum), default=SessionTimingEnum.anytime, nullable=False)
    title = Column(String(255), nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    status = Column(Enum(ModuleStatusEnum), default=ModuleStatusEnum.draft, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    day = relationship("ProgramTemplateDay", back_populates="modules")
    exercises = relationship(
        "ModuleExercise",
        back_populates="module",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="[ModuleExercise.sort_order, ModuleExercise.id]",
    )


class ModuleExercise(Base):
    __tablename__ = "module_exercises"

    id = Column(Integer, primary_key=True, index=True)
    day_module_id = Column(
        Integer, ForeignKey("day_modules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Ссылка на внешнюю библиотеку упражнений, без FK
    exercise_id = Column(Integer, nullable=False, index=True)
    section = Column(Enum(ExerciseSectionEnum), default=ExerciseSectionEnum.main, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    instructions = Column(Text, nullable=True)

    module = relationship("DayModule", back_populates="exercises")
    prescription = relationship(
        "ExercisePrescription",
        back_populates="exercise",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ExercisePrescription(Base):
    __tablename__ = "exercise_prescriptions"
    __table_args__ = (
        CheckConstraint("set_count >= 1", name="ck_prescription_set_count"),
        CheckConstraint("rest_seconds IS NULL OR rest_seconds >= 0", name="ck_prescription_rest"),
    )

    id = Column(Integer, primary_key=True, index=True)
    module_exercise_id = Column(
        Integer, ForeignKey("module_exercises.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    set_count = Column(Integer, default=3, nullable=False)
    rep_range_min = Column(Integer, nullable=True)
    rep_range_max = Column(Integer, nullable=True)
    tempo = Column(String(20), nullable=True)
    rest_seconds = Column(Integer, nullable=True)
    intensity_type = Column(Enum(IntensityTypeEnum), nullable=True)
    intensity_value = Column(Float, nullable=True)
    column_config = Column(JSON, default=list, nullable=False)
    sets_json = Column(JSON, nullable=True)
    warmup_sets_json = Column(JSON, nullable=True)
    custom_fields_json = Column(JSON, nullable=True)
    progression_notes = Column(Text, nullable=True)
    allow_client_extra_sets = Column(Boolean, default=False, nullable=False)

    exercise = relationship("ModuleExercise", back_populates="prescription")


# Поля, которые копируются при дублировании (всё, кроме id и ссылки на родителя)
PRESCRIPTION_COPY_FIELDS = (
    "set_count",
    "rep_range_min",
    "rep_range_max",
    "tempo",
    "rest_seconds",
    "intensity_type",
    "intensity_value",
    "column_config",
    "sets_json",
    "warmup_sets_json",
    "custom_fields_json",
    "progression_notes",
    "allow_client_extra_sets",
)
