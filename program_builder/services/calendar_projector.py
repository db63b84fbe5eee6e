"""
Календарная проекция программы: плоский список дней → сетка недель (Пн..Вс).

day_index = (week - 1) * 7 + day_of_week. Номер недели нигде не хранится,
сетка всегда пересчитывается из текущих дней и в БД не пишется.
"""
import math
from typing import Iterable, List, Sequence

from program_builder.core.exceptions import ValidationError
from program_builder.models.program import ModuleStatusEnum
from program_builder.schemas.program import (
    CalendarDay,
    CalendarSession,
    CalendarSummary,
    CalendarWeek,
)

DAYS_PER_WEEK = 7


class CalendarProjector:
    @staticmethod
    def day_index_for(week: int, day_of_week: int) -> int:
        if week < 1:
            raise ValidationError(f"Номер недели должен быть >= 1, получено {week}")
        if not 1 <= day_of_week <= DAYS_PER_WEEK:
            raise ValidationError(f"День недели должен быть от 1 до 7, получено {day_of_week}")
        return (week - 1) * DAYS_PER_WEEK + day_of_week

    @staticmethod
    def week_for(day_index: int) -> int:
        return (day_index - 1) // DAYS_PER_WEEK + 1

    @staticmethod
    def day_of_week_for(day_index: int) -> int:
        return (day_index - 1) % DAYS_PER_WEEK + 1

    @classmethod
    def week_day_indices(cls, week: int) -> List[int]:
        return [cls.day_index_for(week, d) for d in range(1, DAYS_PER_WEEK + 1)]

    @staticmethod
    def week_count(days: Iterable) -> int:
        max_index = max((d.day_index for d in days), default=0)
        return max(1, math.ceil(max_index / DAYS_PER_WEEK))

    @staticmethod
    def _session(module) -> CalendarSession:
        session_type = module.session_type or module.module_type or "strength"
        return CalendarSession(
            id=module.id,
            title=module.title,
            session_type=getattr(session_type, "value", session_type),
            session_timing=getattr(module.session_timing, "value", module.session_timing) or "anytime",
            status=module.status,
            sort_order=module.sort_order,
            module_owner_coach_id=module.module_owner_coach_id,
        )

    @classmethod
    def project_week(cls, days: Sequence, week: int) -> List[CalendarDay]:
        """Ровно 7 слотов; для индексов без строки дня синтетический день отдыха."""
        by_index = {d.day_index: d for d in days}
        slots = []

        for day_of_week in range(1, DAYS_PER_WEEK + 1):
            day_index = cls.day_index_for(week, day_of_week)
            day = by_index.get(day_index)

            if day is None:
                slots.append(CalendarDay(
                    day_index=day_index,
                    week=week,
                    day_of_week=day_of_week,
                ))
                continue

            modules = sorted(day.modules or [], key=lambda m: (m.sort_order, m.id))
            sessions = [cls._session(m) for m in modules]
            slots.append(CalendarDay(
                day_index=day_index,
                week=week,
                day_of_week=day_of_week,
                day_id=day.id,
                day_title=day.day_title,
                sessions=sessions,
                is_rest_day=not sessions,
            ))

        return slots

    @classmethod
    def project_calendar(cls, days: Sequence) -> List[CalendarWeek]:
        return [
            CalendarWeek(week_number=w, days=cls.project_week(days, w))
            for w in range(1, cls.week_count(days) + 1)
        ]

    @classmethod
    def summarize(cls, days: Sequence) -> CalendarSummary:
        modules = [m for d in days for m in (d.modules or [])]
        return CalendarSummary(
            total_weeks=cls.week_count(days),
            training_days=sum(1 for d in days if d.modules),
            published_count=sum(1 for m in modules if m.status == ModuleStatusEnum.published),
            draft_count=sum(1 for m in modules if m.status == ModuleStatusEnum.draft),
        )
