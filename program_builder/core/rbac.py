from fastapi import Depends, HTTPException, status

from program_builder.core.dependencies import CoachIdentity, RoleEnum, get_current_coach
from program_builder.models.program import ProgramTemplate, VisibilityEnum


def require_role(*allowed_roles: RoleEnum):
    """Фабрика зависимостей для проверки роли пользователя."""
    async def role_checker(current_coach: CoachIdentity = Depends(get_current_coach)) -> CoachIdentity:
        if current_coach.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Недостаточно прав для выполнения этого действия"
            )
        return current_coach
    return role_checker


require_coach = require_role(RoleEnum.coach, RoleEnum.admin)
require_builder = require_role(RoleEnum.coach, RoleEnum.specialist, RoleEnum.admin)


def ensure_can_edit(template: ProgramTemplate, coach: CoachIdentity) -> None:
    if template.owner_coach_id != coach.id and coach.role != RoleEnum.admin:
        raise HTTPException(status_code=403, detail="Программу может изменять только её владелец")


def ensure_can_view(template: ProgramTemplate, coach: CoachIdentity) -> None:
    if template.visibility == VisibilityEnum.shared:
        return
    ensure_can_edit(template, coach)


def ensure_can_assign(owner_id: str, coach: CoachIdentity) -> None:
    if not coach.can_assign(owner_id):
        raise HTTPException(
            status_code=403,
            detail=f"Нельзя назначить сессию специалисту {owner_id}: его нет в вашей команде"
        )
