import enum
from typing import List

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from program_builder.core.db import get_db
from program_builder.core.config import settings
from program_builder.services.composition_engine import CompositionEngine


security = HTTPBearer()


class RoleEnum(str, enum.Enum):
    coach = "coach"
    specialist = "specialist"
    admin = "admin"


class CoachIdentity(BaseModel):
    """Действующий тренер. Токены выпускает внешний сервис идентификации."""
    id: str
    role: RoleEnum = RoleEnum.coach
    # Делегированные специалисты, которым тренер может назначать сессии
    specialists: List[str] = []

    def can_assign(self, owner_id: str) -> bool:
        return owner_id == self.id or owner_id in self.specialists or self.role == RoleEnum.admin


def decode_identity(token: str) -> CoachIdentity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Невалидный токен доступа",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        coach_id = payload.get("sub")
        if coach_id is None:
            raise credentials_exception
        return CoachIdentity(
            id=str(coach_id),
            role=payload.get("role", RoleEnum.coach.value),
            specialists=[str(s) for s in payload.get("specialists", [])],
        )
    except (JWTError, ValueError):
        raise credentials_exception


async def get_current_coach(
        credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CoachIdentity:
    return decode_identity(credentials.credentials)


def get_composition_engine(db: AsyncSession = Depends(get_db)) -> CompositionEngine:
    """Фабрика движка, инжектируется в эндпоинты через Depends."""
    return CompositionEngine(db)
