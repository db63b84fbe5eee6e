"""
Общие фикстуры для всех тестов конструктора программ.

Стратегия:
- Тестовое FastAPI-приложение создаётся без startup-событий.
- БД: SQLite в памяти (aiosqlite) с включёнными внешними ключами, схема
  создаётся через init_database() на каждый тест.
- get_db заменяется на сессию тестовой БД, get_current_coach на лямбду
  с нужным тренером (или проверяется настоящий JWT через make_auth_headers).
- Движок композиции в unit-тестах создаётся напрямую поверх db_session.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator

from program_builder.api.router import api_router
from program_builder.core.config import settings
from program_builder.core.database import init_database
from program_builder.core.db import create_engine_for, get_db
from program_builder.core.dependencies import CoachIdentity, RoleEnum, get_current_coach
from program_builder.core.exceptions import register_exception_handlers
from program_builder.services.composition_engine import CompositionEngine
from program_builder.services.exercise_library import ExerciseLibraryClient, get_exercise_library

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Вспомогательные функции
# ---------------------------------------------------------------------------

def create_test_app() -> FastAPI:
    """Тестовое FastAPI-приложение без startup-событий."""
    test_app = FastAPI(title="Program Builder Test App")
    test_app.include_router(api_router, prefix="/api/v1")
    register_exception_handlers(test_app)
    return test_app


def make_auth_headers(coach: CoachIdentity) -> dict:
    """Создать заголовки авторизации с валидным JWT для указанного тренера."""
    access_token = jwt.encode(
        {"sub": coach.id, "role": coach.role.value, "specialists": coach.specialists},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    return {"Authorization": f"Bearer {access_token}"}


# ---------------------------------------------------------------------------
# Фикстуры тренеров
# ---------------------------------------------------------------------------

@pytest.fixture
def coach_fixture() -> CoachIdentity:
    """Тренер с одним делегированным специалистом."""
    return CoachIdentity(id="coach-1", role=RoleEnum.coach, specialists=["physio-1"])


@pytest.fixture
def other_coach_fixture() -> CoachIdentity:
    """Другой тренер, не владелец тестовых программ."""
    return CoachIdentity(id="coach-2", role=RoleEnum.coach)


@pytest.fixture
def specialist_fixture() -> CoachIdentity:
    """Специалист: может смотреть программы, но не собирать их."""
    return CoachIdentity(id="physio-1", role=RoleEnum.specialist)


# ---------------------------------------------------------------------------
# БД
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_engine():
    """Отдельная SQLite-БД в памяти на каждый тест."""
    engine = create_engine_for(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def composition_engine(db_session) -> CompositionEngine:
    return CompositionEngine(db_session, atomic_copy=True, copy_title_suffix=" (Copy)")


@pytest.fixture
def disabled_library() -> ExerciseLibraryClient:
    """Библиотека упражнений не настроена: названия не подтягиваются."""
    return ExerciseLibraryClient(base_url="", redis_url="")


# ---------------------------------------------------------------------------
# HTTP-клиенты
# ---------------------------------------------------------------------------

def build_app(session_factory, library: ExerciseLibraryClient, coach: CoachIdentity = None) -> FastAPI:
    app = create_test_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_exercise_library] = lambda: library
    if coach is not None:
        app.dependency_overrides[get_current_coach] = lambda: coach
    return app


@pytest.fixture
async def client(session_factory, disabled_library) -> AsyncGenerator[AsyncClient, None]:
    """
    Клиент без подмены авторизации: тренер определяется по JWT из заголовка.
    """
    app = build_app(session_factory, disabled_library)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def coach_client(session_factory, disabled_library, coach_fixture) -> AsyncGenerator[AsyncClient, None]:
    """Клиент, аутентифицированный как coach_fixture."""
    app = build_app(session_factory, disabled_library, coach_fixture)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def other_coach_client(session_factory, disabled_library, other_coach_fixture) -> AsyncGenerator[AsyncClient, None]:
    """Клиент другого тренера (не владельца)."""
    app = build_app(session_factory, disabled_library, other_coach_fixture)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def specialist_client(session_factory, disabled_library, specialist_fixture) -> AsyncGenerator[AsyncClient, None]:
    """Клиент специалиста."""
    app = build_app(session_factory, disabled_library, specialist_fixture)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
