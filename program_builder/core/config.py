from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql://builder_user:builder_password@db:5432/program_builder_db"
    SECRET_KEY: str = "SECRET_KEY_FOR_PROGRAM_BUILDER"
    ALGORITHM: str = "HS256"
    # При продакшн/обычной разработке лучше не пересоздавать БД на каждом старте
    RESET_DATABASE: bool = False
    SQL_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    # Копирование недели / программы одной транзакцией (с откатом при ошибке).
    # False: коммит после каждого модуля, повтор после сбоя создаст дубликаты.
    ATOMIC_COPY: bool = True
    COPY_TITLE_SUFFIX: str = " (Copy)"

    EXERCISE_LIBRARY_URL: str = ""
    EXERCISE_LIBRARY_TIMEOUT: float = 5.0
    # Кеш ответов библиотеки упражнений; пусто = без кеша
    REDIS_URL: str = ""

    # Демо-программа для локальной разработки, создаётся при старте один раз
    SEED_DEMO_DATA: bool = False
    DEMO_COACH_ID: str = "demo-coach"

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8080",
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    @property
    def async_database_url(self) -> str:
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.DATABASE_URL


settings = Settings()
