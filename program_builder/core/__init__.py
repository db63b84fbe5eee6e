from program_builder.core.config import settings
from program_builder.core.base import Base
from program_builder.core.db import engine, get_db
from program_builder.core.database import init_database

__all__ = ["settings", "engine", "Base", "get_db", "init_database"]
