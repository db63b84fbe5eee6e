import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from program_builder.api.router import api_router
from program_builder.core import init_database, settings
from program_builder.core.db import AsyncSessionLocal
from program_builder.core.exceptions import register_exception_handlers
from program_builder.core.logging_config import setup_logging
from program_builder.core.test_data import create_test_data

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Program Builder - coaching programs constructor")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")
register_exception_handlers(app)


@app.on_event("startup")
async def startup_event():
    await init_database()
    logger.info("Приложение запущено!")

    if settings.SEED_DEMO_DATA:
        async with AsyncSessionLocal() as session:
            await create_test_data(session, settings.DEMO_COACH_ID)


@app.get("/")
async def root():
    base_url = "http://localhost:8000"

    return {
        "app": "Program Builder",
        "message": "Coaching programs: templates, days, sessions, exercises",
        "links": {
            "Programs": f"{base_url}/api/v1/programs",
            "Docs": f"{base_url}/docs",
            "ReDoc": f"{base_url}/redoc",
        }
    }
