from fastapi import APIRouter
from program_builder.api.v1.programs import router as programs_router
from program_builder.api.v1.modules import router as modules_router

api_router = APIRouter()

api_router.include_router(programs_router, prefix="/programs", tags=["programs"])
api_router.include_router(modules_router, prefix="/modules", tags=["modules"])
