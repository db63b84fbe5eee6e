"""
Ошибки конструктора программ и их отображение в HTTP-ответы.

- ValidationError      → 422, до любой записи в БД
- NotFoundError        → 404
- PartialFailureError  → 409, многошаговая операция прервалась на середине
- PersistenceError     → 503, сбой хранилища, запрос можно повторить
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ProgramBuilderError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message}


class ValidationError(ProgramBuilderError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(ProgramBuilderError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} не найден(а)")
        self.entity = entity
        self.entity_id = entity_id


class PersistenceError(ProgramBuilderError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "retryable": self.retryable}


class PartialFailureError(ProgramBuilderError):
    """Часть поддерева уже записана (или откатена) к моменту ошибки.

    completed: что успело записаться (id созданных модулей и т.п.),
    rolled_back: была ли транзакция откатена целиком.
    """
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str,
        completed: Optional[List[Any]] = None,
        rolled_back: bool = False,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.completed = completed or []
        self.rolled_back = rolled_back
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "completed": self.completed,
            "rolled_back": self.rolled_back,
            "hint": "Перезагрузите программу перед повторной попыткой",
        }


async def program_builder_error_handler(request: Request, exc: ProgramBuilderError):
    log = logger.error if exc.status_code >= 500 or isinstance(exc, PartialFailureError) else logger.warning
    log(f"{request.method} {request.url.path}: {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProgramBuilderError, program_builder_error_handler)
