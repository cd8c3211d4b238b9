from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from src.core.logger import get_logger
from src.domain.errors import (
    ConditioningError,
    NotFoundError,
    PersistenceError,
    UnauthorizedAccessError,
)

logger = get_logger("conditioning.api")

STATUS_CODES: dict[type[ConditioningError], int] = {
    UnauthorizedAccessError: 403,
    NotFoundError: 404,
    PersistenceError: 500,
}


async def conditioning_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        (code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)), 500
    )
    logger.info(
        "request_failed",
        extra={"path": request.url.path, "status": status, "error": type(exc).__name__},
    )
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ConditioningError, conditioning_error_handler)
