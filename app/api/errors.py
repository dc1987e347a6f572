import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.services.exceptions import TaskServiceError

logger = logging.getLogger(__name__)


async def task_service_error_handler(request: Request, exc: TaskServiceError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Boundary validation failures are reported as 400, not FastAPI's default 422
    logger.warning(f"{request.method} {request.url.path} 400: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskServiceError, task_service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
