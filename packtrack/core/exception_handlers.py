"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Las fallas de upstream, UPS y almacén se degradan en los servicios; aquí
solo llegan errores de entrada del cliente y errores inesperados.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from packtrack.core.config import get_settings
from packtrack.utils.error_handler import AppException, ValidationException, log_error

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Manejador para excepciones personalizadas de la aplicación.

    Args:
        request: Request de FastAPI
        exc: Excepción personalizada de la app

    Returns:
        JSONResponse: Respuesta JSON con error formateado
    """
    log_error(exc, {"path": str(request.url.path)})

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "error_code": exc.error_code.value,
            "message": exc.message,
            "details": exc.details if get_settings().DEBUG else None,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


async def validation_exception_handler(request: Request, exc: ValidationException) -> JSONResponse:
    """
    Manejador para errores de validación de la entrada.
    """
    logger.warning(f"Validation error on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=422,
        content={
            "error": True,
            "error_code": exc.error_code.value,
            "message": exc.message,
            "field": exc.field,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Manejador para errores de validación de FastAPI (query/body).
    """
    logger.warning(f"Request validation error on {request.url.path}: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={
            "error": True,
            "error_code": "VALIDATION_ERROR",
            "message": "Invalid request",
            "details": jsonable_errors(exc),
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": exc.detail,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
        headers=getattr(exc, "headers", None),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas: 500 con mensaje genérico.
    """
    logger.exception(f"💥 Unhandled exception on {request.method} {request.url.path}: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "message": "Backend Error",
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Registra todos los manejadores de excepciones.

    Los más específicos primero.
    """
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados")
