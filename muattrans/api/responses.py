"""
Response envelope and exception handlers.

Every response, success or failure, has the shape
{"Message": {"Code": int, "Text": str}, "Data": ..., "Type": str}.
"""
import logging
from contextlib import contextmanager
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from muattrans.config import get_settings
from muattrans.errors import InternalFailure, ServiceError

settings = get_settings()
logger = logging.getLogger(__name__)


def _reason(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"


def envelope(code: int, data: Any, type_tag: str, text: Optional[str] = None) -> Dict[str, Any]:
    return {
        "Message": {"Code": code, "Text": text or _reason(code)},
        "Data": data,
        "Type": type_tag,
    }


def show_message(
    code: int,
    data: Any,
    type_tag: str,
    text: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=code,
        content=jsonable_encoder(envelope(code, data, type_tag, text)),
        headers=headers,
    )


@contextmanager
def tagged(type_tag: str):
    """Label any failure raised inside the block with the route's Type tag"""
    try:
        yield
    except ServiceError as e:
        if e.type_tag is None:
            e.type_tag = type_tag
        raise
    except Exception as e:
        logger.exception(f"{type_tag}: unexpected error")
        failure = InternalFailure(str(e))
        failure.type_tag = type_tag
        raise failure from e


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        data = exc.data
        if isinstance(exc, InternalFailure) and settings.DEBUG:
            data = {"detail": exc.detail}
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return show_message(exc.status_code, data, exc.type_tag or "ERROR", exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return show_message(exc.status_code, None, "HTTP_ERROR", str(exc.detail), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in e["loc"]),
                "rule": e["type"],
                "message": e["msg"],
            }
            for e in exc.errors()
        ]
        return show_message(400, errors, "VALIDATION_ERROR", "Validation failed")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path}: unhandled error")
        data = {"detail": str(exc)} if settings.DEBUG else None
        return show_message(500, data, "ERROR", InternalFailure.default_message)
