# app/api/errors.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config_env import Settings
from app.core.deps import get_settings
from app.core.errors import LocateError, InvalidArgument, NoObservation

logger = logging.getLogger("locate")

_DEVICE_ID_FIELDS = {"device_id", "deviceId", "tagId"}


def request_settings(request: Request) -> Settings:
    # same object the routes get through Depends(get_settings), overrides included
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return provider()


def error_response(request: Request, exc: LocateError) -> JSONResponse:
    headers = dict(request_settings(request).cors_headers)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


async def locate_error_handler(request: Request, exc: LocateError) -> JSONResponse:
    if isinstance(exc, NoObservation):
        logger.info("No results returned from K-Tag API")
    elif exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return error_response(request, exc)


def _field_name(loc) -> str:
    # ("query", "limit") -> "limit"; ("body",) -> "body"
    parts = [str(p) for p in loc[1:]] or [str(p) for p in loc]
    return ".".join(parts)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    locs = [tuple(e.get("loc") or ()) for e in exc.errors()]
    fields = [_field_name(loc) for loc in locs]
    on_device_id = any(loc[:1] == ("body",) or (loc and loc[-1] in _DEVICE_ID_FIELDS) for loc in locs)
    if on_device_id:
        return error_response(request, InvalidArgument())
    return error_response(request, InvalidArgument("Invalid request", details={"fields": fields}))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return error_response(request, LocateError())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LocateError, locate_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
