import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from placeholder_media.api.v1 import api_router
from placeholder_media.core.config import settings
from placeholder_media.core.errors import MediaError
from placeholder_media.core.logging_config import configure_logging
from placeholder_media.middleware import RequestLoggingMiddleware
from placeholder_media.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)


def get_application() -> FastAPI:
    configure_logging(settings.log_json, settings.log_level)
    tags_metadata = [
        {"name": "media", "description": "Placeholder resolution, proxy, transforms and organization"},
        {"name": "health", "description": "Liveness"},
        {"name": "metrics", "description": "In-process counters"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(MediaError)
    async def media_exception_handler(request: Request, exc: MediaError):
        payload = ErrorResponse(error=exc.message, code=exc.code)
        return JSONResponse(status_code=exc.status_code, content=payload.model_dump(exclude_none=True))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(error=str(exc.detail), code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump(exclude_none=True)))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        payload = ErrorResponse(error=message, code="validation_error", detail=errors)
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_exception", extra={"path": request.url.path, "method": request.method})
        payload = ErrorResponse(error="Internal server error", code="internal_error")
        return JSONResponse(status_code=500, content=payload.model_dump(exclude_none=True))

    return app


app = get_application()
