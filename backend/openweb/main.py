import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from openweb.api import api_router
from openweb.core import metrics
from openweb.core.config import settings
from openweb.core.errors import ChallengeFailed, InternalError, InvalidEmail, SubscriptionError
from openweb.core.logging_config import configure_logging
from openweb.core.redis_client import close_redis
from openweb.core.sentry import init_sentry
from openweb.core.startup_checks import validate_production_settings
from openweb.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from openweb.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    413: "PayloadTooLarge",
    415: "UnsupportedMediaType",
    429: "RateLimited",
}


def _error_response(
    request: Request,
    *,
    status_code: int,
    error: str,
    message: str | None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = ErrorResponse(error=error, message=message, request_id=getattr(request.state, "request_id", None))
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True), headers=headers)


def _subscribe_validation_error(exc: RequestValidationError) -> SubscriptionError:
    # Anything wrong with the body (bad JSON, not an object, wrong types) is an email
    # problem unless the token field alone is at fault.
    fields = {str(err.get("loc", ())[-1]) for err in exc.errors() if err.get("loc")}
    if fields == {"token"}:
        return ChallengeFailed()
    return InvalidEmail()


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await close_redis()


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    validate_production_settings()
    init_sentry()
    tags_metadata = [
        {"name": "subscriptions", "description": "Newsletter subscription intake"},
        {"name": "health", "description": "Liveness and readiness probes"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api")

    @app.exception_handler(SubscriptionError)
    async def subscription_error_handler(request: Request, exc: SubscriptionError):
        metrics.record_failure(exc.code)
        return _error_response(
            request, status_code=exc.status_code, error=exc.code, message=exc.message, headers=exc.headers()
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error = _HTTP_ERROR_CODES.get(exc.status_code, "InternalError" if exc.status_code >= 500 else "BadRequest")
        return _error_response(
            request,
            status_code=exc.status_code,
            error=error,
            message=str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        if request.url.path.rstrip("/").endswith("/subscribe"):
            return await subscription_error_handler(request, _subscribe_validation_error(exc))
        return _error_response(request, status_code=422, error="ValidationError", message="Invalid request.")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path})
        internal = InternalError()
        metrics.record_failure(internal.code)
        return _error_response(request, status_code=internal.status_code, error=internal.code, message=internal.message)

    return app


app = get_application()
