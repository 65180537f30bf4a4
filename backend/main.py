import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

import sentry_sdk
from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from core.correlation import (
    generate_correlation_id,
    get_correlation_id,
    is_valid_correlation_id,
    set_correlation_id,
)
from core.logging_config import configure_logging
from core.scheduler import get_scheduler_status
from core.sentry_config import init_sentry
from models.config import settings
from models.exceptions import (
    AuthenticationException,
    BusinessRuleException,
    ConflictException,
    DomainException,
    NotFoundException,
    PermissionDeniedException,
    ValidationException,
)
from repositories.database import Base, engine, get_db
from routers import issues_router
from services.geo import SpatialService

init_sentry()

configure_logging(settings.ENVIRONMENT, settings.LOG_DIR or None)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    - Optionally create tables when `AUTO_CREATE_DB` is enabled (development).
    - Report which spatial backend will serve radius queries.
    - Start the nightly retroactive clustering scheduler.
    """
    if settings.AUTO_CREATE_DB:
        logger.info(
            "AUTO_CREATE_DB enabled; creating database tables via SQLAlchemy create_all()"
        )
        Base.metadata.create_all(bind=engine)
    else:
        logger.info("AUTO_CREATE_DB disabled; skipping automatic create_all()")

    logger.info(f"Spatial backend configured: {settings.get_spatial_backend()}")

    from core.scheduler import setup_scheduler, shutdown_scheduler

    if settings.ENVIRONMENT != "test":
        setup_scheduler()

    try:
        yield
    finally:
        if settings.ENVIRONMENT != "test":
            shutdown_scheduler()


app = FastAPI(title=f"{settings.PROJECT_NAME} API", lifespan=lifespan)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Inject correlation ID into request context and Sentry."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        incoming = request.headers.get("X-Correlation-ID")
        # Client-supplied IDs end up in log lines, so only accept plain tokens
        correlation_id = (
            incoming if is_valid_correlation_id(incoming) else generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        sentry_sdk.set_tag("correlation_id", correlation_id)

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests with performance monitoring."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start_time = time.perf_counter()

        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Request: {request.method} {request.url.path} from {client_host}")

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        logger.info(
            f"Response: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s"
        )

        if duration > settings.SLOW_REQUEST_THRESHOLD:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} "
                f"took {duration:.2f}s (threshold: {settings.SLOW_REQUEST_THRESHOLD}s)"
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


# Correlation runs before logging so request lines carry the ID
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)

cors_origins = ["*"] if settings.ENVIRONMENT == "development" else settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True if settings.ENVIRONMENT != "development" else False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch all unhandled exceptions with full Sentry capture."""
    correlation_id = get_correlation_id() or generate_correlation_id()

    sentry_sdk.set_tag("correlation_id", correlation_id)
    sentry_sdk.capture_exception(exc)

    # repr() keeps braces in the message away from loguru's formatter
    logger.exception(
        f"Unhandled exception: {exc!r}",
        correlation_id=correlation_id,
        path=str(request.url.path),
        method=request.method,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
        },
    )


_DOMAIN_ERROR_STATUS = (
    (NotFoundException, status.HTTP_404_NOT_FOUND, "Not found"),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_CONTENT, "Validation error"),
    (PermissionDeniedException, status.HTTP_403_FORBIDDEN, "Permission denied"),
    (AuthenticationException, status.HTTP_401_UNAUTHORIZED, "Authentication failed"),
    (BusinessRuleException, status.HTTP_400_BAD_REQUEST, "Business rule violation"),
    (ConflictException, status.HTTP_409_CONFLICT, "Conflict"),
)


def _client_error_handler(status_code: int, label: str):
    """Build a handler that maps a domain exception to a 4xx response."""

    async def handler(request: Request, exc: DomainException) -> JSONResponse:
        sentry_sdk.set_tag("correlation_id", exc.correlation_id)
        sentry_sdk.set_tag("exception_type", exc.__class__.__name__)
        logger.warning(
            f"{label}: {exc.message}",
            correlation_id=exc.correlation_id,
            exception_type=exc.__class__.__name__,
            path=str(request.url.path),
        )
        headers = (
            {"WWW-Authenticate": "Bearer"}
            if status_code == status.HTTP_401_UNAUTHORIZED
            else None
        )
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "correlation_id": exc.correlation_id},
            headers=headers,
        )

    return handler


for _exc_type, _status_code, _label in _DOMAIN_ERROR_STATUS:
    app.add_exception_handler(_exc_type, _client_error_handler(_status_code, _label))


@app.exception_handler(DomainException)
async def domain_exception_handler(
    request: Request, exc: DomainException
) -> JSONResponse:
    """Anything else raised by the service layer is a server-side failure."""
    sentry_sdk.set_tag("correlation_id", exc.correlation_id)
    sentry_sdk.set_tag("exception_type", exc.__class__.__name__)
    sentry_sdk.capture_exception(exc)

    logger.error(
        f"Domain error: {exc.message}",
        correlation_id=exc.correlation_id,
        exception_type=exc.__class__.__name__,
        path=str(request.url.path),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": exc.message,
            "correlation_id": exc.correlation_id,
        },
    )


app.include_router(issues_router.router, prefix="/api")


@app.get("/")
def root() -> dict:
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


@app.get("/api/health")
def health_check(db: Session = Depends(get_db)) -> dict:
    """Health check with spatial backend and scheduler status."""
    return {
        "status": "healthy",
        "spatial": SpatialService.diagnostics(db),
        "scheduler": get_scheduler_status(),
    }
