# This project was developed with assistance from AI tools.
"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    AuthorizationError,
    CaseworkError,
    InvalidTransitionError,
    RateLimitExceededError,
    StorageError,
    UnknownActionError,
    ValidationError,
)
from .routes import applications, audit, health, inbound, proofs
from .schemas.error import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application startup/shutdown lifecycle."""
    from db.database import db_service

    from .services.mailer import init_mailer
    from .services.rate_limit import init_rate_limiter
    from .services.storage import init_storage_service

    init_storage_service(settings)
    init_mailer(settings)
    init_rate_limiter(settings)
    yield
    await db_service.close()


app = FastAPI(
    title="Casework API",
    description="Benefits application lifecycle: proofs, certification, assignments and audit",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

_HTTP_STATUS_TITLES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
}

# Most specific first; the first isinstance match wins.
_DOMAIN_STATUS: tuple[tuple[type[CaseworkError], int], ...] = (
    (InvalidTransitionError, 409),
    (ValidationError, 422),
    (AuthorizationError, 403),
    (RateLimitExceededError, 429),
    (UnknownActionError, 400),
    (StorageError, 502),
)


def _build_error(status_code: int, detail: str, request_id: str, code: str | None = None) -> ErrorResponse:
    return ErrorResponse(
        title=_HTTP_STATUS_TITLES.get(status_code, "Error"),
        status=status_code,
        detail=detail,
        code=code,
        request_id=request_id,
    )


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", str(uuid.uuid4()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Convert HTTPException to RFC 7807 Problem Details."""
    body = _build_error(exc.status_code, str(exc.detail), _request_id(request))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert Pydantic validation errors to RFC 7807 Problem Details."""
    body = _build_error(422, str(exc.errors()), _request_id(request))
    return JSONResponse(status_code=422, content=body.model_dump())


@app.exception_handler(CaseworkError)
async def domain_exception_handler(request: Request, exc: CaseworkError):
    """Map domain errors onto HTTP status codes."""
    status_code = next(
        (code for error_type, code in _DOMAIN_STATUS if isinstance(exc, error_type)),
        500,
    )
    request_id = _request_id(request)
    if status_code >= 500:
        logger.error("%s (request_id=%s): %s", type(exc).__name__, request_id, exc)
    body = _build_error(status_code, str(exc), request_id, code=exc.code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions -- log and return 500."""
    request_id = _request_id(request)
    logger.exception("Unhandled exception (request_id=%s)", request_id)
    body = _build_error(500, "An unexpected error occurred.", request_id)
    return JSONResponse(status_code=500, content=body.model_dump())


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(applications.router, prefix="/api/applications", tags=["applications"])
app.include_router(proofs.router, prefix="/api/applications", tags=["proofs"])
app.include_router(audit.router, prefix="/api/audit", tags=["audit"])
app.include_router(inbound.router, prefix="/api/inbound", tags=["inbound"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Welcome to the Casework API"}
