"""FastAPI app: routers, request logging and error handling.

Every endpoint is a stateless request handler over the database; pipeline
and integration errors are mapped to JSON error bodies here.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from semantic import SemanticComparisonError

from .config import settings
from .integrations.base import IntegrationConfigError, IntegrationError
from .logging_config import redact_headers, request_id_var, setup_logging
from .parsers import ParseError
from .pipelines.billing import BillingError, BillingNotFoundError
from .pipelines.consent import ConsentError
from .pipelines.ingest import IngestError
from .pipelines.matching import MatchingError, MatchingNotFoundError
from .pipelines.signup import SignupError
from .routes import admin, clients, integrations, matching, messaging, payments, pros, signup
from .schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    setup_logging()
    logger.info(f"{settings.app_name} v{settings.version} starting ({settings.environment.value})")

    yield

    logger.info("Application shutting down")


app = FastAPI(
    title="Recruiting CRM",
    version=settings.version,
    description="Pros, clients, bids and lead matching for real-estate and mortgage recruiting",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag the request with an id and log its outcome."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    started = time.perf_counter()
    logger.debug("Request received", extra={"headers": redact_headers(dict(request.headers))})
    try:
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={"method": request.method, "path": request.url.path,
                   "status_code": response.status_code, "duration_ms": duration_ms},
        )
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        request_id_var.reset(token)


def error_response(status_code: int, error: str, detail: str | None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


# Exception handlers
@app.exception_handler(ParseError)
async def parse_error_handler(request, exc: ParseError):
    """Handle spreadsheet parsing errors."""
    logger.error(f"Parse error: {exc}")
    return error_response(status.HTTP_400_BAD_REQUEST, "parse_error", str(exc))


@app.exception_handler(IngestError)
async def ingest_error_handler(request, exc: IngestError):
    logger.error(f"Ingest error: {exc}")
    return error_response(status.HTTP_400_BAD_REQUEST, "ingest_error", str(exc))


@app.exception_handler(SignupError)
async def signup_error_handler(request, exc: SignupError):
    logger.warning(f"Signup error: {exc}")
    return error_response(exc.status_code, "signup_error", str(exc))


@app.exception_handler(ConsentError)
async def consent_error_handler(request, exc: ConsentError):
    logger.error(f"Consent error: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "consent_error", str(exc))


@app.exception_handler(MatchingNotFoundError)
async def matching_not_found_handler(request, exc: MatchingNotFoundError):
    return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


@app.exception_handler(MatchingError)
async def matching_error_handler(request, exc: MatchingError):
    """Handle matching pipeline errors."""
    logger.error(f"Matching error: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "matching_error", str(exc))


@app.exception_handler(BillingNotFoundError)
async def billing_not_found_handler(request, exc: BillingNotFoundError):
    return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


@app.exception_handler(BillingError)
async def billing_error_handler(request, exc: BillingError):
    logger.error(f"Billing error: {exc} (correlation_id={exc.correlation_id})")
    detail = f"{exc} (correlation id {exc.correlation_id})" if exc.correlation_id else str(exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "billing_error", detail)


@app.exception_handler(IntegrationConfigError)
async def integration_config_error_handler(request, exc: IntegrationConfigError):
    logger.error(f"{exc.provider} not configured: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "integration_not_configured", str(exc))


@app.exception_handler(IntegrationError)
async def integration_error_handler(request, exc: IntegrationError):
    """Provider errors keep their status when it is a client error, else 502."""
    logger.error(f"{exc.provider} error: {exc}")
    code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else status.HTTP_502_BAD_GATEWAY
    return error_response(code, f"{exc.provider}_error", str(exc))


@app.exception_handler(SemanticComparisonError)
async def semantic_error_handler(request, exc: SemanticComparisonError):
    logger.error(f"Semantic comparison error: {exc}")
    return error_response(status.HTTP_502_BAD_GATEWAY, "semantic_error", str(exc))


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request, exc: IntegrityError):
    logger.warning(f"Integrity error: {exc.orig}")
    return error_response(status.HTTP_409_CONFLICT, "conflict", "Record violates a uniqueness or reference constraint")


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "pros": "/pros",
            "clients": "/clients",
            "bids": "/bids",
            "matches": "/matches",
            "signup": "/signup",
            "docs": "/docs",
        },
    }


app.include_router(pros.router)
app.include_router(clients.router)
app.include_router(clients.bids_router)
app.include_router(admin.router)
app.include_router(matching.router)
app.include_router(messaging.router)
app.include_router(payments.router)
app.include_router(signup.router)
app.include_router(integrations.router)
