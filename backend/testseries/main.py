"""
Test Series Platform - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps service errors to JSON responses
5. Registers all API route handlers

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (lifecycle, expiry, scoring, tag counting, authoring)
- repositories.py: Persistence interfaces used by the services
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from testseries.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from testseries.errors import AppError, expose_internal_details
from testseries.routes import attempts, questions, tests, tags
from testseries.database import DATABASE_URL, create_tables

# Import all models so they are registered with Base.metadata
import testseries.models  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

app = FastAPI(
    title="Test Series Platform",
    description=(
        "Timed multiple-choice tests with positive/negative marking, "
        "lazy expiry of attempts, and reference-counted question tags."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Generate a request ID for every HTTP request, expose it in the
    X-Request-ID response header, and log request start and completion
    with latency.
    """
    req_id = generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Error handlers
#
# Expected errors carry enough detail for the caller to fix the
# request. Storage and unexpected failures are logged in full and
# returned as an opaque 500.
# ──────────────────────────────────────────────────────────────
def _internal_error_response(exc: Exception):
    content = {
        "error": "INTERNAL_ERROR",
        "message": "An unexpected error occurred",
        "details": {}
    }
    if expose_internal_details():
        content["details"] = {"exception": str(exc.__cause__ or exc)}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        log_with_context(logger, "ERROR", f"Internal error: {exc.message}",
                         extra_data={"path": request.url.path, **exc.details})
        return _internal_error_response(exc)

    log_with_context(logger, "INFO", f"Request rejected: {exc.error_code}",
                     extra_data={"path": request.url.path, "message": exc.message})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message, "details": exc.details}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "INVALID_INPUT",
            "message": "Request validation failed",
            "details": {"errors": jsonable_errors(exc)}
        }
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    log_with_context(get_logger("db"), "ERROR", "Database error while handling request",
                     extra_data={"path": request.url.path}, exc_info=True)
    return _internal_error_response(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_with_context(logger, "ERROR", f"Unhandled exception: {exc.__class__.__name__}",
                     extra_data={"path": request.url.path}, exc_info=True)
    return _internal_error_response(exc)


def jsonable_errors(exc: RequestValidationError):
    return [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "reason": err.get("msg")}
        for err in exc.errors()
    ]


app.include_router(attempts.router, tags=["Attempts"])
app.include_router(questions.router, tags=["Questions"])
app.include_router(tests.router, tags=["Tests"])
app.include_router(tags.router, tags=["Tags"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "testseries-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Test Series Platform",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "start_attempt": "POST /api/attempts",
            "record_answer": "PUT /api/attempts/{id}/answers",
            "submit_attempt": "PUT /api/attempts/{id}/submit",
            "list_attempts": "GET /api/attempts?test_id=",
            "questions": "POST|PUT|DELETE /api/questions",
            "tests": "POST /api/tests, PUT /api/tests/{id}/questions",
            "tags": "GET /api/tags, GET /api/tags/search/{query}"
        }
    }
