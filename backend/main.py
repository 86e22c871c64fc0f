# main.py — ProjectHub API
# Features:
# - Request correlation IDs and timing
# - Security headers
# - {"message": ...} error bodies for every failure
# - Storage gateway built once and injected (tests pass their own)
# - Health check with DB verification

import os
import uuid
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from database import engine, async_session_maker, init_db, close_db
from errors import AppError, ValidationFailed
from storage import DatabaseStorage
from telemetry import setup_telemetry

# Logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("projecthub")

VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173",
    ).split(",")
    if origin.strip()
]


def _check_startup_config():
    """Warn about settings that are unsafe outside development."""
    warnings = []

    jwt_key = os.getenv("JWT_SECRET_KEY", "")
    if len(jwt_key) < 32:
        warnings.append("JWT_SECRET_KEY is not set or shorter than 32 characters; sessions reset on restart")

    db_url = os.getenv("DATABASE_URL", "")
    if not db_url:
        warnings.append("DATABASE_URL not set; using the local development database")
    elif "secure_password" in db_url:
        warnings.append("DATABASE_URL uses the sample password")

    if "*" in ALLOWED_ORIGINS:
        warnings.append("CORS_ORIGINS allows any origin")

    for w in warnings:
        logger.warning(f"⚠️  {w}")

    return len(warnings) == 0


def _field_name(loc) -> str:
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] in ("body", "query", "path", "header"):
        parts = parts[1:]
    return ".".join(parts)


def create_app(storage: Optional[DatabaseStorage] = None) -> FastAPI:
    """Build the application around a storage gateway.

    With no gateway, one is built on the process-wide engine and the schema is
    created at start-up.
    """
    owns_storage = storage is None
    if owns_storage:
        storage = DatabaseStorage(async_session_maker)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting ProjectHub v{VERSION} ({ENVIRONMENT})...")
        if owns_storage:
            await init_db(engine)
            logger.info("✅ Database initialized")
        _check_startup_config()
        # No-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set
        setup_telemetry(app, engine if owns_storage else None)
        yield
        logger.info("🛑 Shutting down ProjectHub...")
        if owns_storage:
            await close_db()

    app = FastAPI(
        title="ProjectHub",
        description="Multi-tenant project management API with subscription plans",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.storage = storage

    # ============================================================
    # CORS
    # ============================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
        expose_headers=["X-Request-ID", "X-Correlation-ID"],
    )

    # ============================================================
    # MIDDLEWARE: Correlation IDs + Timing
    # ============================================================

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        correlation_id = request.headers.get("X-Correlation-ID", request_id)
        request.state.request_id = request_id
        request.state.correlation_id = correlation_id

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration:.4f}s"

        logger.info(
            f"{request.method} {request.url.path} → {response.status_code} "
            f"({duration:.3f}s) [rid={request_id[:8]}]"
        )
        return response

    # ============================================================
    # MIDDLEWARE: Security Headers
    # ============================================================

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # ============================================================
    # EXCEPTION HANDLERS
    # ============================================================

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": _field_name(err.get("loc", ())), "message": str(err.get("msg", ""))}
            for err in exc.errors()
        ]
        failure = ValidationFailed(errors)
        return JSONResponse(status_code=failure.status_code, content=failure.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "message": "Internal server error",
                "requestId": getattr(request.state, "request_id", None),
            },
        )

    # ============================================================
    # ROUTERS
    # ============================================================

    from routers import auth, users, projects, tasks, collaborators, tags, analytics

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(projects.router)
    app.include_router(tasks.router)
    app.include_router(collaborators.router)
    app.include_router(tags.router)
    app.include_router(analytics.router)

    # ============================================================
    # HEALTH & ROOT
    # ============================================================

    @app.get("/health")
    async def health_check(request: Request):
        """Health check with database connectivity verification"""
        db_status = "connected"
        try:
            await request.app.state.storage.ping()
        except Exception as e:
            logger.warning(f"Health check database probe failed: {e}")
            db_status = f"error: {str(e)[:100]}"

        return {
            "status": "healthy" if db_status == "connected" else "degraded",
            "version": VERSION,
            "environment": ENVIRONMENT,
            "database": db_status,
        }

    @app.get("/")
    async def root():
        return {
            "name": "ProjectHub",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
            "status": "operational",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=ENVIRONMENT != "production",
        workers=int(os.getenv("WORKERS", 1)),
    )
