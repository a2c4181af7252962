"""Key Escrow API Server - Main Entry Point"""

import asyncio
import pathlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from keyescrow.api.middleware import RequestLoggingMiddleware
from keyescrow.api.routes import devices, health
from keyescrow.core.config import settings
from keyescrow.core.errors import ERROR_MARKER, MissingIdentity, ProtocolError
from keyescrow.core.logging import get_logger, log_error, setup_logging
from keyescrow.db.session import engine

setup_logging(
    level="DEBUG" if settings.debug else "INFO",
    json_logs=settings.environment == "production",
)
logger = get_logger(__name__)

MIGRATION_TIMEOUT_SECONDS = 60.0


def run_migrations() -> None:
    """Upgrade the schema to the latest alembic revision."""
    from alembic import command
    from alembic.config import Config

    base_dir = pathlib.Path(__file__).parent.parent
    alembic_cfg = Config(str(base_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(base_dir / "alembic"))
    command.upgrade(alembic_cfg, "head")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info(
        "Starting Key Escrow API Server",
        extra={
            "event_type": "startup",
            "environment": settings.environment,
            "debug": settings.debug,
            "operation_timeout": settings.operation_timeout,
        },
    )

    if settings.run_migrations:
        logger.info("Starting database migrations...")
        try:
            # Alembic's env.py calls asyncio.run, so it needs its own thread
            await asyncio.wait_for(
                asyncio.to_thread(run_migrations),
                timeout=MIGRATION_TIMEOUT_SECONDS,
            )
            logger.info("Database migrations completed successfully")
        except asyncio.TimeoutError:
            logger.error(
                f"Database migrations timed out after {MIGRATION_TIMEOUT_SECONDS:.0f} seconds"
                " - continuing without migrations"
            )
        except Exception as e:
            logger.warning(f"Could not run migrations (may already be up to date): {e}")

    yield

    logger.info(
        "Shutting down Key Escrow API Server",
        extra={"event_type": "shutdown"},
    )
    await engine.dispose()


app = FastAPI(
    title="Key Escrow API",
    description="Device enrollment and wrapped-key escrow",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(health.router, tags=["Health"])
app.include_router(devices.router, prefix="/api/v1/devices", tags=["Devices"])


@app.exception_handler(ProtocolError)
async def protocol_error_handler(request: Request, exc: ProtocolError) -> JSONResponse:
    """Translate protocol failures; detail stays in the server log."""
    extra = {
        "path": request.url.path,
        "method": request.method,
        "device_id": exc.device_id or request.headers.get(settings.device_id_header, "-"),
        "status_code": exc.status_code,
    }
    if exc.status_code >= 500:
        log_error(logger, "Protocol operation failed", error=exc, extra=extra)
    elif not isinstance(exc, MissingIdentity):
        logger.warning(f"Request rejected: {exc}", extra=extra)

    return JSONResponse(status_code=exc.status_code, content={"error": ERROR_MARKER})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Framework-level validation failures get the same opaque 400."""
    logger.warning(
        f"Request validation failed: {len(exc.errors())} errors",
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(status_code=400, content={"error": ERROR_MARKER})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler with full error logging."""
    log_error(
        logger,
        "Unhandled exception",
        error=exc,
        extra={
            "path": request.url.path,
            "method": request.method,
            "client_ip": request.client.host if request.client else "unknown",
        },
    )
    return JSONResponse(status_code=500, content={"error": ERROR_MARKER})


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint for basic connectivity check."""
    return {"status": "ok", "service": settings.app_name}
