"""FastAPI entry point for the license server."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from licensehub import __version__
from licensehub.api.admin import router as admin_router
from licensehub.api.public import router as public_router
from licensehub.api.verify import router as verify_router
from licensehub.config import ensure_secret_key, get_settings
from licensehub.errors import LicensingError
from licensehub.licensing.keys import ensure_signing_keys
from licensehub.licensing.registry import init_engines
from licensehub.storage.database import close_db, init_db

logger = logging.getLogger("licensehub")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    settings = get_settings()

    Path(settings.storage.data_dir).mkdir(parents=True, exist_ok=True)

    # Auto-generate JWT secret and signing keys if this is the first run
    ensure_secret_key(settings)
    ensure_signing_keys(settings)

    await init_db(settings.storage.sqlite_path)
    init_engines(settings)
    logger.info(
        "License server ready (max %d generation attempts, %s licenses)",
        settings.issuance.max_attempts,
        f"{settings.issuance.days_valid}-day" if settings.issuance.days_valid else "perpetual",
    )

    yield

    await close_db()
    logger.info("License server stopped")


async def licensing_error_handler(request: Request, exc: LicensingError) -> JSONResponse:
    """Map domain failures onto their HTTP status."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"success": False, "error": exc.code, "message": str(exc)},
        status_code=exc.status_code,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="licensehub",
        description="Machine-bound license issuance and verification",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LicensingError, licensing_error_handler)  # type: ignore[arg-type]

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    app.include_router(public_router, prefix="/api")
    app.include_router(verify_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    return app


def main() -> None:
    """Run the license server."""
    logging.basicConfig(
        level=logging.DEBUG if get_settings().debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = get_settings()
    uvicorn.run(
        "licensehub.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        workers=settings.server.workers,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
