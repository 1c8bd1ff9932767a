"""SuperCGM Companion: FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.companion.pipeline import Companion
from src.config import Settings, get_settings
from src.routers import configuration, device, health

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("supercgm")


# ---------- App factory ----------

def create_app(
    settings: Settings | None = None,
    companion: Companion | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings:  Process settings; defaults to ``get_settings()``.
        companion: Pre-built companion (tests); built from settings on startup
                   otherwise.
    """
    settings = settings or get_settings()
    logging.getLogger("supercgm").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.app_name,
            settings.app_version,
            settings.environment,
        )
        app.state.companion = companion or Companion.from_settings(settings)
        await app.state.companion.start()
        yield
        await app.state.companion.stop()
        logger.info("%s shut down", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Phone-side companion of the SuperCGM watch-face: configuration, "
            "weather and glucose polling, and message delivery to the watch."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(configuration.router, prefix=v1_prefix)
    app.include_router(device.router, prefix=v1_prefix)

    return app


app = create_app()
