"""FastAPI server exposing the monitor engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.target_routes import target_router
from src.config import settings
from src.monitor.engine import MonitorEngine
from src.targets.registry import TargetRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the target file and start one supervisor per target."""
    registry = TargetRegistry(Path(settings.targets_file))
    try:
        targets = registry.load_or_create()
    except OSError:
        logger.exception("Failed to create %s — starting with no targets", registry.path)
        targets = []
    app.state.registry = registry

    engine = MonitorEngine(
        interval=registry.check_interval_seconds or settings.check_interval_seconds,
        timeout=registry.timeout_seconds or settings.timeout_seconds,
        grace=settings.shutdown_grace_seconds,
    )
    for target in targets:
        engine.add(target)
    app.state.engine = engine
    logger.info(
        "Monitor engine started: %d targets, interval=%ss timeout=%ss",
        len(targets), engine.interval, engine.timeout,
    )

    yield

    engine.shutdown()


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Uptime Monitor",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(target_router, prefix="/api")

    @app.get("/api/health")
    def service_health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
