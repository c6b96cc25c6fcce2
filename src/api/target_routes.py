"""API routes for the monitored targets.

Endpoints:
  GET    /api/targets        — all status snapshots + summary
  GET    /api/targets/{id}   — one status snapshot
  POST   /api/targets        — start monitoring a new target (persisted)
  PUT    /api/targets/{id}   — replace a target (remove + add, new id)
  DELETE /api/targets/{id}   — stop monitoring a target (persisted)
  GET    /api/summary        — online / offline / disabled counts
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from src.monitor.engine import EngineError, MonitorEngine
from src.targets.registry import Target, TargetRegistry

logger = logging.getLogger(__name__)

target_router = APIRouter()


class TargetRequest(BaseModel):
    name: str
    host: str
    port: int | None = None
    protocol: str = "ping"  # ping | tcp | udp
    enabled: bool = True


# -- Helpers ---------------------------------------------------------------------


def _engine(request: Request) -> MonitorEngine:
    return request.app.state.engine


def _registry(request: Request) -> TargetRegistry | None:
    return getattr(request.app.state, "registry", None)


def _persist(registry: TargetRegistry) -> None:
    """Write the target file after a change. A failed write is logged, not fatal."""
    try:
        registry.save()
    except OSError:
        logger.exception("Could not save %s", registry.path)


def _parse(req: TargetRequest) -> Target:
    try:
        return Target.from_dict(req.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def _snapshot(engine: MonitorEngine, record_id: str) -> dict[str, Any]:
    # a concurrent DELETE may have removed the record already
    record = engine.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Target not found: {record_id}")
    return record.to_dict()


# -- Endpoints -------------------------------------------------------------------


@target_router.get("/targets")
def list_targets(request: Request) -> dict[str, Any]:
    engine = _engine(request)
    return {
        "targets": [r.to_dict() for r in engine.list()],
        "summary": engine.summary(),
    }


@target_router.get("/targets/{record_id}")
def get_target(record_id: str, request: Request) -> dict[str, Any]:
    return _snapshot(_engine(request), record_id)


@target_router.post("/targets", status_code=201)
def add_target(req: TargetRequest, request: Request) -> dict[str, Any]:
    target = _parse(req)
    engine = _engine(request)
    try:
        record_id = engine.add(target)
    except EngineError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    registry = _registry(request)
    if registry is not None:
        with registry.lock:
            registry.add_target(target)
            _persist(registry)
    return _snapshot(engine, record_id)


@target_router.put("/targets/{record_id}")
def replace_target(record_id: str, req: TargetRequest, request: Request) -> dict[str, Any]:
    target = _parse(req)
    engine = _engine(request)
    current = engine.get(record_id)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Target not found: {record_id}")

    try:
        new_id = engine.replace(record_id, target)
    except EngineError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if new_id is None:
        raise HTTPException(status_code=404, detail=f"Target not found: {record_id}")

    registry = _registry(request)
    if registry is not None:
        with registry.lock:
            registry.replace_matching(current.target, target)
            _persist(registry)
    return _snapshot(engine, new_id)


@target_router.delete("/targets/{record_id}")
def remove_target(record_id: str, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    current = engine.get(record_id)
    if current is None or not engine.remove(record_id):
        raise HTTPException(status_code=404, detail=f"Target not found: {record_id}")

    registry = _registry(request)
    if registry is not None:
        with registry.lock:
            if registry.remove_matching(current.target):
                _persist(registry)
    return {"id": record_id, "removed": True}


@target_router.get("/summary")
def summary(request: Request) -> dict[str, int]:
    return _engine(request).summary()
