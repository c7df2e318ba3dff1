"""Liveness, readiness and version endpoints for the scanner service."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from app.services import scan_config

router = APIRouter()

API_VERSION = "1.0.0"
_STARTED_MONOTONIC = time.monotonic()


class HealthResponse(BaseModel):
    """GET /api/health. ``status`` is ``degraded`` while the store does not answer."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["ok", "degraded"]
    version: str = Field(pattern=r"^\d+\.\d+\.\d+$")
    timestamp: str
    uptime_seconds: int = Field(ge=0)
    network: str
    store: Literal["memory", "sql"]
    store_ok: bool
    source_configured: bool


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _store_backend(store: object) -> str:
    return "sql" if hasattr(store, "engine") else "memory"


def _source_configured() -> bool:
    username, password = scan_config.source_credentials()
    return bool(scan_config.source_base_url() and username and password)


async def _ping(store: Optional[object]) -> bool:
    if store is None:
        return False
    return await asyncio.to_thread(store.ping)


@router.get("/version")
async def version():
    return {"version": API_VERSION}


@router.get("/ready")
async def ready(request: Request):
    """Readiness probe: 503 until a store is attached and answering."""
    if not await _ping(getattr(request.app.state, "agent_store", None)):
        raise HTTPException(status_code=503, detail="Agent store not ready")
    return {"status": "ready", "version": API_VERSION, "timestamp": _now_iso()}


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    store = getattr(request.app.state, "agent_store", None)
    store_ok = await _ping(store)
    return HealthResponse(
        status="ok" if store_ok else "degraded",
        version=API_VERSION,
        timestamp=_now_iso(),
        uptime_seconds=int(time.monotonic() - _STARTED_MONOTONIC),
        network=scan_config.flow_network(),
        store=_store_backend(store),
        store_ok=store_ok,
        source_configured=_source_configured(),
    )
