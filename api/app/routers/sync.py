"""Smart scan API routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request

from app.adapters.agent_store import AgentStore
from app.models.error import ErrorDetail
from app.models.scan import ScanRequest, ScanResult, ScanStatus
from app.services import sync_service

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorDetail},
    500: {"model": ErrorDetail},
    502: {"model": ErrorDetail},
    503: {"model": ErrorDetail},
}


def get_store(request: Request) -> AgentStore:
    return request.app.state.agent_store


@router.post("/sync", response_model=ScanResult, responses=_ERRORS)
async def smart_scan(data: ScanRequest, request: Request, store: AgentStore = Depends(get_store)) -> ScanResult:
    """Discover agents for an address, reconciling the local store unless a recent scan is fresh."""
    return await asyncio.to_thread(
        sync_service.scan,
        store,
        data.address,
        data.force_refresh,
        client_factory=getattr(request.app.state, "source_client_factory", None),
    )


@router.get("/sync/status/{address}", response_model=ScanStatus, responses={404: {"model": ErrorDetail}})
async def scan_status(address: str, store: AgentStore = Depends(get_store)) -> ScanStatus:
    return await asyncio.to_thread(sync_service.get_status, store, address)
