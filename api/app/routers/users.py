"""Owner profile and dashboard API routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Query

from app.adapters.agent_store import AgentStore
from app.models.error import ErrorDetail
from app.models.user import Dashboard, ScanHistoryPage, User, UserProfile, UserUpdate
from app.routers.sync import get_store
from app.services import user_service

router = APIRouter()

_ERRORS = {400: {"model": ErrorDetail}, 404: {"model": ErrorDetail}}
_BAD_ADDRESS = {400: {"model": ErrorDetail}}


@router.get("/users/{address}", response_model=UserProfile, responses=_ERRORS)
async def get_profile(address: str, store: AgentStore = Depends(get_store)) -> UserProfile:
    return await asyncio.to_thread(user_service.get_profile, store, address)


@router.put("/users/{address}", response_model=User, responses=_ERRORS)
async def update_user(address: str, data: UserUpdate, store: AgentStore = Depends(get_store)) -> User:
    return await asyncio.to_thread(user_service.update_user, store, address, data)


@router.get("/users/{address}/scan-history", response_model=ScanHistoryPage, responses=_BAD_ADDRESS)
async def scan_history(
    address: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    store: AgentStore = Depends(get_store),
) -> ScanHistoryPage:
    return await asyncio.to_thread(user_service.scan_history, store, address, limit, offset)


@router.get("/users/{address}/dashboard", response_model=Dashboard, responses=_ERRORS)
async def dashboard(address: str, store: AgentStore = Depends(get_store)) -> Dashboard:
    return await asyncio.to_thread(user_service.dashboard, store, address)
