"""Agent listing and metadata API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.adapters.agent_store import AgentStore
from app.models.agent import Agent, AgentList, AgentStats, AgentStatus, AgentUpdate
from app.models.error import ErrorDetail
from app.routers.sync import get_store
from app.services import agent_service

router = APIRouter()


@router.get("/agents/agent/{record_id}", response_model=Agent, responses={404: {"model": ErrorDetail}})
async def get_agent(record_id: str, store: AgentStore = Depends(get_store)) -> Agent:
    return agent_service.get_agent(store, record_id)


@router.put("/agents/agent/{record_id}", response_model=Agent, responses={404: {"model": ErrorDetail}})
async def update_agent(record_id: str, data: AgentUpdate, store: AgentStore = Depends(get_store)) -> Agent:
    return agent_service.update_agent(store, record_id, data)


@router.delete("/agents/agent/{record_id}", response_model=Agent, responses={404: {"model": ErrorDetail}})
async def deactivate_agent(record_id: str, store: AgentStore = Depends(get_store)) -> Agent:
    return agent_service.deactivate_agent(store, record_id)


@router.get("/agents/{address}", response_model=AgentList, responses={400: {"model": ErrorDetail}})
async def list_agents(
    address: str,
    status: Optional[AgentStatus] = Query(None),
    is_active: Optional[bool] = Query(None),
    store: AgentStore = Depends(get_store),
) -> AgentList:
    agents = agent_service.list_agents(store, address, status=status, is_active=is_active)
    return AgentList(agents=agents, total=len(agents))


@router.get("/agents/{address}/stats", response_model=AgentStats, responses={400: {"model": ErrorDetail}})
async def agent_stats(address: str, store: AgentStore = Depends(get_store)) -> AgentStats:
    return agent_service.agent_stats(store, address)
