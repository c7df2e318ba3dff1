"""Owner profiles: one row per scanned address, plus the profile and dashboard views."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.agent import Agent
from app.models.scan import ScanRecord


class User(BaseModel):
    """Created by the first scan of an address. ``nickname`` and ``email`` belong to the user."""

    address: str = Field(min_length=1)
    nickname: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpdate(BaseModel):
    nickname: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None


class UserStats(BaseModel):
    total_agents: int = Field(ge=0)
    active_agents: int = Field(ge=0)


class UserProfile(BaseModel):
    user: User
    agents: List[Agent]
    stats: UserStats


class Pagination(BaseModel):
    total: int = Field(ge=0)
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)
    has_more: bool


class ScanHistoryPage(BaseModel):
    scan_history: List[ScanRecord]
    pagination: Pagination


class UpcomingAgent(BaseModel):
    current_record_id: str
    handler_contract: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    nickname: Optional[str] = None


class DashboardStats(BaseModel):
    total_agents: int = Field(ge=0)
    active_agents: int = Field(ge=0)
    by_status: Dict[str, int] = Field(default_factory=dict)
    recent_scans: int = Field(ge=0)
    upcoming_executions: int = Field(ge=0)


class Dashboard(BaseModel):
    user: User
    stats: DashboardStats
    upcoming_agents: List[UpcomingAgent]
    recent_scans: List[ScanRecord]
