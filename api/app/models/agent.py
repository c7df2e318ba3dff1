"""Agent models: one persisted row per chain tail."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.task_record import ExecutionEntry, TaskStatus


class AgentStatus(str, Enum):
    SCHEDULED = "scheduled"
    EXECUTED = "executed"
    FAILED = "failed"
    COMPLETED = "completed"

    @classmethod
    def from_task_status(cls, status: TaskStatus) -> "AgentStatus":
        return cls(status.value)


class Agent(BaseModel):
    """Agent aggregate as persisted and returned by the API.

    ``current_record_id`` is the chain tail and the persisted key; it moves
    forward every time the chain advances. ``chain_id`` stays fixed while the
    head does. ``nickname``, ``description`` and ``tags`` belong to the user and
    are never written by a scan.
    """

    current_record_id: str = Field(min_length=1)
    chain_id: Optional[str] = None
    owner_address: str = Field(min_length=1)
    handler_id: Optional[str] = None
    handler_contract: Optional[str] = None
    status: AgentStatus
    scheduled_at: Optional[datetime] = None
    priority: Optional[str] = None
    execution_effort: Optional[int] = None
    fee: Optional[str] = None
    is_active: bool = True
    total_runs: int = Field(default=0, ge=0)
    successful_runs: int = Field(default=0, ge=0)
    failed_runs: int = Field(default=0, ge=0)
    last_execution_at: Optional[datetime] = None
    execution_history: List[ExecutionEntry] = Field(default_factory=list)
    nickname: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    superseded_by: Optional[str] = None  # tail id of the active agent that absorbed this row
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def history_ids(self) -> set[str]:
        return {entry.record_id for entry in self.execution_history}


class AgentUpdate(BaseModel):
    """Request body for editing agent metadata."""

    nickname: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def tags_bounded(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        for tag in v:
            if not 1 <= len(tag) <= 20:
                raise ValueError("Each tag must be between 1 and 20 characters")
        return v


class AgentList(BaseModel):
    agents: List[Agent]
    total: int


class AgentStats(BaseModel):
    total_agents: int = Field(ge=0)
    active_agents: int = Field(ge=0)
    by_status: Dict[str, int] = Field(default_factory=dict)
