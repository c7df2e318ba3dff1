"""Scheduled task records as observed on the source API."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    SCHEDULED = "scheduled"
    EXECUTED = "executed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({TaskStatus.EXECUTED, TaskStatus.FAILED})


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _as_text(value: object) -> object:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class TaskRecord(BaseModel):
    """One scheduled transaction. Immutable once observed.

    ``predecessor_ref`` is the id of the transaction that scheduled this one,
    ``successor_ref`` the id of the transaction produced when it finished.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    predecessor_ref: Optional[str] = None
    successor_ref: Optional[str] = None
    status: TaskStatus
    scheduled_at: datetime
    completed_at: Optional[datetime] = None
    owner_address: str = Field(min_length=1)
    handler_id: Optional[str] = None
    handler_contract: Optional[str] = None
    priority: Optional[str] = None
    execution_effort: Optional[int] = None
    fee: Optional[str] = None
    block_height: Optional[int] = None
    completed_block_height: Optional[int] = None
    error_detail: Optional[str] = None

    @field_validator("id", "predecessor_ref", "successor_ref", "handler_id", "priority", "fee", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> object:
        v = _as_text(v)
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("predecessor_ref", "successor_ref")
    @classmethod
    def empty_ref_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("scheduled_at", "completed_at")
    @classmethod
    def utc_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ExecutionEntry(BaseModel):
    """A completed run inside an agent's execution history."""

    record_id: str
    successor_ref: Optional[str] = None
    status: TaskStatus
    scheduled_at: datetime
    completed_at: Optional[datetime] = None
    block_height: Optional[int] = None
    completed_block_height: Optional[int] = None
    fee: Optional[str] = None
    execution_effort: Optional[int] = None
    error_detail: Optional[str] = None

    @field_validator("scheduled_at", "completed_at")
    @classmethod
    def utc_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @classmethod
    def from_record(cls, record: TaskRecord) -> "ExecutionEntry":
        return cls(
            record_id=record.id,
            successor_ref=record.successor_ref,
            status=record.status,
            scheduled_at=record.scheduled_at,
            completed_at=record.completed_at,
            block_height=record.block_height,
            completed_block_height=record.completed_block_height,
            fee=record.fee,
            execution_effort=record.execution_effort,
            error_detail=record.error_detail,
        )
