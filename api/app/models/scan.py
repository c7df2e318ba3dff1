"""Scan request/response models and the append-only scan history record."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.agent import Agent


class ScanType(str, Enum):
    RECONCILIATION = "reconciliation"
    FAILED = "failed"


class ScanRecord(BaseModel):
    owner_address: str
    agents_found: int = Field(default=0, ge=0)
    succeeded: bool
    error_detail: Optional[str] = None
    observed_at: datetime
    scan_type: ScanType = ScanType.RECONCILIATION
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deactivated: int = Field(default=0, ge=0)


class ReconcileResult(BaseModel):
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deactivated: int = Field(default=0, ge=0)

    @property
    def changed(self) -> int:
        return self.created + self.updated + self.deactivated


class ScanRequest(BaseModel):
    """POST /api/sync body. Address format is checked by the scan service."""

    address: str
    force_refresh: bool = False


class ScanSummary(BaseModel):
    total_found: int = Field(ge=0)
    processed: int = Field(ge=0)
    scanned_at: datetime
    cached: bool = False
    reconciliation: Optional[ReconcileResult] = None
    quarantined: int = Field(default=0, ge=0)


class ScanResult(BaseModel):
    agents: list[Agent]
    completed_agents: list[Agent]
    summary: ScanSummary


class StatusSummary(BaseModel):
    total_agents: int = Field(ge=0)
    active_agents: int = Field(ge=0)
    last_scan: Optional[datetime] = None


class ScanStatus(BaseModel):
    owner_address: str
    agents: list[Agent]
    scan_history: list[ScanRecord]
    summary: StatusSummary
