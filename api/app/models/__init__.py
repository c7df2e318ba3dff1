"""Pydantic models."""

from app.models.agent import Agent, AgentList, AgentStats, AgentStatus, AgentUpdate
from app.models.error import ErrorDetail
from app.models.scan import ReconcileResult, ScanRecord, ScanRequest, ScanResult, ScanStatus
from app.models.task_record import ExecutionEntry, TaskRecord, TaskStatus
from app.models.user import Dashboard, ScanHistoryPage, User, UserProfile, UserUpdate

__all__ = [
    "Agent",
    "AgentList",
    "AgentStats",
    "AgentStatus",
    "AgentUpdate",
    "Dashboard",
    "ErrorDetail",
    "ExecutionEntry",
    "ReconcileResult",
    "ScanRecord",
    "ScanRequest",
    "ScanResult",
    "ScanHistoryPage",
    "ScanStatus",
    "TaskRecord",
    "TaskStatus",
    "User",
    "UserProfile",
    "UserUpdate",
]
