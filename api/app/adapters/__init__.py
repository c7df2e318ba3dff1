"""Agent persistence adapters: in-memory and SQL stores."""

from app.adapters.agent_store import AgentStore, InMemoryAgentStore
from app.adapters.sql_agent_store import SqlAgentStore

__all__ = ["AgentStore", "InMemoryAgentStore", "SqlAgentStore"]
