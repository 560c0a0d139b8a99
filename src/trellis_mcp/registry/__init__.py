"""Durable registry and lifecycle supervision for launched agents."""

from .lifecycle import AgentSupervisor
from .models import TERMINAL_STATUSES, AgentRecord, AgentStatus, LaunchRequest
from .store import AgentNotFoundError, AgentRegistry, RegistryError

__all__ = [
    "AgentNotFoundError",
    "AgentRecord",
    "AgentRegistry",
    "AgentStatus",
    "AgentSupervisor",
    "LaunchRequest",
    "RegistryError",
    "TERMINAL_STATUSES",
]
