"""Agent registry records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, field_validator

AgentStatus = Literal["launched", "running", "completed", "failed", "orphaned"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "orphaned"})

_AGENT_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class AgentRecord(BaseModel):
    """Durable state of one launched agent process."""

    agent_id: str = Field(..., description="Registry key; also the record's file name.")
    pid: int = Field(..., description="OS process id (process group leader for background agents).")
    platform: str = Field(..., description="Platform adapter that launched the agent.")
    agent_type: str = Field(..., description="Agent role, e.g. implement or check.")
    log_file: str = Field(..., description="Absolute path of the captured agent output.")
    session_id: str | None = Field(default=None, description="Agent-side session id, once reported.")
    task_dir: str = Field(..., description="Task directory the agent works on.")
    phase: int = Field(default=0, ge=0, description="Task phase the agent was dispatched for.")
    work_dir: str = Field(..., description="Working directory, usually a worktree.")
    status: AgentStatus = "launched"
    launched_at: str
    updated_at: str
    exit_code: int | None = None
    log_offset: int = Field(default=0, ge=0, description="Bytes of the log already consumed.")
    last_event: dict[str, Any] | None = None

    @field_validator("agent_id")
    @classmethod
    def _validate_agent_id(cls, value: str) -> str:
        if not _AGENT_ID.match(value):
            raise ValueError("agent_id may contain only letters, digits, '.', '_' and '-'")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(slots=True)
class LaunchRequest:
    platform: str
    agent_type: str
    task_dir: Path
    work_dir: Path
    phase: int = 0
    background: bool = True
    prompt: str | None = None
    agent_file: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)


__all__ = ["AgentRecord", "AgentStatus", "LaunchRequest", "TERMINAL_STATUSES"]
