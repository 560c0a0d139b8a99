"""Task record models."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TaskStatus = Literal["planning", "in_progress", "review", "completed"]
DevType = Literal["backend", "frontend", "fullstack", "test"]
TaskPriority = Literal["P0", "P1", "P2", "P3"]
EntryType = Literal["file", "directory"]

DEV_TYPES: tuple[str, ...] = ("backend", "frontend", "fullstack", "test")
DEFAULT_PHASE_ACTIONS: tuple[str, ...] = ("implement", "check", "finish", "create-pr")


class PhaseAction(BaseModel):
    """One step of a task's phase plan."""

    phase: int = Field(..., ge=1, description="1-based phase number.")
    action: str = Field(..., description="Phase name, e.g. implement or check.")

    @field_validator("action")
    @classmethod
    def _normalize_action(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Phase action must not be empty")
        return normalized


def default_phases() -> list[PhaseAction]:
    return [
        PhaseAction(phase=index, action=action)
        for index, action in enumerate(DEFAULT_PHASE_ACTIONS, start=1)
    ]


class Task(BaseModel):
    """Persisted contents of ``task.json``.

    JSON keys keep their on-disk spelling (``createdAt``, ``relatedFiles``);
    unknown keys written by other tools survive a read/write cycle.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str
    title: str
    description: str = ""
    status: TaskStatus = "planning"
    dev_type: DevType | None = None
    scope: str | None = None
    priority: TaskPriority = "P2"
    creator: str
    assignee: str
    created_at: str = Field(..., alias="createdAt")
    completed_at: str | None = Field(default=None, alias="completedAt")
    branch: str | None = None
    base_branch: str | None = None
    worktree_path: str | None = None
    current_phase: int = Field(default=0, ge=0)
    next_action: list[PhaseAction] = Field(default_factory=default_phases)
    commit: str | None = None
    pr_url: str | None = None
    subtasks: list[Any] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list, alias="relatedFiles")
    notes: str = ""

    def to_json(self) -> str:
        payload = self.model_dump(by_alias=True, mode="json")
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"

    def phase_action(self, phase: int | None = None) -> PhaseAction | None:
        """Return the plan step for ``phase`` (defaults to the current phase)."""

        target = self.current_phase if phase is None else phase
        for step in self.next_action:
            if step.phase == target:
                return step
        return None


class ContextEntry(BaseModel):
    """A single line of a context manifest."""

    file: str = Field(..., min_length=1)
    type: EntryType | None = None
    reason: str

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"

    def to_jsonl(self) -> str:
        return json.dumps(
            self.model_dump(exclude_none=True), ensure_ascii=False, separators=(",", ":")
        )


@dataclass(slots=True)
class CreateTaskOptions:
    assignee: str | None = None
    slug: str | None = None
    description: str = ""
    priority: TaskPriority = "P2"


@dataclass(slots=True)
class TaskListing:
    task: Task
    dir_name: str
    is_current: bool


@dataclass(slots=True)
class ArchivedTask:
    dir_name: str
    month: str


__all__ = [
    "ArchivedTask",
    "ContextEntry",
    "CreateTaskOptions",
    "DEFAULT_PHASE_ACTIONS",
    "DEV_TYPES",
    "DevType",
    "PhaseAction",
    "Task",
    "TaskListing",
    "TaskPriority",
    "TaskStatus",
    "default_phases",
]
