"""Session and journal models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

MAX_JOURNAL_LINES = 2000


class Session(BaseModel):
    """A completed work session to append to the developer's journal."""

    title: str = Field(..., description="One-line session title.")
    commit: str | None = Field(default=None, description="Commit hash(es) produced in the session.")
    summary: str | None = Field(default=None, description="Short summary paragraph.")
    content: str | None = Field(default=None, description="Markdown details.")
    timestamp: str | None = Field(default=None, description="ISO timestamp; defaults to now.")

    @field_validator("title")
    @classmethod
    def _validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Session title must not be empty")
        if "\n" in normalized or "\r" in normalized:
            raise ValueError("Session title must be a single line")
        return normalized

    @field_validator("commit", "summary", "content", "timestamp")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value


@dataclass(slots=True)
class SessionRecord:
    number: int
    title: str
    date: str
    commit: str | None = None


@dataclass(slots=True)
class JournalFile:
    path: Path
    number: int


@dataclass(slots=True)
class JournalInfo:
    file_path: Path
    relative_path: str
    line_count: int
    file_number: int
    session_count: int


@dataclass(slots=True)
class JournalStatus:
    active_file: str | None
    line_count: int
    max_lines: int
    total_sessions: int
    file_number: int


__all__ = [
    "JournalFile",
    "JournalInfo",
    "JournalStatus",
    "MAX_JOURNAL_LINES",
    "Session",
    "SessionRecord",
]
