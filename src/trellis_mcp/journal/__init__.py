"""Developer session journals."""

from .manager import JournalManager, render_session
from .models import (
    MAX_JOURNAL_LINES,
    JournalFile,
    JournalInfo,
    JournalStatus,
    Session,
    SessionRecord,
)
from .workspace import update_workspace_index

__all__ = [
    "JournalFile",
    "JournalInfo",
    "JournalManager",
    "JournalStatus",
    "MAX_JOURNAL_LINES",
    "Session",
    "SessionRecord",
    "render_session",
    "update_workspace_index",
]
