"""Auto-generated sections of the developer's workspace ``index.md``."""

from __future__ import annotations

import logging
from pathlib import Path

from ..developer import count_lines, ensure_developer
from ..paths import workspace_dir
from .manager import JournalManager
from .models import JournalFile, SessionRecord

logger = logging.getLogger(__name__)

INDEX_FILE = "index.md"
HISTORY_LIMIT = 10

CURRENT_STATUS = "current-status"
ACTIVE_DOCUMENTS = "active-documents"
SESSION_HISTORY = "session-history"


def _markers(section: str) -> tuple[str, str]:
    return f"<!-- @@@auto:{section} -->", f"<!-- @@@/auto:{section} -->"


def replace_section(content: str, section: str, body: str) -> str:
    """Replace the text between a section's markers; unchanged when a marker is missing."""

    start_marker, end_marker = _markers(section)
    start = content.find(start_marker)
    end = content.find(end_marker)
    if start == -1 or end == -1 or end < start:
        return content
    return f"{content[:start + len(start_marker)]}\n{body}\n{content[end:]}"


def render_current_status(active_file: str, total_sessions: int, last_active: str) -> str:
    return "\n".join(
        [
            f"- **Active File**: `{active_file}`",
            f"- **Total Sessions**: {total_sessions}",
            f"- **Last Active**: {last_active}",
        ]
    )


def render_active_documents(journals: list[JournalFile], max_lines: int) -> str:
    rows = ["| File | Lines | Status |", "|------|-------|--------|"]
    latest = journals[-1].number if journals else None
    for journal in journals:
        lines = count_lines(journal.path)
        if lines >= max_lines:
            status = "Full"
        elif journal.number == latest:
            status = "Active"
        else:
            status = "Archived"
        rows.append(f"| `{journal.path.name}` | ~{lines} | {status} |")
    return "\n".join(rows)


def render_session_history(sessions: list[SessionRecord], limit: int = HISTORY_LIMIT) -> str:
    rows = ["| # | Date | Title | Commits |", "|---|------|-------|---------|"]
    for record in reversed(sessions[-limit:]):
        commit = f"`{record.commit}`" if record.commit else "-"
        rows.append(f"| {record.number} | {record.date} | {record.title} | {commit} |")
    return "\n".join(rows)


def index_path(developer: str, repo_root: Path) -> Path:
    return workspace_dir(developer, repo_root) / INDEX_FILE


def update_workspace_index(manager: JournalManager, developer: str | None = None) -> Path | None:
    """Rewrite the auto sections of the developer's ``index.md``.

    Returns the index path, or ``None`` when the index does not exist.
    """

    developer = developer or ensure_developer(manager.repo_root)
    path = index_path(developer, manager.repo_root)
    if not path.exists():
        logger.warning("Workspace index not found", extra={"developer": developer, "path": str(path)})
        return None

    journals = manager.get_journal_files(developer)
    sessions = manager.list_sessions(developer)
    active_file = journals[-1].path.name if journals else "journal-1.md"
    last_active = sessions[-1].date if sessions else "-"

    content = path.read_text(encoding="utf-8")
    content = replace_section(
        content, CURRENT_STATUS, render_current_status(active_file, len(sessions), last_active)
    )
    content = replace_section(content, ACTIVE_DOCUMENTS, render_active_documents(journals, manager.max_lines))
    content = replace_section(content, SESSION_HISTORY, render_session_history(sessions))
    path.write_text(content, encoding="utf-8")
    return path


__all__ = [
    "HISTORY_LIMIT",
    "index_path",
    "render_active_documents",
    "render_current_status",
    "render_session_history",
    "replace_section",
    "update_workspace_index",
]
