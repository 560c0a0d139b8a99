"""Developer identity and workspace bootstrap."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .paths import JOURNAL_PREFIX, WORKSPACE_PATH, developer_file, workspace_dir

logger = logging.getLogger(__name__)

_NAME_LINE = re.compile(r"^name=(.+)$", re.MULTILINE)
_INITIALIZED_LINE = re.compile(r"^initialized_at=(.+)$", re.MULTILINE)
JOURNAL_FILE = re.compile(rf"^{re.escape(JOURNAL_PREFIX)}(\d+)\.md$")

INDEX_TEMPLATE = """# Workspace Index - {name}

> Journal tracking for AI development sessions.

---

## Current Status

<!-- @@@auto:current-status -->
- **Active File**: `journal-1.md`
- **Total Sessions**: 0
- **Last Active**: -
<!-- @@@/auto:current-status -->

---

## Active Documents

<!-- @@@auto:active-documents -->
| File | Lines | Status |
|------|-------|--------|
| `journal-1.md` | ~0 | Active |
<!-- @@@/auto:active-documents -->

---

## Session History

<!-- @@@auto:session-history -->
| # | Date | Title | Commits |
|---|------|-------|---------|
<!-- @@@/auto:session-history -->

---

## Notes

- Sessions are appended to journal files
- New journal file created when current exceeds {max_lines} lines
"""


class DeveloperNotInitializedError(RuntimeError):
    """Raised when an operation needs a developer identity and none is configured."""


class Developer(BaseModel):
    """Identity stored in ``.trellis/.developer``."""

    name: str = Field(..., description="Developer name, also the workspace directory name.")
    initialized_at: str = Field(..., description="ISO timestamp of identity creation.")

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Developer name must not be empty")
        return normalized


@dataclass(slots=True)
class DeveloperInfo:
    name: str | None
    workspace_path: str | None
    journal_file: str | None
    journal_lines: int


def journal_header(developer: str, number: int, started: date | None = None) -> str:
    started = started or date.today()
    return (
        f"# Journal - {developer} (Part {number})\n"
        "\n"
        "> AI development session journal\n"
        f"> Started: {started.isoformat()}\n"
        "\n"
        "---\n"
        "\n"
    )


def count_lines(path: Path) -> int:
    """Count lines the way the journal rotation threshold expects (split on newline)."""

    path = Path(path)
    if not path.exists():
        return 0
    return len(path.read_text(encoding="utf-8").split("\n"))


def get_developer_record(repo_root: Path) -> Developer | None:
    path = developer_file(repo_root)
    if not path.exists():
        return None

    content = path.read_text(encoding="utf-8")
    name_match = _NAME_LINE.search(content)
    if not name_match or not name_match.group(1).strip():
        return None
    date_match = _INITIALIZED_LINE.search(content)
    initialized_at = (
        date_match.group(1).strip() if date_match else datetime.now(timezone.utc).isoformat()
    )
    return Developer(name=name_match.group(1), initialized_at=initialized_at)


def get_developer(repo_root: Path) -> str | None:
    """Return the current developer name or ``None`` when not initialized."""

    record = get_developer_record(repo_root)
    return record.name if record else None


def ensure_developer(repo_root: Path) -> str:
    developer = get_developer(repo_root)
    if developer is None:
        raise DeveloperNotInitializedError(
            "Developer not initialized; call init_developer() with a name first"
        )
    return developer


def init_developer(name: str, repo_root: Path, *, max_journal_lines: int = 2000) -> Developer:
    """Write the identity file and bootstrap the developer's workspace.

    Existing journal and index files are left untouched.
    """

    record = Developer(name=name, initialized_at=datetime.now(timezone.utc).isoformat())
    path = developer_file(repo_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f"name={record.name}\ninitialized_at={record.initialized_at}\n", encoding="utf-8"
    )

    workspace = workspace_dir(record.name, repo_root)
    workspace.mkdir(parents=True, exist_ok=True)

    journal = workspace / f"{JOURNAL_PREFIX}1.md"
    if not journal.exists():
        journal.write_text(journal_header(record.name, 1), encoding="utf-8")

    index = workspace / "index.md"
    if not index.exists():
        index.write_text(
            INDEX_TEMPLATE.format(name=record.name, max_lines=max_journal_lines),
            encoding="utf-8",
        )

    logger.info("Initialized developer", extra={"developer": record.name})
    return record


def developer_info(repo_root: Path) -> DeveloperInfo:
    developer = get_developer(repo_root)
    if developer is None:
        return DeveloperInfo(name=None, workspace_path=None, journal_file=None, journal_lines=0)

    numbered: list[tuple[int, Path]] = []
    for item in workspace_dir(developer, repo_root).glob(f"{JOURNAL_PREFIX}*.md"):
        match = JOURNAL_FILE.match(item.name)
        if match:
            numbered.append((int(match.group(1)), item))
    latest = max(numbered)[1] if numbered else None
    return DeveloperInfo(
        name=developer,
        workspace_path=f"{WORKSPACE_PATH}/{developer}/",
        journal_file=latest.relative_to(repo_root).as_posix() if latest else None,
        journal_lines=count_lines(latest) if latest else 0,
    )


__all__ = [
    "Developer",
    "DeveloperInfo",
    "DeveloperNotInitializedError",
    "count_lines",
    "developer_info",
    "ensure_developer",
    "get_developer",
    "get_developer_record",
    "init_developer",
    "journal_header",
]
