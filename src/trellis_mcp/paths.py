"""Workflow directory layout and the current-task pointer."""

from __future__ import annotations

import logging
import re
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)

WORKFLOW_DIR = ".trellis"
WORKSPACE_DIR = "workspace"
TASKS_DIR = "tasks"
ARCHIVE_DIR = "archive"
SPEC_DIR = "spec"
AGENTS_DIR = ".agents"

DEVELOPER_FILE = ".developer"
CURRENT_TASK_FILE = ".current-task"
TASK_JSON = "task.json"
WORKFLOW_GUIDE = "workflow.md"
WORKTREE_CONFIG = "worktree.yaml"
JOURNAL_PREFIX = "journal-"

# Relative, "/"-separated forms used inside persisted records.
TASKS_PATH = f"{WORKFLOW_DIR}/{TASKS_DIR}"
SPEC_PATH = f"{WORKFLOW_DIR}/{SPEC_DIR}"
WORKSPACE_PATH = f"{WORKFLOW_DIR}/{WORKSPACE_DIR}"

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def find_repo_root(start: Path) -> Path:
    """Walk upward from ``start`` looking for the workflow directory, then ``.git``."""

    start = Path(start).resolve()
    for marker in (WORKFLOW_DIR, ".git"):
        for candidate in (start, *start.parents):
            if (candidate / marker).exists():
                return candidate
    return start


def workflow_dir(repo_root: Path) -> Path:
    return Path(repo_root) / WORKFLOW_DIR


def tasks_dir(repo_root: Path) -> Path:
    return workflow_dir(repo_root) / TASKS_DIR


def archive_dir(repo_root: Path) -> Path:
    return tasks_dir(repo_root) / ARCHIVE_DIR


def workspace_dir(developer: str, repo_root: Path) -> Path:
    return workflow_dir(repo_root) / WORKSPACE_DIR / developer


def agents_dir(repo_root: Path) -> Path:
    return workflow_dir(repo_root) / AGENTS_DIR


def developer_file(repo_root: Path) -> Path:
    return workflow_dir(repo_root) / DEVELOPER_FILE


def worktree_config_file(repo_root: Path) -> Path:
    return workflow_dir(repo_root) / WORKTREE_CONFIG


def slugify(title: str) -> str:
    """Lowercase ``title`` and collapse everything outside ``[a-z0-9]`` into dashes."""

    return _SLUG_INVALID.sub("-", title.lower()).strip("-")


def task_date_prefix(today: date | None = None) -> str:
    """Return the ``MM-DD`` prefix used in task directory names."""

    today = today or date.today()
    return today.strftime("%m-%d")


class CurrentTaskPointer:
    """Process-wide pointer to the task the developer is working on.

    Stored as a single line ``.trellis/tasks/<dir>`` in ``.trellis/.current-task``.
    Only the orchestrator writes it: ``set`` on task start, ``clear`` on
    archive. There is no lock; concurrent writers race last-write-wins.
    """

    def __init__(self, repo_root: Path) -> None:
        self._repo_root = Path(repo_root)

    @property
    def path(self) -> Path:
        return workflow_dir(self._repo_root) / CURRENT_TASK_FILE

    def get(self) -> str | None:
        if not self.path.exists():
            return None
        value = self.path.read_text(encoding="utf-8").strip()
        return value or None

    def set(self, dir_name: str) -> str:
        relative = f"{TASKS_PATH}/{dir_name}"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(relative + "\n", encoding="utf-8")
        logger.debug("Current task set", extra={"task": relative})
        return relative

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Current task cleared")

    def points_to(self, dir_name: str) -> bool:
        current = self.get()
        return current is not None and current.rstrip("/").split("/")[-1] == dir_name


__all__ = [
    "CurrentTaskPointer",
    "find_repo_root",
    "slugify",
    "task_date_prefix",
]
