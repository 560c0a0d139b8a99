"""Filesystem-backed task store."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping

from pydantic import ValidationError

from ..developer import DeveloperNotInitializedError, get_developer
from ..paths import (
    ARCHIVE_DIR,
    TASK_JSON,
    TASKS_PATH,
    CurrentTaskPointer,
    archive_dir,
    slugify,
    task_date_prefix,
    tasks_dir,
)
from .models import ArchivedTask, CreateTaskOptions, PhaseAction, Task, TaskListing, TaskStatus

logger = logging.getLogger(__name__)

_MONTH = re.compile(r"^\d{4}-\d{2}")


class TaskStoreError(RuntimeError):
    """Base class for task store errors."""


class TaskExistsError(TaskStoreError):
    """Raised when a task directory would overwrite an existing one."""


class TaskValidationError(TaskStoreError):
    """Raised when task input cannot produce a valid record."""


def _field_key(key: str) -> str:
    """Map a snake_case field name to its on-disk JSON key."""

    field = Task.model_fields.get(key)
    if field is not None and field.alias:
        return field.alias
    return key


class TaskStore:
    """CRUD and archival for task directories under ``.trellis/tasks``."""

    def __init__(
        self,
        repo_root: Path,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo_root = Path(repo_root)
        self._clock = clock or datetime.now
        self._pointer = CurrentTaskPointer(self._repo_root)

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    @property
    def tasks_dir(self) -> Path:
        return tasks_dir(self._repo_root)

    @property
    def current_task(self) -> CurrentTaskPointer:
        return self._pointer

    def _today(self) -> date:
        return self._clock().date()

    def task_dir(self, dir_name: str) -> Path:
        return self.tasks_dir / dir_name

    # -- record I/O -------------------------------------------------------

    def read_task(self, task_dir: Path) -> Task | None:
        path = Path(task_dir) / TASK_JSON
        if not path.exists():
            return None

        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable task.json", extra={"task_dir": str(task_dir), "error": str(exc)})
            return None

        try:
            return Task.model_validate(document)
        except ValidationError as exc:
            logger.warning("Invalid task.json", extra={"task_dir": str(task_dir), "error": str(exc)})
            return None

    def write_task(self, task_dir: Path, task: Task) -> Path:
        path = Path(task_dir) / TASK_JSON
        path.write_text(task.to_json(), encoding="utf-8")
        return path

    # -- CRUD -------------------------------------------------------------

    def create_task(self, title: str, options: CreateTaskOptions | None = None) -> str:
        """Create a task directory and its record.

        Returns the repo-relative directory, e.g. ``.trellis/tasks/03-14-fix-login-bug``.
        """

        options = options or CreateTaskOptions()
        developer = get_developer(self._repo_root)

        assignee = options.assignee or developer
        if not assignee:
            raise DeveloperNotInitializedError(
                "No developer set; initialize one or pass an explicit assignee"
            )
        creator = developer or assignee

        slug = options.slug or slugify(title)
        if not slug:
            raise TaskValidationError(f"Could not derive a slug from title {title!r}")

        today = self._today()
        dir_name = f"{task_date_prefix(today)}-{slug}"
        task_dir = self.task_dir(dir_name)
        if task_dir.exists():
            raise TaskExistsError(f"Task directory already exists: {dir_name}")

        task = Task(
            id=slug,
            name=slug,
            title=title,
            description=options.description,
            priority=options.priority,
            creator=creator,
            assignee=assignee,
            created_at=today.isoformat(),
        )

        task_dir.mkdir(parents=True)
        self.write_task(task_dir, task)
        logger.info("Created task", extra={"task": dir_name, "assignee": assignee})
        return f"{TASKS_PATH}/{dir_name}"

    def _iter_active_dirs(self) -> Iterator[Path]:
        if not self.tasks_dir.exists():
            return
        for entry in sorted(self.tasks_dir.iterdir()):
            if entry.is_dir() and entry.name != ARCHIVE_DIR:
                yield entry

    def find_task(self, name_or_slug: str) -> tuple[Task, Path] | None:
        """Locate an active task by directory name, slug suffix, id, or name."""

        for task_dir in self._iter_active_dirs():
            task = self.read_task(task_dir)
            if task is None:
                continue
            if (
                task_dir.name == name_or_slug
                or task_dir.name.endswith(f"-{name_or_slug}")
                or task.id == name_or_slug
                or task.name == name_or_slug
            ):
                return task, task_dir
        return None

    def list_tasks(self, *, mine: bool = False, status: TaskStatus | None = None) -> list[TaskListing]:
        developer = get_developer(self._repo_root) if mine else None
        listings: list[TaskListing] = []

        for task_dir in self._iter_active_dirs():
            task = self.read_task(task_dir)
            if task is None:
                continue
            if mine and task.assignee != developer:
                continue
            if status and task.status != status:
                continue
            listings.append(
                TaskListing(
                    task=task,
                    dir_name=task_dir.name,
                    is_current=self._pointer.points_to(task_dir.name),
                )
            )

        return listings

    def update_task(self, task_dir: Path, updates: Mapping[str, Any]) -> Task | None:
        """Shallow-merge ``updates`` into the stored record.

        Keys may be field names or JSON keys. Returns ``None`` when the
        existing record is missing or invalid, or when the merged record
        fails validation; nothing is written in that case.
        """

        task = self.read_task(task_dir)
        if task is None:
            return None

        payload = task.model_dump(by_alias=True)
        for key, value in updates.items():
            payload[_field_key(key)] = value

        try:
            updated = Task.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Rejected task update", extra={"task_dir": str(task_dir), "error": str(exc)})
            return None
        self.write_task(task_dir, updated)
        return updated

    def advance_phase(self, task_dir: Path) -> PhaseAction | None:
        """Move ``current_phase`` to the next planned phase.

        Returns the new phase step, or ``None`` when the plan is exhausted.
        """

        task = self.read_task(task_dir)
        if task is None:
            return None

        upcoming = sorted(
            (step for step in task.next_action if step.phase > task.current_phase),
            key=lambda step: step.phase,
        )
        if not upcoming:
            return None

        step = upcoming[0]
        self.update_task(task_dir, {"current_phase": step.phase})
        logger.info(
            "Advanced task phase",
            extra={"task": Path(task_dir).name, "phase": step.phase, "action": step.action},
        )
        return step

    # -- archive ----------------------------------------------------------

    def archive_task(self, name_or_slug: str) -> str | None:
        """Mark a task completed and move it under ``archive/<YYYY-MM>/``.

        Each step is safe to repeat, so re-running after a crash converges.
        """

        found = self.find_task(name_or_slug)
        if found is None:
            return None
        task, task_dir = found
        return self._archive(task, task_dir)

    def _archive(self, task: Task, task_dir: Path) -> str:
        dir_name = task_dir.name
        completed_at = task.completed_at or self._today().isoformat()
        month = completed_at[:7] if _MONTH.match(completed_at) else self._today().strftime("%Y-%m")
        destination = archive_dir(self._repo_root) / month / dir_name
        if destination.exists():
            raise TaskExistsError(f"Archive destination already exists: {month}/{dir_name}")

        if task.status != "completed" or task.completed_at != completed_at:
            self.update_task(task_dir, {"status": "completed", "completed_at": completed_at})

        if self._pointer.points_to(dir_name):
            self._pointer.clear()

        destination.parent.mkdir(parents=True, exist_ok=True)
        task_dir.rename(destination)
        logger.info("Archived task", extra={"task": dir_name, "month": month})
        return f"{TASKS_PATH}/{ARCHIVE_DIR}/{month}/{dir_name}"

    def recover_interrupted_archives(self) -> list[str]:
        """Finish archiving tasks left completed but not relocated."""

        recovered: list[str] = []
        for task_dir in list(self._iter_active_dirs()):
            task = self.read_task(task_dir)
            if task is None or task.status != "completed" or not task.completed_at:
                continue
            logger.warning("Resuming interrupted archive", extra={"task": task_dir.name})
            try:
                recovered.append(self._archive(task, task_dir))
            except TaskStoreError as exc:
                logger.warning(
                    "Could not finish interrupted archive",
                    extra={"task": task_dir.name, "error": str(exc)},
                )
        return recovered

    def list_archived_tasks(self, month: str | None = None) -> list[ArchivedTask]:
        root = archive_dir(self._repo_root)
        if not root.exists():
            return []

        if month:
            months = [root / month]
        else:
            months = sorted(entry for entry in root.iterdir() if entry.is_dir())

        archived: list[ArchivedTask] = []
        for month_dir in months:
            if not month_dir.is_dir():
                continue
            for entry in sorted(month_dir.iterdir()):
                if entry.is_dir():
                    archived.append(ArchivedTask(dir_name=entry.name, month=month_dir.name))
        return archived


__all__ = ["TaskExistsError", "TaskStore", "TaskStoreError", "TaskValidationError"]
