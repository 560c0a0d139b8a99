"""Task control flow: start, advance, dispatch, finish."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import TrellisSettings
from .git import GitNotFoundError, WorktreeCreation, WorktreeManager
from .journal import JournalManager, Session, update_workspace_index
from .paths import agents_dir
from .platforms import ADAPTERS, PlatformAdapter, PlatformResolution, get_adapter, resolve_platform
from .registry import AgentRecord, AgentRegistry, AgentSupervisor, LaunchRequest
from .tasks import DevType, PhaseAction, Task, TaskStore, init_context, manifest_for_phase

logger = logging.getLogger(__name__)


class OrchestratorError(RuntimeError):
    """Raised when a control-flow step cannot proceed."""


class TaskNotFoundError(OrchestratorError):
    """Raised when no active task matches a name or slug."""


@dataclass(slots=True)
class StartedTask:
    task: Task
    task_dir: Path
    manifests: list[Path]
    worktree: WorktreeCreation | None = None


@dataclass(slots=True)
class FinishedTask:
    archive_path: str
    worktree_removed: bool


class TaskOrchestrator:
    """Single writer of task phase state and the current-task pointer."""

    def __init__(
        self,
        store: TaskStore,
        adapter: PlatformAdapter,
        *,
        worktrees: WorktreeManager | None,
        journal: JournalManager,
        supervisor: AgentSupervisor,
        branch_prefix: str = "feature/",
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._worktrees = worktrees
        self._journal = journal
        self._supervisor = supervisor
        self._branch_prefix = branch_prefix

    @classmethod
    def from_settings(cls, settings: TrellisSettings) -> "TaskOrchestrator":
        repo_root = settings.resolved_repo_root()
        overrides = settings.executable_overrides()
        resolution: PlatformResolution = resolve_platform(repo_root, settings.platform, executables=overrides)

        adapters = {name: get_adapter(name, executable=overrides.get(name)) for name in ADAPTERS}
        adapters[resolution.platform] = resolution.adapter

        try:
            worktrees: WorktreeManager | None = WorktreeManager(repo_root)
        except GitNotFoundError as exc:
            logger.warning("git unavailable; worktree isolation disabled", extra={"error": str(exc)})
            worktrees = None

        return cls(
            TaskStore(repo_root),
            resolution.adapter,
            worktrees=worktrees,
            journal=JournalManager(repo_root, max_lines=settings.max_journal_lines),
            supervisor=AgentSupervisor(AgentRegistry(agents_dir(repo_root)), adapters),
            branch_prefix=settings.branch_prefix,
        )

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def adapter(self) -> PlatformAdapter:
        return self._adapter

    @property
    def worktrees(self) -> WorktreeManager | None:
        return self._worktrees

    @property
    def journal(self) -> JournalManager:
        return self._journal

    @property
    def supervisor(self) -> AgentSupervisor:
        return self._supervisor

    def _require_task(self, name: str) -> tuple[Task, Path]:
        found = self._store.find_task(name)
        if found is None:
            raise TaskNotFoundError(f"Task '{name}' not found")
        return found

    def _require_worktrees(self) -> WorktreeManager:
        if self._worktrees is None:
            raise OrchestratorError("Worktree manager unavailable; git was not found")
        return self._worktrees

    async def start_task(
        self,
        name: str,
        dev_type: DevType | None = None,
        *,
        isolate: bool = True,
        base_branch: str | None = None,
    ) -> StartedTask:
        """Make ``name`` the current task, write its manifests, and provision a worktree.

        A task that has not started yet is moved to its first phase.
        """

        task, task_dir = self._require_task(name)
        dev_type = dev_type or task.dev_type

        manifests = init_context(self._store, task_dir, dev_type, self._adapter)
        self._store.current_task.set(task_dir.name)

        updates: dict[str, Any] = {"status": "in_progress"}
        creation: WorktreeCreation | None = None
        if isolate:
            branch = task.branch or f"{self._branch_prefix}{task.name}"
            creation = await self._require_worktrees().create_worktree(branch, base_branch=base_branch)
            updates.update(
                {
                    "branch": branch,
                    "base_branch": base_branch or task.base_branch,
                    "worktree_path": str(creation.path),
                }
            )
            for outcome in creation.warnings:
                logger.warning(
                    "Worktree bootstrap step failed",
                    extra={"task": task_dir.name, "step": outcome.step, "target": outcome.target},
                )

        self._store.update_task(task_dir, updates)
        if task.current_phase == 0:
            self._store.advance_phase(task_dir)

        started = self._store.read_task(task_dir)
        logger.info(
            "Started task",
            extra={"task": task_dir.name, "dev_type": dev_type, "isolated": isolate},
        )
        return StartedTask(task=started or task, task_dir=task_dir, manifests=manifests, worktree=creation)

    def advance_phase(self, name: str) -> PhaseAction | None:
        """Move to the next phase and regenerate the manifests for it."""

        task, task_dir = self._require_task(name)
        step = self._store.advance_phase(task_dir)
        if step is None:
            logger.info("Task already at its last phase", extra={"task": task_dir.name})
            return None
        self._adapter.generate_context_files(task_dir, task.dev_type)
        return step

    async def dispatch_phase(
        self,
        name: str,
        *,
        background: bool = True,
        prompt: str | None = None,
    ) -> AgentRecord:
        """Launch the agent for the task's current phase in its worktree."""

        task, task_dir = self._require_task(name)
        step = task.phase_action()
        if step is None:
            raise OrchestratorError(f"Task '{task.name}' has no active phase; start it first")

        agent_type = manifest_for_phase(step.action)
        if agent_type is None:
            raise OrchestratorError(f"Phase '{step.action}' is not run by an agent")

        work_dir = Path(task.worktree_path) if task.worktree_path else self._store.repo_root
        request = LaunchRequest(
            platform=self._adapter.platform,
            agent_type=agent_type,
            task_dir=task_dir.resolve(),
            work_dir=work_dir,
            phase=step.phase,
            background=background,
            prompt=prompt,
        )
        record = await self._supervisor.launch(request)
        logger.info(
            "Dispatched phase",
            extra={"task": task_dir.name, "phase": step.phase, "agent_id": record.agent_id},
        )
        return record

    async def finish_task(self, name: str, *, force: bool = False) -> FinishedTask:
        """Archive the task, then tear down its worktree.

        The task is archived before any git call. Removal is skipped when git
        no longer lists the worktree.
        """

        task, task_dir = self._require_task(name)
        archive_path = self._store.archive_task(task_dir.name)
        if archive_path is None:
            raise TaskNotFoundError(f"Task '{name}' disappeared before it could be archived")

        removed = False
        worktrees = self._worktrees
        if task.worktree_path and worktrees is None:
            logger.warning("git unavailable; worktree left in place", extra={"path": task.worktree_path})
        elif task.worktree_path and worktrees is not None:
            if await worktrees.get_worktree_by_path(Path(task.worktree_path)) is not None:
                await worktrees.remove_worktree(Path(task.worktree_path), force=force)
                removed = True
            else:
                logger.info("Worktree already gone", extra={"path": task.worktree_path})
            await worktrees.prune_worktrees()

        logger.info("Finished task", extra={"task": task_dir.name, "archive": archive_path})
        return FinishedTask(archive_path=archive_path, worktree_removed=removed)

    def record_session(self, session: Session) -> int:
        number = self._journal.add_session(session)
        update_workspace_index(self._journal)
        return number

    def status(self) -> dict[str, Any]:
        listings = self._store.list_tasks()
        counts: dict[str, int] = {}
        for listing in listings:
            counts[listing.task.status] = counts.get(listing.task.status, 0) + 1

        agents = self._supervisor.registry.list()
        journal = self._journal.get_journal_status()
        return {
            "platform": self._adapter.platform,
            "current_task": self._store.current_task.get(),
            "tasks": {"count": len(listings), "status_counts": counts},
            "agents": [
                {"agent_id": record.agent_id, "status": record.status, "task_dir": record.task_dir}
                for record in agents[-5:]
            ],
            "journal": {
                "active_file": journal.active_file,
                "total_sessions": journal.total_sessions,
                "line_count": journal.line_count,
            },
            "worktrees_enabled": self._worktrees is not None,
        }


__all__ = ["FinishedTask", "OrchestratorError", "StartedTask", "TaskNotFoundError", "TaskOrchestrator"]
