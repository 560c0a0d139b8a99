"""Git worktree provisioning for agent isolation."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .config import WorktreeConfig, load_worktree_config
from .runner import GitRunner

logger = logging.getLogger(__name__)

Severity = Literal["ok", "warning", "fatal"]


class WorktreeError(RuntimeError):
    """Raised when an essential git worktree operation fails."""

    def __init__(self, message: str, *, outcome: "StepOutcome | None" = None) -> None:
        super().__init__(message)
        self.outcome = outcome


@dataclass(slots=True)
class Worktree:
    path: str
    head: str
    branch: str | None
    is_main: bool = False
    is_bare: bool = False


@dataclass(slots=True)
class StepOutcome:
    step: Literal["add", "copy", "hook"]
    target: str
    severity: Severity
    message: str = ""


@dataclass(slots=True)
class WorktreeCreation:
    path: Path
    branch: str
    created: bool
    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> list[StepOutcome]:
        return [outcome for outcome in self.outcomes if outcome.severity == "warning"]


def parse_worktree_output(output: str) -> list[Worktree]:
    """Parse ``git worktree list --porcelain`` output.

    Bare entries are dropped. The first remaining entry is the main worktree;
    git always lists it first and the porcelain format has no flag for it.
    """

    worktrees: list[Worktree] = []

    for block in output.split("\n\n"):
        path: str | None = None
        head = ""
        branch: str | None = None
        is_bare = False

        for line in block.splitlines():
            if line.startswith("worktree "):
                path = line[len("worktree "):]
            elif line.startswith("HEAD "):
                head = line[len("HEAD "):]
            elif line.startswith("branch "):
                branch = line[len("branch "):].removeprefix("refs/heads/")
            elif line == "bare":
                is_bare = True
            elif line == "detached":
                branch = None

        if path and not is_bare:
            worktrees.append(Worktree(path=path, head=head, branch=branch))

    if worktrees:
        worktrees[0].is_main = True
    return worktrees


class WorktreeManager:
    """Create, list, and remove worktrees for one repository."""

    def __init__(
        self,
        repo_root: Path,
        *,
        config: WorktreeConfig | None = None,
        runner: GitRunner | None = None,
    ) -> None:
        self._repo_root = Path(repo_root)
        self._config = config
        self._runner = runner or GitRunner(self._repo_root)

    @property
    def config(self) -> WorktreeConfig:
        if self._config is None:
            self._config = load_worktree_config(self._repo_root)
        return self._config

    @property
    def runner(self) -> GitRunner:
        return self._runner

    @property
    def base_dir(self) -> Path:
        return (self._repo_root / self.config.base_dir).resolve()

    def resolve_path(self, branch: str, path: Path | None = None) -> Path:
        if path is not None:
            return Path(path).resolve()
        return self.base_dir / branch

    async def create_worktree(
        self,
        branch: str,
        path: Path | None = None,
        base_branch: str | None = None,
    ) -> WorktreeCreation:
        """Add a worktree on a new branch, then copy bootstrap files and run hooks.

        If ``branch`` is already checked out at the target path the add step
        is skipped. Copy and hook failures are reported as warnings and leave
        the worktree in place; a failed ``git worktree add`` raises.
        """

        target = self.resolve_path(branch, path)
        creation = WorktreeCreation(path=target, branch=branch, created=False)

        existing = await self.get_worktree_by_path(target)
        if existing is not None:
            if existing.branch != branch:
                raise WorktreeError(
                    f"{target} is already a worktree for branch {existing.branch!r}, not {branch!r}"
                )
            creation.outcomes.append(
                StepOutcome(step="add", target=str(target), severity="ok", message="already present")
            )
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            args = ["worktree", "add", "-b", branch, str(target)]
            if base_branch:
                args.append(base_branch)
            result = await self._runner.run(*args)
            if not result.ok:
                raise WorktreeError(
                    f"git worktree add failed: {result.describe()}",
                    outcome=StepOutcome(
                        step="add", target=str(target), severity="fatal", message=result.describe()
                    ),
                )
            creation.created = True
            creation.outcomes.append(StepOutcome(step="add", target=str(target), severity="ok"))
            logger.info("Created worktree", extra={"path": str(target), "branch": branch})

        creation.outcomes.extend(self._copy_files(target))
        creation.outcomes.extend(await self._run_hooks(target))
        return creation

    def _copy_files(self, target: Path) -> list[StepOutcome]:
        outcomes: list[StepOutcome] = []
        for relative in self.config.copy_files:
            source = self._repo_root / relative
            if not source.is_file():
                continue
            destination = target / relative
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, destination)
            except OSError as exc:
                logger.warning("Failed to copy file into worktree", extra={"file": relative, "error": str(exc)})
                outcomes.append(StepOutcome(step="copy", target=relative, severity="warning", message=str(exc)))
                continue
            outcomes.append(StepOutcome(step="copy", target=relative, severity="ok"))
        return outcomes

    async def _run_hooks(self, target: Path) -> list[StepOutcome]:
        outcomes: list[StepOutcome] = []
        for command in self.config.post_create:
            try:
                result = await self._runner.run_shell(command, cwd=target)
            except OSError as exc:
                logger.warning("Post-create hook could not start", extra={"command": command, "error": str(exc)})
                outcomes.append(StepOutcome(step="hook", target=command, severity="warning", message=str(exc)))
                continue
            if not result.ok:
                logger.warning(
                    "Post-create hook failed",
                    extra={"command": command, "returncode": result.returncode},
                )
                outcomes.append(
                    StepOutcome(step="hook", target=command, severity="warning", message=result.describe())
                )
                continue
            outcomes.append(StepOutcome(step="hook", target=command, severity="ok"))
        return outcomes

    async def remove_worktree(self, path: Path, force: bool = False) -> None:
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))
        result = await self._runner.run(*args)
        if not result.ok:
            raise WorktreeError(f"git worktree remove failed: {result.describe()}")
        logger.info("Removed worktree", extra={"path": str(path), "force": force})

    async def prune_worktrees(self) -> None:
        result = await self._runner.run("worktree", "prune")
        if not result.ok:
            raise WorktreeError(f"git worktree prune failed: {result.describe()}")

    async def list_worktrees(self) -> list[Worktree]:
        result = await self._runner.run("worktree", "list", "--porcelain")
        if not result.ok:
            logger.warning("git worktree list failed", extra={"returncode": result.returncode})
            return []
        return parse_worktree_output(result.stdout)

    async def get_worktree_by_path(self, path: Path) -> Worktree | None:
        normalized = Path(path).resolve()
        for worktree in await self.list_worktrees():
            if Path(worktree.path).resolve() == normalized:
                return worktree
        return None

    async def get_worktree_by_branch(self, branch: str) -> Worktree | None:
        for worktree in await self.list_worktrees():
            if worktree.branch == branch:
                return worktree
        return None

    async def worktree_exists_for_branch(self, branch: str) -> bool:
        return await self.get_worktree_by_branch(branch) is not None


__all__ = [
    "StepOutcome",
    "Worktree",
    "WorktreeCreation",
    "WorktreeError",
    "WorktreeManager",
    "parse_worktree_output",
]
