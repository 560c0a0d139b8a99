"""Async runner for the git CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

from ..process import ExecutableNotFoundError, ExecutionResult, resolve_executable, run_exec, run_shell


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitRunner:
    """Execute git commands asynchronously against one repository."""

    def __init__(self, repo_root: Path, executable: Path | None = None) -> None:
        self._repo_root = Path(repo_root)
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        try:
            return resolve_executable("git", explicit)
        except ExecutableNotFoundError as exc:
            raise GitNotFoundError(str(exc)) from exc

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    async def run(self, *args: str, cwd: Path | None = None) -> ExecutionResult:
        return await run_exec(str(self._executable_path), *args, cwd=cwd or self._repo_root)

    async def run_shell(self, command: str, *, cwd: Path) -> ExecutionResult:
        return await run_shell(command, cwd=cwd)

    async def current_branch(self, cwd: Path | None = None) -> str | None:
        result = await self.run("branch", "--show-current", cwd=cwd)
        branch = result.stdout.strip()
        return branch if result.ok and branch else None


class FakeGitRunner(GitRunner):
    """Test double that records git invocations instead of running them."""

    def __init__(  # type: ignore[override]
        self,
        repo_root: Path,
        responses: Iterable[ExecutionResult] | None = None,
        *,
        handler: Callable[[tuple[str, ...]], ExecutionResult | None] | None = None,
    ) -> None:
        self._repo_root = Path(repo_root)
        self._executable_path = Path("/tmp/fake-git")
        self._responses = list(responses or [])
        self._handler = handler
        self._invocations: list[tuple[str, ...]] = []

    async def run(self, *args: str, cwd: Path | None = None) -> ExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._handler is not None:
            handled = self._handler(tuple(args))
            if handled is not None:
                return handled
        if self._responses:
            return self._responses.pop(0)
        return ExecutionResult(args=("git", *args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = ["FakeGitRunner", "GitNotFoundError", "GitRunner", "GitRunnerError"]
