from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from trellis_mcp.developer import init_developer
from trellis_mcp.git import FakeGitRunner, WorktreeConfig, WorktreeManager
from trellis_mcp.journal import JournalManager
from trellis_mcp.orchestrator import TaskOrchestrator
from trellis_mcp.paths import agents_dir
from trellis_mcp.platforms import AgentProcess, ClaudeAdapter, LaunchAgentOptions
from trellis_mcp.process import ExecutionResult, ProcessState
from trellis_mcp.registry import AgentRegistry, AgentSupervisor
from trellis_mcp.tasks import TaskStore

FIXED_NOW = datetime(2026, 3, 14, 10, 30, tzinfo=timezone.utc)


class StubClaudeAdapter(ClaudeAdapter):
    """Claude adapter whose launches are recorded instead of executed."""

    def __init__(self, returncode: int | None = None) -> None:
        super().__init__(clock=lambda: FIXED_NOW)
        self.returncode = returncode
        self.launches: list[LaunchAgentOptions] = []

    async def launch_agent(self, options: LaunchAgentOptions) -> AgentProcess:
        self.launches.append(options)
        return AgentProcess(
            pid=40000 + len(self.launches),
            log_file=options.resolved_log_file(),
            command=("claude", *self.build_command(options)),
            returncode=self.returncode,
        )


class FakeWorktreeGit:
    """Answers ``git worktree`` subcommands from an in-memory list."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root
        self.worktrees: list[tuple[str, str]] = []

    def porcelain(self) -> str:
        blocks = [f"worktree {self.repo_root.resolve()}\nHEAD aaaaaaa\nbranch refs/heads/main\n"]
        for path, branch in self.worktrees:
            blocks.append(f"worktree {path}\nHEAD bbbbbbb\nbranch refs/heads/{branch}\n")
        return "\n".join(blocks)

    def __call__(self, args: tuple[str, ...]) -> ExecutionResult | None:
        ok = lambda stdout="": ExecutionResult(args=("git", *args), returncode=0, stdout=stdout, stderr="")
        if args[:2] == ("worktree", "list"):
            return ok(self.porcelain())
        if args[:2] == ("worktree", "add"):
            branch, path = args[3], args[4]
            Path(path).mkdir(parents=True, exist_ok=True)
            self.worktrees.append((path, branch))
            return ok()
        if args[:2] == ("worktree", "remove"):
            target = args[-1]
            self.worktrees = [item for item in self.worktrees if item[0] != target]
            return ok()
        return None


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / ".trellis").mkdir(parents=True)
    init_developer("alice", root)
    return root


@pytest.fixture
def store(repo: Path) -> TaskStore:
    return TaskStore(repo, clock=lambda: FIXED_NOW)


@pytest.fixture
def fake_git(repo: Path) -> FakeWorktreeGit:
    return FakeWorktreeGit(repo)


@pytest.fixture
def orchestrator(repo: Path, store: TaskStore, fake_git: FakeWorktreeGit) -> TaskOrchestrator:
    adapter = StubClaudeAdapter()
    runner = FakeGitRunner(repo, handler=fake_git)
    worktrees = WorktreeManager(
        repo,
        config=WorktreeConfig(base_dir="../worktrees", copy_files=[], post_create=[]),
        runner=runner,
    )
    supervisor = AgentSupervisor(
        AgentRegistry(agents_dir(repo)),
        {"claude": adapter},
        clock=lambda: FIXED_NOW,
        probe=lambda pid: ProcessState(alive=True),
    )
    return TaskOrchestrator(
        store,
        adapter,
        worktrees=worktrees,
        journal=JournalManager(repo, clock=lambda: FIXED_NOW),
        supervisor=supervisor,
    )
