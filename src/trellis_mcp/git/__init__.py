"""Git integration: async runner, worktree config, and worktree management."""

from .config import WorktreeConfig, load_worktree_config, save_worktree_config, worktree_config_exists
from .runner import FakeGitRunner, GitNotFoundError, GitRunner, GitRunnerError
from .worktree import (
    StepOutcome,
    Worktree,
    WorktreeCreation,
    WorktreeError,
    WorktreeManager,
    parse_worktree_output,
)

__all__ = [
    "FakeGitRunner",
    "GitNotFoundError",
    "GitRunner",
    "GitRunnerError",
    "StepOutcome",
    "Worktree",
    "WorktreeConfig",
    "WorktreeCreation",
    "WorktreeError",
    "WorktreeManager",
    "load_worktree_config",
    "parse_worktree_output",
    "save_worktree_config",
    "worktree_config_exists",
]
