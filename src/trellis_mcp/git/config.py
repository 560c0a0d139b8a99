"""Worktree configuration loaded from ``.trellis/worktree.yaml``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..paths import worktree_config_file

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = "../.worktrees"
DEFAULT_COPY_FILES = (".env", ".env.local")

_HEADER = """\
# Worktree configuration for the multi-agent pipeline
#
# base_dir: Directory where worktrees are created (relative to repo root)
# copy_files: Files to copy from the main repo into new worktrees
# post_create: Commands to run inside a worktree after it is created

"""


class WorktreeConfig(BaseModel):
    """How worktrees are laid out and bootstrapped."""

    base_dir: str = Field(default=DEFAULT_BASE_DIR, description="Worktree parent, relative to the repo root.")
    copy_files: list[str] = Field(
        default_factory=lambda: list(DEFAULT_COPY_FILES),
        description="Repo-relative files copied into each new worktree.",
    )
    post_create: list[str] = Field(
        default_factory=list,
        description="Shell commands run in each new worktree.",
    )

    @field_validator("base_dir", mode="before")
    @classmethod
    def _default_base_dir(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_BASE_DIR
        return value

    @field_validator("copy_files", mode="before")
    @classmethod
    def _default_copy_files(cls, value: Any) -> Any:
        if value is None:
            return list(DEFAULT_COPY_FILES)
        return value

    @field_validator("post_create", mode="before")
    @classmethod
    def _default_post_create(cls, value: Any) -> Any:
        if value is None:
            return []
        return value


def load_worktree_config(repo_root: Path) -> WorktreeConfig:
    """Load ``worktree.yaml``; missing or invalid files yield the defaults."""

    path = worktree_config_file(repo_root)
    if not path.exists():
        return WorktreeConfig()

    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse worktree.yaml, using defaults", extra={"error": str(exc)})
        return WorktreeConfig()

    if document is None:
        return WorktreeConfig()

    try:
        return WorktreeConfig.model_validate(document)
    except ValidationError as exc:
        logger.warning("Invalid worktree.yaml format, using defaults", extra={"error": str(exc)})
        return WorktreeConfig()


def save_worktree_config(config: WorktreeConfig, repo_root: Path) -> Path:
    path = worktree_config_file(repo_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    body = yaml.safe_dump(config.model_dump(), sort_keys=False, default_flow_style=False)
    path.write_text(_HEADER + body, encoding="utf-8")
    return path


def worktree_config_exists(repo_root: Path) -> bool:
    return worktree_config_file(repo_root).exists()


__all__ = [
    "WorktreeConfig",
    "load_worktree_config",
    "save_worktree_config",
    "worktree_config_exists",
]
