"""Configuration management for Trellis MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .paths import find_repo_root


class TrellisSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    repo_root: Path | None = Field(default=None, validation_alias="TRELLIS_REPO_ROOT")
    platform: str | None = Field(default=None, validation_alias="TRELLIS_PLATFORM")
    log_level: str = Field(default="INFO", validation_alias="TRELLIS_LOG_LEVEL")
    max_journal_lines: int = Field(default=2000, validation_alias="TRELLIS_MAX_JOURNAL_LINES")
    branch_prefix: str = Field(default="feature/", validation_alias="TRELLIS_BRANCH_PREFIX")
    claude_path: str | None = Field(default=None, validation_alias="CLAUDE_PATH")
    codex_path: str | None = Field(default=None, validation_alias="CODEX_PATH")
    opencode_path: str | None = Field(default=None, validation_alias="OPENCODE_PATH")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TRELLIS_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("platform", mode="before")
    @classmethod
    def _normalize_platform(cls, value):
        if value is None:
            return None
        normalized = str(value).strip().lower()
        return normalized or None

    @field_validator("max_journal_lines")
    @classmethod
    def _validate_max_journal_lines(cls, value: int) -> int:
        if value < 1:
            raise ValueError("TRELLIS_MAX_JOURNAL_LINES must be >= 1")
        return value

    def executable_overrides(self) -> dict[str, Path]:
        """Return explicit agent executables keyed by platform id."""

        candidates = {
            "claude": self.claude_path,
            "codex": self.codex_path,
            "opencode": self.opencode_path,
        }
        return {name: Path(value) for name, value in candidates.items() if value}

    def resolved_repo_root(self) -> Path:
        if self.repo_root is not None:
            return Path(self.repo_root).expanduser().resolve()
        return find_repo_root(Path.cwd())


@lru_cache(maxsize=1)
def get_settings() -> TrellisSettings:
    """Return cached settings instance."""

    settings = TrellisSettings()
    settings.repo_root = settings.resolved_repo_root()
    return settings


__all__ = ["TrellisSettings", "get_settings"]
