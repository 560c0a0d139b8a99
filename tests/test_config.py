from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from trellis_mcp.config import TrellisSettings, get_settings


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for name in (
        "TRELLIS_REPO_ROOT",
        "TRELLIS_PLATFORM",
        "TRELLIS_LOG_LEVEL",
        "TRELLIS_MAX_JOURNAL_LINES",
        "TRELLIS_BRANCH_PREFIX",
        "CLAUDE_PATH",
        "CODEX_PATH",
        "OPENCODE_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = TrellisSettings()

    assert settings.log_level == "INFO"
    assert settings.platform is None
    assert settings.max_journal_lines == 2000
    assert settings.branch_prefix == "feature/"
    assert settings.executable_overrides() == {}


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TRELLIS_LOG_LEVEL", "debug")
    monkeypatch.setenv("TRELLIS_PLATFORM", " Codex ")
    monkeypatch.setenv("TRELLIS_MAX_JOURNAL_LINES", "50")
    monkeypatch.setenv("CODEX_PATH", "/opt/bin/codex")
    monkeypatch.setenv("TRELLIS_REPO_ROOT", str(tmp_path))

    settings = TrellisSettings()

    assert settings.log_level == "DEBUG"
    assert settings.platform == "codex"
    assert settings.max_journal_lines == 50
    assert settings.executable_overrides() == {"codex": Path("/opt/bin/codex")}
    assert settings.resolved_repo_root() == tmp_path.resolve()


def test_invalid_values_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRELLIS_LOG_LEVEL", "chatty")
    with pytest.raises(ValidationError):
        TrellisSettings()

    monkeypatch.setenv("TRELLIS_LOG_LEVEL", "INFO")
    monkeypatch.setenv("TRELLIS_MAX_JOURNAL_LINES", "0")
    with pytest.raises(ValidationError):
        TrellisSettings()


def test_get_settings_discovers_repo_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / ".trellis").mkdir()
    nested = tmp_path / "src"
    nested.mkdir()
    monkeypatch.chdir(nested)

    settings = get_settings()

    assert settings.repo_root == tmp_path.resolve()
    assert get_settings() is settings
