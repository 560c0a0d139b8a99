from __future__ import annotations

from datetime import date
from pathlib import Path

from trellis_mcp.paths import CurrentTaskPointer, find_repo_root, slugify, task_date_prefix


def test_slugify_collapses_punctuation_and_case() -> None:
    assert slugify("Fix login bug") == "fix-login-bug"
    assert slugify("  Add OAuth2 / SSO support!! ") == "add-oauth2-sso-support"
    assert slugify("!!!") == ""


def test_task_date_prefix_is_zero_padded() -> None:
    assert task_date_prefix(date(2026, 3, 4)) == "03-04"
    assert task_date_prefix(date(2026, 11, 25)) == "11-25"


def test_find_repo_root_prefers_workflow_dir(tmp_path: Path) -> None:
    (tmp_path / ".trellis").mkdir()
    nested = tmp_path / "src" / "pkg"
    nested.mkdir(parents=True)

    assert find_repo_root(nested) == tmp_path.resolve()


def test_find_repo_root_falls_back_to_start(tmp_path: Path) -> None:
    nested = tmp_path / "plain"
    nested.mkdir()

    assert find_repo_root(nested) == nested.resolve()


def test_current_task_pointer_roundtrip(tmp_path: Path) -> None:
    pointer = CurrentTaskPointer(tmp_path)
    assert pointer.get() is None

    relative = pointer.set("03-14-fix-login-bug")

    assert relative == ".trellis/tasks/03-14-fix-login-bug"
    assert pointer.path.read_text(encoding="utf-8") == ".trellis/tasks/03-14-fix-login-bug\n"
    assert pointer.points_to("03-14-fix-login-bug")
    assert not pointer.points_to("03-14-other")

    pointer.clear()
    assert pointer.get() is None
    pointer.clear()
