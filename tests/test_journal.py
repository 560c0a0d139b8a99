from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from trellis_mcp.developer import DeveloperNotInitializedError
from trellis_mcp.journal import JournalManager, Session, update_workspace_index

from conftest import FIXED_NOW


def _manager(repo: Path, max_lines: int = 2000) -> JournalManager:
    return JournalManager(repo, max_lines=max_lines, clock=lambda: FIXED_NOW)


def test_add_session_appends_block(repo: Path) -> None:
    manager = _manager(repo)

    number = manager.add_session(
        Session(
            title="Wire up login",
            commit="abc1234",
            summary="Added the handler.",
            content="- routes\n- tests",
            timestamp="2026-03-13T18:00:00+00:00",
        )
    )

    assert number == 1
    journal = (repo / ".trellis" / "workspace" / "alice" / "journal-1.md").read_text(encoding="utf-8")
    assert journal.endswith(
        "## Session 1: Wire up login\n"
        "\n"
        "**Date**: 2026-03-13\n"
        "**Commit**: `abc1234`\n"
        "\n"
        "### Summary\n\nAdded the handler.\n\n"
        "### Details\n\n- routes\n- tests\n\n"
        "---\n\n"
    )


def test_session_date_defaults_to_clock(repo: Path) -> None:
    manager = _manager(repo)
    manager.add_session(Session(title="Quick fix"))

    assert [(record.number, record.date, record.commit) for record in manager.list_sessions()] == [
        (1, "2026-03-14", None)
    ]


def test_rotation_keeps_numbering_gap_free(repo: Path) -> None:
    manager = _manager(repo, max_lines=12)
    first = repo / ".trellis" / "workspace" / "alice" / "journal-1.md"

    numbers = [manager.add_session(Session(title="one"))]
    snapshot = first.read_text(encoding="utf-8")
    numbers += [manager.add_session(Session(title="two")), manager.add_session(Session(title="three"))]

    assert numbers == [1, 2, 3]
    assert first.read_text(encoding="utf-8") == snapshot
    assert [journal.number for journal in manager.get_journal_files("alice")] == [1, 2, 3]
    assert [record.title for record in manager.list_sessions()] == ["one", "two", "three"]

    status = manager.get_journal_status()
    assert status.active_file == ".trellis/workspace/alice/journal-3.md"
    assert status.total_sessions == 3
    assert status.file_number == 3
    assert status.max_lines == 12


def test_rotation_creates_first_journal_when_missing(repo: Path) -> None:
    (repo / ".trellis" / "workspace" / "alice" / "journal-1.md").unlink()
    manager = _manager(repo)

    path = manager.rotate_journal_if_needed()

    assert path.name == "journal-1.md"
    assert path.read_text(encoding="utf-8").startswith("# Journal - alice (Part 1)")


def test_without_developer(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    assert manager.get_active_journal() is None
    status = manager.get_journal_status()
    assert (status.active_file, status.total_sessions, status.file_number) == (None, 0, 0)
    assert manager.list_sessions() == []
    with pytest.raises(DeveloperNotInitializedError):
        manager.add_session(Session(title="x"))


def test_session_title_required() -> None:
    with pytest.raises(ValidationError):
        Session(title="   ")


def test_header_shaped_text_does_not_shift_numbering(repo: Path) -> None:
    manager = _manager(repo)

    first = manager.add_session(
        Session(title="one", summary="## Session 9: pasted", content="Notes\n## Session 1: quoted header")
    )
    second = manager.add_session(Session(title="two"))

    assert (first, second) == (1, 2)
    assert [record.title for record in manager.list_sessions()] == ["one", "two"]
    journal = (repo / ".trellis" / "workspace" / "alice" / "journal-1.md").read_text(encoding="utf-8")
    assert "\\## Session 1: quoted header" in journal


def test_session_title_must_be_single_line() -> None:
    with pytest.raises(ValidationError):
        Session(title="first\n## Session 5: second")


def test_rotation_at_default_threshold(repo: Path) -> None:
    manager = _manager(repo)
    first = repo / ".trellis" / "workspace" / "alice" / "journal-1.md"
    first.write_text("\n".join(f"line {index}" for index in range(2000)), encoding="utf-8")
    assert manager.get_journal_status().line_count == 2000

    assert manager.add_session(Session(title="after rotation")) == 1
    assert manager.get_journal_status().active_file == ".trellis/workspace/alice/journal-2.md"
    assert first.read_text(encoding="utf-8").count("\n") == 1999


def test_no_rotation_below_default_threshold(repo: Path) -> None:
    manager = _manager(repo)
    first = repo / ".trellis" / "workspace" / "alice" / "journal-1.md"
    first.write_text("\n".join(f"line {index}" for index in range(1999)), encoding="utf-8")

    assert manager.rotate_journal_if_needed() == first


def test_update_workspace_index(repo: Path) -> None:
    manager = _manager(repo)
    for index in range(1, 13):
        manager.add_session(Session(title=f"Session {index}", commit="c0ffee" if index == 12 else None))

    path = update_workspace_index(manager)

    content = path.read_text(encoding="utf-8")
    assert "- **Total Sessions**: 12" in content
    assert "- **Active File**: `journal-1.md`" in content
    assert "- **Last Active**: 2026-03-14" in content
    assert "| 12 | 2026-03-14 | Session 12 | `c0ffee` |" in content
    assert "| 3 | 2026-03-14 | Session 3 | - |" in content
    assert "| 2 | 2026-03-14 | Session 2 |" not in content
    assert content.index("| 12 |") < content.index("| 11 |")
    assert "| `journal-1.md` |" in content and "| Active |" in content
    assert content.count("<!-- @@@auto:session-history -->") == 1


def test_update_workspace_index_without_index(repo: Path, caplog: pytest.LogCaptureFixture) -> None:
    (repo / ".trellis" / "workspace" / "alice" / "index.md").unlink()

    with caplog.at_level(logging.WARNING):
        assert update_workspace_index(_manager(repo)) is None
    assert "Workspace index not found" in caplog.text
