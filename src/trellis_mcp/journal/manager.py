"""Append-only session journals with size-based rotation."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from ..developer import JOURNAL_FILE, count_lines, ensure_developer, get_developer, journal_header
from ..paths import JOURNAL_PREFIX, workspace_dir
from .models import MAX_JOURNAL_LINES, JournalFile, JournalInfo, JournalStatus, Session, SessionRecord

logger = logging.getLogger(__name__)

_SESSION_HEADER = re.compile(r"^## Session \d+:", re.MULTILINE)
_SESSION_TITLE = re.compile(r"^## Session (\d+): (.+)$", re.MULTILINE)
_SESSION_DATE = re.compile(r"^\*\*Date\*\*: (\d{4}-\d{2}-\d{2})", re.MULTILINE)
_SESSION_COMMIT = re.compile(r"^\*\*Commit\*\*: `([^`]+)`", re.MULTILINE)


def _escape_headers(text: str) -> str:
    return _SESSION_HEADER.sub(lambda match: "\\" + match.group(0), text)


def render_session(number: int, session: Session, *, now: datetime | None = None) -> str:
    timestamp = session.timestamp or (now or datetime.now(timezone.utc)).isoformat()
    parts = [f"## Session {number}: {session.title}\n", "\n", f"**Date**: {timestamp.split('T')[0]}\n"]
    if session.commit:
        parts.append(f"**Commit**: `{session.commit}`\n")
    parts.append("\n")
    if session.summary:
        parts.append(f"### Summary\n\n{_escape_headers(session.summary)}\n\n")
    if session.content:
        parts.append(f"### Details\n\n{_escape_headers(session.content)}\n\n")
    parts.append("---\n\n")
    return "".join(parts)


def _count_sessions(path: Path) -> int:
    if not path.exists():
        return 0
    return len(_SESSION_HEADER.findall(path.read_text(encoding="utf-8")))


class JournalManager:
    """Numbered ``journal-<N>.md`` files for the current developer.

    Session numbers are global across all of a developer's journal files and
    are derived from the headers on disk, so there is no separate counter to
    drift. Files are only ever created or appended to.
    """

    def __init__(
        self,
        repo_root: Path,
        *,
        max_lines: int = MAX_JOURNAL_LINES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        self._repo_root = Path(repo_root)
        self._max_lines = max_lines
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    @property
    def max_lines(self) -> int:
        return self._max_lines

    def get_journal_files(self, developer: str) -> list[JournalFile]:
        directory = workspace_dir(developer, self._repo_root)
        if not directory.is_dir():
            return []

        journals: list[JournalFile] = []
        for item in directory.iterdir():
            match = JOURNAL_FILE.match(item.name)
            if match and item.is_file():
                journals.append(JournalFile(path=item, number=int(match.group(1))))
        return sorted(journals, key=lambda journal: journal.number)

    def total_sessions(self, developer: str) -> int:
        return sum(_count_sessions(journal.path) for journal in self.get_journal_files(developer))

    def get_active_journal(self, developer: str | None = None) -> JournalInfo | None:
        developer = developer or get_developer(self._repo_root)
        if developer is None:
            return None

        journals = self.get_journal_files(developer)
        if not journals:
            return None

        latest = journals[-1]
        return JournalInfo(
            file_path=latest.path,
            relative_path=latest.path.relative_to(self._repo_root).as_posix(),
            line_count=count_lines(latest.path),
            file_number=latest.number,
            session_count=self.total_sessions(developer),
        )

    def create_journal_file(self, developer: str, number: int) -> Path:
        directory = workspace_dir(developer, self._repo_root)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{JOURNAL_PREFIX}{number}.md"
        if path.exists():
            return path
        path.write_text(journal_header(developer, number, self._clock().date()), encoding="utf-8")
        logger.info("Created journal file", extra={"developer": developer, "file": path.name})
        return path

    def rotate_journal_if_needed(self) -> Path:
        """Return the journal to append to, starting a new file at the line threshold."""

        developer = ensure_developer(self._repo_root)
        active = self.get_active_journal(developer)
        if active is None:
            return self.create_journal_file(developer, 1)
        if active.line_count >= self._max_lines:
            logger.info(
                "Rotating journal",
                extra={"developer": developer, "line_count": active.line_count, "max_lines": self._max_lines},
            )
            return self.create_journal_file(developer, active.file_number + 1)
        return active.file_path

    def add_session(self, session: Session) -> int:
        """Append ``session`` and return its global session number."""

        developer = ensure_developer(self._repo_root)
        journal = self.rotate_journal_if_needed()
        number = self.total_sessions(developer) + 1

        with journal.open("a", encoding="utf-8") as handle:
            handle.write(render_session(number, session, now=self._clock()))

        logger.info(
            "Recorded session",
            extra={"developer": developer, "session": number, "journal": journal.name},
        )
        return number

    def get_journal_status(self) -> JournalStatus:
        active = self.get_active_journal()
        if active is None:
            return JournalStatus(
                active_file=None,
                line_count=0,
                max_lines=self._max_lines,
                total_sessions=0,
                file_number=0,
            )
        return JournalStatus(
            active_file=active.relative_path,
            line_count=active.line_count,
            max_lines=self._max_lines,
            total_sessions=active.session_count,
            file_number=active.file_number,
        )

    def list_sessions(self, developer: str | None = None) -> list[SessionRecord]:
        """Parse session headers back out of every journal, ordered by number."""

        developer = developer or get_developer(self._repo_root)
        if developer is None:
            return []

        sessions: list[SessionRecord] = []
        for journal in self.get_journal_files(developer):
            content = journal.path.read_text(encoding="utf-8")
            headers = list(_SESSION_TITLE.finditer(content))
            for index, match in enumerate(headers):
                end = headers[index + 1].start() if index + 1 < len(headers) else len(content)
                block = content[match.start():end]
                date_match = _SESSION_DATE.search(block)
                commit_match = _SESSION_COMMIT.search(block)
                sessions.append(
                    SessionRecord(
                        number=int(match.group(1)),
                        title=match.group(2).strip(),
                        date=date_match.group(1) if date_match else "unknown",
                        commit=commit_match.group(1) if commit_match else None,
                    )
                )
        return sorted(sessions, key=lambda record: record.number)


__all__ = ["JournalManager", "render_session"]
