"""Context manifests (``implement.jsonl``, ``check.jsonl``, ``debug.jsonl``) for tasks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from pydantic import ValidationError

from .models import DEV_TYPES, ContextEntry, DevType
from .store import TaskValidationError

if TYPE_CHECKING:
    from ..platforms.base import PlatformAdapter
    from .store import TaskStore

logger = logging.getLogger(__name__)

MANIFESTS: tuple[str, ...] = ("implement", "check", "debug")

# Phase actions that hand an agent a manifest; everything else runs without one.
PHASE_MANIFESTS: dict[str, str] = {
    "implement": "implement",
    "check": "check",
    "finish": "check",
    "debug": "debug",
}


@dataclass(slots=True)
class ManifestReport:
    file: str
    entry_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def manifest_path(task_dir: Path, name: str) -> Path:
    filename = name if name.endswith(".jsonl") else f"{name}.jsonl"
    return Path(task_dir) / filename


def manifest_for_phase(action: str) -> str | None:
    return PHASE_MANIFESTS.get(action)


def read_jsonl(path: Path) -> list[ContextEntry]:
    path = Path(path)
    if not path.exists():
        return []

    entries: list[ContextEntry] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entries.append(ContextEntry.model_validate_json(line))
        except ValidationError:
            logger.debug("Skipping malformed manifest line", extra={"manifest": str(path)})
    return entries


def write_jsonl(path: Path, entries: Iterable[ContextEntry]) -> Path:
    """Overwrite ``path`` with one compact JSON object per entry."""

    path = Path(path)
    content = "\n".join(entry.to_jsonl() for entry in entries) + "\n"
    path.write_text(content, encoding="utf-8")
    return path


def init_context(
    store: TaskStore,
    task_dir: Path,
    dev_type: DevType | None,
    adapter: PlatformAdapter,
) -> list[Path]:
    """Record ``dev_type`` on the task and regenerate all three manifests."""

    if dev_type is not None and dev_type not in DEV_TYPES:
        raise TaskValidationError(f"Unknown dev type {dev_type!r}; expected one of {list(DEV_TYPES)}")
    if store.read_task(task_dir) is not None:
        store.update_task(task_dir, {"dev_type": dev_type})
    return adapter.generate_context_files(task_dir, dev_type)


def add_context(
    task_dir: Path,
    manifest: str,
    file_path: str,
    reason: str,
    *,
    repo_root: Path,
) -> ContextEntry | None:
    """Append an entry to a manifest.

    ``manifest`` must be one of implement, check, or debug and ``file_path``
    must stay inside the repo; otherwise ``ValueError`` is raised. Raises
    ``FileNotFoundError`` when the path does not exist in the repo. Returns
    ``None`` when the path is already listed.
    """

    name = manifest[: -len(".jsonl")] if manifest.endswith(".jsonl") else manifest
    if name not in MANIFESTS:
        raise ValueError(f"Unknown manifest {manifest!r}; expected one of {list(MANIFESTS)}")

    root = Path(repo_root).resolve()
    target = (root / file_path).resolve()
    if Path(file_path).is_absolute() or not target.is_relative_to(root):
        raise ValueError(f"Path escapes the repository: {file_path}")
    if not target.exists():
        raise FileNotFoundError(f"Path not found: {file_path}")

    if target.is_dir():
        if not file_path.endswith("/"):
            file_path += "/"
        entry = ContextEntry(file=file_path, type="directory", reason=reason)
    else:
        entry = ContextEntry(file=file_path, reason=reason)

    path = manifest_path(task_dir, name)
    if any(existing.file == entry.file for existing in read_jsonl(path)):
        logger.warning("Context entry already present", extra={"manifest": path.name, "file": entry.file})
        return None

    with path.open("a", encoding="utf-8") as handle:
        handle.write(entry.to_jsonl() + "\n")
    return entry


def validate_context(task_dir: Path, *, repo_root: Path) -> list[ManifestReport]:
    reports: list[ManifestReport] = []

    for name in MANIFESTS:
        path = manifest_path(task_dir, name)
        report = ManifestReport(file=path.name)
        reports.append(report)

        if not path.exists():
            report.errors.append("File not found")
            continue

        lines = [line for line in path.read_text(encoding="utf-8").split("\n") if line]
        for number, line in enumerate(lines, start=1):
            try:
                entry = ContextEntry.model_validate(json.loads(line))
            except json.JSONDecodeError:
                report.errors.append(f"Line {number}: Invalid JSON")
                continue
            except ValidationError as exc:
                report.errors.append(f"Line {number}: Invalid format - {exc.errors()[0]['msg']}")
                continue

            target = Path(repo_root) / entry.file
            if entry.is_directory:
                if not target.is_dir():
                    report.errors.append(f"Line {number}: Directory not found: {entry.file}")
            elif not target.exists():
                report.errors.append(f"Line {number}: File not found: {entry.file}")
            report.entry_count += 1

    return reports


def list_context(task_dir: Path) -> dict[str, list[ContextEntry]]:
    listing: dict[str, list[ContextEntry]] = {}
    for name in MANIFESTS:
        entries = read_jsonl(manifest_path(task_dir, name))
        if entries:
            listing[f"{name}.jsonl"] = entries
    return listing


__all__ = [
    "MANIFESTS",
    "ManifestReport",
    "add_context",
    "init_context",
    "list_context",
    "manifest_for_phase",
    "manifest_path",
    "read_jsonl",
    "validate_context",
    "write_jsonl",
]
