"""File-backed registry of launched agents, one JSON document per agent."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterator

from pydantic import ValidationError

from .models import AgentRecord

logger = logging.getLogger(__name__)


class RegistryError(RuntimeError):
    """Base class for agent registry errors."""


class AgentNotFoundError(RegistryError):
    """Raised when an agent id has no registry record."""


class AgentRegistry:
    """Persist :class:`AgentRecord` documents under ``.trellis/.agents``.

    Each record lives in its own ``<agent_id>.json`` file and is replaced
    atomically, so a crash mid-write leaves the previous version intact and
    records written before an orchestrator restart are visible afterwards.
    """

    def __init__(self, registry_dir: Path) -> None:
        self._directory = Path(registry_dir)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, agent_id: str) -> Path:
        return self._directory / f"{agent_id}.json"

    def _write(self, record: AgentRecord) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(record.agent_id)
        temp = path.with_suffix(".json.tmp")
        temp.write_text(record.model_dump_json(indent=2) + "\n", encoding="utf-8")
        os.replace(temp, path)

    def _load(self, path: Path) -> AgentRecord | None:
        try:
            return AgentRecord.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Skipping unreadable agent record", extra={"path": str(path), "error": str(exc)})
            return None

    def _iter_records(self) -> Iterator[AgentRecord]:
        if not self._directory.is_dir():
            return
        for path in sorted(self._directory.glob("*.json")):
            record = self._load(path)
            if record is not None:
                yield record

    def register(self, record: AgentRecord) -> AgentRecord:
        if self._path(record.agent_id).exists():
            raise RegistryError(f"Agent '{record.agent_id}' is already registered")
        self._write(record)
        logger.info(
            "Registered agent",
            extra={"agent_id": record.agent_id, "pid": record.pid, "platform": record.platform},
        )
        return record

    def get(self, agent_id: str) -> AgentRecord | None:
        path = self._path(agent_id)
        if not path.exists():
            return None
        return self._load(path)

    def require(self, agent_id: str) -> AgentRecord:
        record = self.get(agent_id)
        if record is None:
            raise AgentNotFoundError(f"Agent '{agent_id}' not found")
        return record

    def list(self, task_dir: str | None = None) -> list[AgentRecord]:
        records = list(self._iter_records())
        if task_dir is not None:
            name = Path(task_dir).name
            records = [record for record in records if Path(record.task_dir).name == name]
        return sorted(records, key=lambda record: record.launched_at)

    def update(self, agent_id: str, **changes: Any) -> AgentRecord:
        record = self.require(agent_id)
        updated = AgentRecord.model_validate({**record.model_dump(), **changes})
        self._write(updated)
        return updated

    def remove(self, agent_id: str) -> bool:
        path = self._path(agent_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Removed agent record", extra={"agent_id": agent_id})
        return True


__all__ = ["AgentNotFoundError", "AgentRegistry", "RegistryError"]
