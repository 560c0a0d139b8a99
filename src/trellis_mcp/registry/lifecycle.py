"""Launch, observe, and cancel agent processes through the registry."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Mapping
from uuid import uuid4

from ..platforms.base import AgentLogEntry, LaunchAgentOptions, PlatformAdapter, UnknownPlatformError
from ..process import ProcessState, probe_process
from .models import AgentRecord, LaunchRequest
from .store import AgentRegistry, RegistryError

logger = logging.getLogger(__name__)


class AgentSupervisor:
    """Drive agents through ``launched -> running -> completed | failed | orphaned``.

    Log consumption is a single-threaded tail: each :meth:`poll` reads from the
    record's ``log_offset`` to the last complete line and persists the new
    offset. A process that disappears without a ``complete`` event and without
    an observable exit code is marked ``orphaned``. Agents launched by this
    supervisor keep their ``Popen`` handle, so their exit codes survive reaping
    by other subprocess calls. Nothing is retried.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        adapters: Mapping[str, PlatformAdapter],
        *,
        clock: Callable[[], datetime] | None = None,
        probe: Callable[[int], ProcessState] = probe_process,
    ) -> None:
        self._registry = registry
        self._adapters = dict(adapters)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._probe = probe
        self._handles: dict[str, subprocess.Popen] = {}

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    def _now(self) -> str:
        return self._clock().isoformat()

    def _adapter(self, platform: str) -> PlatformAdapter:
        try:
            return self._adapters[platform]
        except KeyError as exc:
            raise UnknownPlatformError(f"No adapter configured for platform '{platform}'") from exc

    def _new_agent_id(self, request: LaunchRequest) -> str:
        stamp = self._clock().strftime("%Y%m%d%H%M%S")
        return f"{request.platform}-{request.agent_type}-{stamp}-{uuid4().hex[:6]}"

    async def launch(self, request: LaunchRequest) -> AgentRecord:
        adapter = self._adapter(request.platform)
        options = LaunchAgentOptions(
            agent_type=request.agent_type,
            work_dir=Path(request.work_dir),
            task_dir=Path(request.task_dir),
            agent_file=request.agent_file,
            background=request.background,
            prompt=request.prompt,
            env=request.env,
        )
        log_file = options.resolved_log_file()
        offset = log_file.stat().st_size if log_file.exists() else 0

        process = await adapter.launch_agent(options)
        now = self._now()
        record = AgentRecord(
            agent_id=self._new_agent_id(request),
            pid=process.pid,
            platform=adapter.platform,
            agent_type=request.agent_type,
            log_file=str(process.log_file),
            task_dir=str(request.task_dir),
            phase=request.phase,
            work_dir=str(request.work_dir),
            launched_at=now,
            updated_at=now,
            exit_code=process.returncode,
            log_offset=offset,
        )
        self._registry.register(record)
        if process.handle is not None:
            self._handles[record.agent_id] = process.handle

        if process.returncode is not None:
            return self.poll(record.agent_id)
        return record

    def _process_state(self, agent_id: str, pid: int) -> ProcessState:
        """Ask our own child handle first; only untracked pids are probed."""

        handle = self._handles.get(agent_id)
        if handle is None:
            return self._probe(pid)
        returncode = handle.poll()
        if returncode is None:
            return ProcessState(alive=True)
        return ProcessState(alive=False, exit_code=returncode)

    def _read_new_lines(self, record: AgentRecord) -> tuple[list[str], int]:
        path = Path(record.log_file)
        if not path.exists():
            return [], record.log_offset

        with path.open("rb") as handle:
            handle.seek(record.log_offset)
            chunk = handle.read()

        end = chunk.rfind(b"\n")
        if end == -1:
            return [], record.log_offset
        complete = chunk[: end + 1]
        lines = complete.decode("utf-8", errors="replace").splitlines()
        return lines, record.log_offset + len(complete)

    def poll(self, agent_id: str) -> AgentRecord:
        """Consume new log output and advance the agent's status."""

        record = self._registry.require(agent_id)
        if record.is_terminal:
            return record

        adapter = self._adapter(record.platform)
        lines, offset = self._read_new_lines(record)

        session_id = record.session_id
        last_event: AgentLogEntry | None = None
        completed = False
        for line in lines:
            if session_id is None:
                session_id = adapter.session_id_from_log(line)
            entry = adapter.parse_agent_log(line)
            if entry is None:
                continue
            last_event = entry
            if entry.type == "complete":
                completed = True

        exit_code = record.exit_code
        if completed:
            status = "completed"
        else:
            if exit_code is None:
                state = self._process_state(agent_id, record.pid)
            else:
                state = ProcessState(alive=False, exit_code=exit_code)
            if state.alive:
                status = "running"
            elif state.exit_code is not None:
                exit_code = state.exit_code
                status = "completed" if exit_code == 0 else "failed"
            else:
                status = "orphaned"

        changes: dict[str, object] = {
            "status": status,
            "log_offset": offset,
            "session_id": session_id,
            "exit_code": exit_code,
        }
        if last_event is not None:
            changes["last_event"] = asdict(last_event)
        if last_event is not None or any(changes[key] != getattr(record, key) for key in list(changes)):
            changes["updated_at"] = self._now()

        updated = self._registry.update(agent_id, **changes)
        if updated.is_terminal:
            self._handles.pop(agent_id, None)
        if updated.status != record.status:
            log = logger.warning if updated.status in {"failed", "orphaned"} else logger.info
            log(
                "Agent status changed",
                extra={
                    "agent_id": agent_id,
                    "from": record.status,
                    "to": updated.status,
                    "exit_code": updated.exit_code,
                },
            )
        return updated

    def cancel(self, agent_id: str) -> AgentRecord:
        """Send SIGTERM to the agent's process group and mark it ``orphaned``."""

        record = self._registry.require(agent_id)
        if record.is_terminal:
            return record

        try:
            os.killpg(record.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.info("Agent process already gone", extra={"agent_id": agent_id, "pid": record.pid})
        else:
            logger.warning("Sent SIGTERM to agent", extra={"agent_id": agent_id, "pid": record.pid})

        self._handles.pop(agent_id, None)
        return self._registry.update(agent_id, status="orphaned", updated_at=self._now())

    def cleanup(self, agent_id: str) -> bool:
        """Remove a terminal agent's registry record."""

        record = self._registry.get(agent_id)
        if record is None:
            return False
        if not record.is_terminal:
            raise RegistryError(f"Agent '{agent_id}' is still {record.status}; cancel it first")
        return self._registry.remove(agent_id)

    def reconcile(self) -> list[AgentRecord]:
        """Re-check every non-terminal agent, e.g. after an orchestrator restart."""

        changed: list[AgentRecord] = []
        for record in self._registry.list():
            if record.is_terminal:
                continue
            updated = self.poll(record.agent_id)
            if updated.status != record.status:
                changed.append(updated)
        return changed


__all__ = ["AgentSupervisor"]
