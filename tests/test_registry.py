from __future__ import annotations

import asyncio
import json
import logging
import os
import subprocess
import time
from pathlib import Path

import pytest

from trellis_mcp.platforms import ClaudeAdapter, UnknownPlatformError
from trellis_mcp.process import ProcessState
from trellis_mcp.registry import (
    AgentNotFoundError,
    AgentRecord,
    AgentRegistry,
    AgentSupervisor,
    LaunchRequest,
    RegistryError,
)

from conftest import FIXED_NOW, StubClaudeAdapter


class ProbeStub:
    def __init__(self, state: ProcessState) -> None:
        self.state = state
        self.calls: list[int] = []

    def __call__(self, pid: int) -> ProcessState:
        self.calls.append(pid)
        return self.state


def _record(agent_id: str = "claude-implement-1", **overrides) -> AgentRecord:
    payload = {
        "agent_id": agent_id,
        "pid": 123,
        "platform": "claude",
        "agent_type": "implement",
        "log_file": "/tmp/.agent-log",
        "task_dir": "/repo/.trellis/tasks/03-14-fix-login-bug",
        "work_dir": "/worktrees/fix-login-bug",
        "launched_at": FIXED_NOW.isoformat(),
        "updated_at": FIXED_NOW.isoformat(),
    }
    payload.update(overrides)
    return AgentRecord(**payload)


def _request(tmp_path: Path, *, background: bool = True) -> LaunchRequest:
    work_dir = tmp_path / "work"
    work_dir.mkdir(exist_ok=True)
    return LaunchRequest(
        platform="claude",
        agent_type="implement",
        task_dir=tmp_path / ".trellis" / "tasks" / "03-14-fix-login-bug",
        work_dir=work_dir,
        phase=1,
        background=background,
    )


def _supervisor(tmp_path: Path, adapter, probe) -> AgentSupervisor:
    return AgentSupervisor(AgentRegistry(tmp_path / "agents"), {"claude": adapter}, clock=lambda: FIXED_NOW, probe=probe)


def _append(path: Path, *payloads: dict, raw: str = "") -> None:
    with path.open("a", encoding="utf-8") as handle:
        for payload in payloads:
            handle.write(json.dumps(payload) + "\n")
        handle.write(raw)


def test_registry_crud_survives_restart(tmp_path: Path) -> None:
    registry = AgentRegistry(tmp_path / "agents")
    registry.register(_record("a-1"))
    registry.register(_record("b-2", task_dir="/repo/.trellis/tasks/03-15-other"))

    with pytest.raises(RegistryError):
        registry.register(_record("a-1"))

    reopened = AgentRegistry(tmp_path / "agents")
    assert [record.agent_id for record in reopened.list()] == ["a-1", "b-2"]
    assert [record.agent_id for record in reopened.list("03-15-other")] == ["b-2"]

    updated = reopened.update("a-1", status="running", log_offset=42)
    assert (updated.status, updated.log_offset) == ("running", 42)
    assert registry.get("a-1").status == "running"

    assert reopened.remove("a-1")
    assert not reopened.remove("a-1")
    assert reopened.get("a-1") is None
    with pytest.raises(AgentNotFoundError):
        reopened.update("a-1", status="failed")


def test_registry_skips_corrupt_records(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    registry = AgentRegistry(tmp_path / "agents")
    registry.register(_record("good"))
    (tmp_path / "agents" / "bad.json").write_text("{broken", encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        assert [record.agent_id for record in registry.list()] == ["good"]
    assert "Skipping unreadable agent record" in caplog.text


def test_agent_id_must_be_a_safe_file_name() -> None:
    with pytest.raises(ValueError):
        _record("../escape")


def test_poll_tails_log_and_tracks_status(tmp_path: Path) -> None:
    adapter = StubClaudeAdapter()
    probe = ProbeStub(ProcessState(alive=True))
    supervisor = _supervisor(tmp_path, adapter, probe)

    record = asyncio.run(supervisor.launch(_request(tmp_path)))
    assert record.status == "launched"
    assert record.phase == 1
    log_file = Path(record.log_file)

    _append(
        log_file,
        {"type": "system", "session_id": "sess-1"},
        {"type": "text", "text": "working"},
        raw='{"type": "text", "text": "partial',
    )
    running = supervisor.poll(record.agent_id)

    assert running.status == "running"
    assert running.session_id == "sess-1"
    assert running.last_event["type"] == "message"
    assert running.log_offset == len(log_file.read_bytes()) - len('{"type": "text", "text": "partial')

    _append(log_file, raw='"}\n')
    _append(log_file, {"type": "result", "result": "all done"})
    finished = supervisor.poll(record.agent_id)

    assert finished.status == "completed"
    assert finished.last_event["content"] == "all done"
    assert supervisor.poll(record.agent_id) == finished


def test_launch_starts_after_existing_log_output(tmp_path: Path) -> None:
    request = _request(tmp_path)
    old_log = Path(request.work_dir) / ".agent-log"
    _append(old_log, {"type": "result", "result": "previous run"})
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), ProbeStub(ProcessState(alive=True)))

    record = asyncio.run(supervisor.launch(request))

    assert record.log_offset == old_log.stat().st_size
    assert supervisor.poll(record.agent_id).status == "running"


def test_dead_process_without_terminal_event(tmp_path: Path) -> None:
    probe = ProbeStub(ProcessState(alive=False))
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), probe)
    record = asyncio.run(supervisor.launch(_request(tmp_path)))

    assert supervisor.poll(record.agent_id).status == "orphaned"


def test_dead_process_with_exit_code(tmp_path: Path) -> None:
    probe = ProbeStub(ProcessState(alive=False, exit_code=2))
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), probe)
    record = asyncio.run(supervisor.launch(_request(tmp_path)))

    polled = supervisor.poll(record.agent_id)

    assert (polled.status, polled.exit_code) == ("failed", 2)


def test_foreground_launch_records_terminal_state(tmp_path: Path) -> None:
    probe = ProbeStub(ProcessState(alive=True))
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(returncode=0), probe)

    record = asyncio.run(supervisor.launch(_request(tmp_path, background=False)))

    assert (record.status, record.exit_code) == ("completed", 0)
    assert probe.calls == []


def test_cancel_terminates_process_group(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    signals: list[tuple[int, int]] = []
    monkeypatch.setattr(os, "killpg", lambda pid, sig: signals.append((pid, sig)))
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), ProbeStub(ProcessState(alive=True)))
    record = asyncio.run(supervisor.launch(_request(tmp_path)))

    cancelled = supervisor.cancel(record.agent_id)

    assert cancelled.status == "orphaned"
    assert signals and signals[0][0] == record.pid
    assert supervisor.cancel(record.agent_id) == cancelled
    assert len(signals) == 1


def test_cancel_tolerates_vanished_process(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def gone(pid: int, sig: int) -> None:
        raise ProcessLookupError(pid)

    monkeypatch.setattr(os, "killpg", gone)
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), ProbeStub(ProcessState(alive=True)))
    record = asyncio.run(supervisor.launch(_request(tmp_path)))

    assert supervisor.cancel(record.agent_id).status == "orphaned"


def test_cleanup_only_removes_terminal_records(tmp_path: Path) -> None:
    probe = ProbeStub(ProcessState(alive=True))
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), probe)
    record = asyncio.run(supervisor.launch(_request(tmp_path)))

    with pytest.raises(RegistryError):
        supervisor.cleanup(record.agent_id)

    probe.state = ProcessState(alive=False, exit_code=0)
    supervisor.poll(record.agent_id)

    assert supervisor.cleanup(record.agent_id)
    assert not supervisor.cleanup(record.agent_id)


def test_reconcile_after_restart(tmp_path: Path) -> None:
    first = _supervisor(tmp_path, StubClaudeAdapter(), ProbeStub(ProcessState(alive=True)))
    record = asyncio.run(first.launch(_request(tmp_path)))

    restarted = _supervisor(tmp_path, StubClaudeAdapter(), ProbeStub(ProcessState(alive=False)))
    changed = restarted.reconcile()

    assert [item.agent_id for item in changed] == [record.agent_id]
    assert restarted.registry.get(record.agent_id).status == "orphaned"
    assert restarted.reconcile() == []


def test_unknown_platform(tmp_path: Path) -> None:
    supervisor = _supervisor(tmp_path, StubClaudeAdapter(), ProbeStub(ProcessState(alive=True)))
    request = _request(tmp_path)
    request.platform = "codex"

    with pytest.raises(UnknownPlatformError):
        asyncio.run(supervisor.launch(request))


def test_background_agent_end_to_end(tmp_path: Path) -> None:
    script = tmp_path / "claude"
    script.write_text(
        "#!/bin/sh\n"
        "echo '{\"type\":\"system\",\"session_id\":\"live-1\"}'\n"
        "echo '{\"type\":\"result\",\"result\":\"finished\"}'\n",
        encoding="utf-8",
    )
    script.chmod(0o755)
    supervisor = AgentSupervisor(AgentRegistry(tmp_path / "agents"), {"claude": ClaudeAdapter(script)})

    record = asyncio.run(supervisor.launch(_request(tmp_path)))
    deadline = time.monotonic() + 10
    while record.status in {"launched", "running"} and time.monotonic() < deadline:
        time.sleep(0.05)
        record = supervisor.poll(record.agent_id)

    assert record.status == "completed"
    assert record.session_id == "live-1"


def test_crashed_agent_fails_after_other_subprocesses(tmp_path: Path) -> None:
    script = tmp_path / "claude"
    script.write_text("#!/bin/sh\necho boom\nexit 3\n", encoding="utf-8")
    script.chmod(0o755)
    supervisor = AgentSupervisor(AgentRegistry(tmp_path / "agents"), {"claude": ClaudeAdapter(script)})

    record = asyncio.run(supervisor.launch(_request(tmp_path)))
    deadline = time.monotonic() + 10
    while record.status in {"launched", "running"} and time.monotonic() < deadline:
        time.sleep(0.05)
        subprocess.run(["true"], check=True)
        record = supervisor.poll(record.agent_id)

    assert (record.status, record.exit_code) == ("failed", 3)
