from __future__ import annotations

import json
import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from trellis_mcp import server as server_module
from trellis_mcp.config import TrellisSettings
from trellis_mcp.orchestrator import TaskOrchestrator
from trellis_mcp.registry import AgentRecord

from conftest import FIXED_NOW


class StubFastMCP:
    def __init__(self, *args, **kwargs) -> None:
        self.kwargs = kwargs
        self.tools: list[str] = []
        self.resources: dict[str, object] = {}

    def resource(self, uri, **kwargs):
        def decorator(fn):
            self.resources[uri] = fn
            return fn

        return decorator

    def tool(self, *args, **kwargs):
        def decorator(fn):
            self.tools.append(kwargs["name"])
            return fn

        return decorator


@pytest.fixture(autouse=True)
def stub_fastmcp(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(server_module, "FastMCP", StubFastMCP)


def test_create_server_registers_tools_and_status(orchestrator: TaskOrchestrator, tmp_path: Path) -> None:
    settings = TrellisSettings(TRELLIS_REPO_ROOT=str(tmp_path))

    server = server_module.create_server(settings, orchestrator)

    assert server.kwargs["name"] == "Trellis MCP"
    assert "start_task" in server.tools
    assert server.orchestrator is orchestrator

    status = json.loads(server.resources["resource://trellis/status"](SimpleNamespace(request_id="req-1")))
    assert status["platform"] == "claude"
    assert status["request_id"] == "req-1"
    assert status["startup"] == {"recovered_archives": [], "reconciled_agents": []}


def test_startup_recovers_archives_and_reconciles_agents(orchestrator: TaskOrchestrator) -> None:
    store = orchestrator.store
    task_dir = store.repo_root / store.create_task("Half archived")
    store.update_task(task_dir, {"status": "completed", "completedAt": "2026-02-27"})
    orchestrator.supervisor.registry.register(
        AgentRecord(
            agent_id="claude-implement-old",
            pid=999999,
            platform="claude",
            agent_type="implement",
            log_file=str(store.repo_root / "missing.log"),
            task_dir=str(task_dir),
            work_dir=str(store.repo_root),
            launched_at=FIXED_NOW.isoformat(),
            updated_at=FIXED_NOW.isoformat(),
        )
    )

    server = server_module.create_server(TrellisSettings(), orchestrator)

    assert server.recovered_archives == [".trellis/tasks/archive/2026-02/03-14-half-archived"]
    assert [record.agent_id for record in server.reconciled_agents] == ["claude-implement-old"]
    assert orchestrator.supervisor.registry.get("claude-implement-old").status == "running"


def test_configure_logging_accepts_level(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict] = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    server_module.configure_logging("DEBUG")

    assert calls[0]["level"] == logging.DEBUG
    assert "%(name)s" in calls[0]["format"]
