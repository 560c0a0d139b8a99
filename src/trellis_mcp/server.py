"""FastMCP server bootstrap for Trellis."""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import TrellisSettings, get_settings
from .orchestrator import TaskOrchestrator
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Trellis server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[TrellisSettings] = None,
    orchestrator: TaskOrchestrator | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the task tools and a status resource."""

    settings = settings or get_settings()
    orchestrator = orchestrator or TaskOrchestrator.from_settings(settings)

    recovered = orchestrator.store.recover_interrupted_archives()
    reconciled = orchestrator.supervisor.reconcile()

    server = FastMCP(
        name="Trellis MCP",
        version=__version__,
        instructions=(
            "Trellis tracks multi-phase development tasks, generates the context manifests "
            "each phase's agent may read, isolates agents in git worktrees, and journals "
            "completed work sessions."
        ),
    )

    handles = register_tools(server, orchestrator=orchestrator)

    @server.resource(
        "resource://trellis/status",
        name="trellis_status",
        title="Trellis MCP Status",
        description="Current task, agent, and journal state for the Trellis MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "repo_root": str(orchestrator.store.repo_root),
            **orchestrator.status(),
            "startup": {
                "recovered_archives": recovered,
                "reconciled_agents": [record.agent_id for record in reconciled],
            },
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "orchestrator", orchestrator)
    setattr(server, "tool_handles", handles)
    setattr(server, "recovered_archives", recovered)
    setattr(server, "reconciled_agents", reconciled)
    return server


def main() -> None:
    """Entry point for running the Trellis MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    orchestrator: TaskOrchestrator = getattr(server, "orchestrator")
    logging.getLogger(__name__).info(
        "Launching Trellis MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "platform": orchestrator.adapter.platform,
            "repo_root": str(orchestrator.store.repo_root),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
