"""Tool registration for Trellis MCP."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..journal import Session
from ..orchestrator import OrchestratorError, TaskOrchestrator
from ..tasks import CreateTaskOptions, Task, add_context as add_context_entry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    create_task: Any
    list_tasks: Any
    start_task: Any
    advance_phase: Any
    dispatch_phase: Any
    agent_status: Any
    cancel_agent: Any
    finish_task: Any
    add_context: Any
    add_session: Any
    journal_status: Any
    list_worktrees: Any


def _task_summary(task: Task, dir_name: str) -> dict[str, Any]:
    step = task.phase_action()
    return {
        "dir_name": dir_name,
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "dev_type": task.dev_type,
        "assignee": task.assignee,
        "current_phase": task.current_phase,
        "current_action": step.action if step else None,
        "branch": task.branch,
        "worktree_path": task.worktree_path,
    }


def register_tools(server: FastMCP, *, orchestrator: TaskOrchestrator) -> ToolHandles:
    """Register Trellis MCP tools on the server."""

    store = orchestrator.store

    def _task_by_name(name: str) -> dict[str, Any]:
        found = store.find_task(name)
        if found is None:
            raise ValueError(f"Task '{name}' not found")
        task, task_dir = found
        return _task_summary(task, task_dir.name)

    def _create_task(
        title: str,
        *,
        slug: str | None = None,
        assignee: str | None = None,
        description: str = "",
        priority: str = "P2",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Create a task directory in the planning state."""

        relative = store.create_task(
            title,
            CreateTaskOptions(assignee=assignee, slug=slug, description=description, priority=priority),
        )
        _emit_log(context, "info", "Created task", extra={"task": relative})
        return {"path": relative, "task": _task_by_name(relative.rsplit("/", 1)[-1])}

    def _list_tasks(
        *,
        mine: bool = False,
        status: str | None = None,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        """List active tasks sorted by directory name."""

        listings = store.list_tasks(mine=mine, status=status)
        _emit_log(context, "debug", "Listing tasks", extra={"count": len(listings)})
        return [
            {**_task_summary(listing.task, listing.dir_name), "is_current": listing.is_current}
            for listing in listings
        ]

    async def _start_task(
        name: str,
        *,
        dev_type: str | None = None,
        isolate: bool = True,
        base_branch: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Set the current task, write manifests, and provision a worktree."""

        started = await orchestrator.start_task(name, dev_type, isolate=isolate, base_branch=base_branch)
        warnings = [asdict(outcome) for outcome in started.worktree.warnings] if started.worktree else []
        _emit_log(
            context,
            "info",
            "Started task",
            extra={"task": started.task_dir.name, "warnings": len(warnings)},
        )
        return {
            "task": _task_summary(started.task, started.task_dir.name),
            "manifests": [path.name for path in started.manifests],
            "worktree": str(started.worktree.path) if started.worktree else None,
            "warnings": warnings,
        }

    def _advance_phase(name: str, context: Context | None = None) -> dict[str, Any]:
        """Move a task to its next phase and regenerate its manifests."""

        step = orchestrator.advance_phase(name)
        _emit_log(context, "info", "Advanced phase", extra={"task": name, "done": step is None})
        return {
            "advanced": step is not None,
            "phase": step.phase if step else None,
            "action": step.action if step else None,
            "task": _task_by_name(name),
        }

    async def _dispatch_phase(
        name: str,
        *,
        background: bool = True,
        prompt: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Launch the agent for the task's current phase."""

        try:
            record = await orchestrator.dispatch_phase(name, background=background, prompt=prompt)
        except OrchestratorError as exc:
            _emit_log(context, "warning", "Dispatch refused", extra={"task": name, "error": str(exc)})
            raise
        _emit_log(context, "info", "Dispatched agent", extra={"agent_id": record.agent_id})
        return record.model_dump()

    def _agent_status(
        agent_id: str | None = None,
        *,
        task: str | None = None,
        context: Context | None = None,
    ) -> list[dict[str, Any]]:
        """Poll one agent, or every agent (optionally for one task)."""

        supervisor = orchestrator.supervisor
        if agent_id:
            records = [supervisor.poll(agent_id)]
        else:
            task_dir = None
            if task:
                found = store.find_task(task)
                if found is None:
                    raise ValueError(f"Task '{task}' not found")
                task_dir = str(found[1])
            records = [
                record if record.is_terminal else supervisor.poll(record.agent_id)
                for record in supervisor.registry.list(task_dir)
            ]
        _emit_log(context, "debug", "Agent status", extra={"count": len(records)})
        return [record.model_dump() for record in records]

    def _cancel_agent(agent_id: str, context: Context | None = None) -> dict[str, Any]:
        """Terminate an agent's process group and mark it orphaned."""

        record = orchestrator.supervisor.cancel(agent_id)
        _emit_log(context, "warning", "Cancelled agent", extra={"agent_id": agent_id})
        return record.model_dump()

    async def _finish_task(
        name: str,
        *,
        force: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Archive a task and remove its worktree."""

        finished = await orchestrator.finish_task(name, force=force)
        _emit_log(context, "info", "Finished task", extra={"archive": finished.archive_path})
        return asdict(finished)

    def _add_context(
        name: str,
        manifest: str,
        path: str,
        reason: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Append a file or directory to one of the task's manifests."""

        found = store.find_task(name)
        if found is None:
            raise ValueError(f"Task '{name}' not found")
        _, task_dir = found
        entry = add_context_entry(task_dir, manifest, path, reason, repo_root=store.repo_root)
        _emit_log(context, "info", "Added context", extra={"manifest": manifest, "added": entry is not None})
        return {"added": entry is not None, "entry": entry.model_dump(exclude_none=True) if entry else None}

    def _add_session(
        title: str,
        *,
        commit: str | None = None,
        summary: str | None = None,
        content: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Append a session to the developer's journal."""

        number = orchestrator.record_session(
            Session(title=title, commit=commit, summary=summary, content=content)
        )
        _emit_log(context, "info", "Recorded session", extra={"session": number})
        return {"session": number, "journal": asdict(orchestrator.journal.get_journal_status())}

    def _journal_status(context: Context | None = None) -> dict[str, Any]:
        """Report the active journal file and session totals."""

        return asdict(orchestrator.journal.get_journal_status())

    async def _list_worktrees(context: Context | None = None) -> list[dict[str, Any]]:
        """List git worktrees of the repository."""

        if orchestrator.worktrees is None:
            _emit_log(context, "warning", "Worktree manager unavailable")
            return []
        return [asdict(worktree) for worktree in await orchestrator.worktrees.list_worktrees()]

    tool_create = server.tool(
        name="create_task",
        description="Create a task directory (.trellis/tasks/<MM-DD>-<slug>) in the planning state.",
    )(_create_task)
    tool_list = server.tool(
        name="list_tasks",
        description="List active tasks; filter to your own with mine=true or by status.",
    )(_list_tasks)
    tool_start = server.tool(
        name="start_task",
        description=(
            "Start a task: set it current, generate context manifests for its dev type, and "
            "provision an isolated git worktree. Bootstrap failures are returned as warnings."
        ),
    )(_start_task)
    tool_advance = server.tool(
        name="advance_phase",
        description="Advance a task to its next phase and regenerate its context manifests.",
    )(_advance_phase)
    tool_dispatch = server.tool(
        name="dispatch_phase",
        description="Launch the platform agent for the task's current phase inside its worktree.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Starts an autonomous agent process in the task worktree",
            }
        },
    )(_dispatch_phase)
    tool_agent_status = server.tool(
        name="agent_status",
        description="Poll registered agents, consuming new log output and updating their status.",
    )(_agent_status)
    tool_cancel = server.tool(
        name="cancel_agent",
        description="Send SIGTERM to an agent's process group and mark it orphaned.",
    )(_cancel_agent)
    tool_finish = server.tool(
        name="finish_task",
        description="Archive a task under archive/<YYYY-MM>/ and remove its worktree.",
    )(_finish_task)
    tool_add_context = server.tool(
        name="add_context",
        description="Add a repo path to a task manifest (implement, check, or debug).",
    )(_add_context)
    tool_add_session = server.tool(
        name="add_session",
        description="Record a work session in the developer journal and refresh the workspace index.",
    )(_add_session)
    tool_journal_status = server.tool(
        name="journal_status",
        description="Show the active journal file, its line count, and the total session count.",
    )(_journal_status)
    tool_worktrees = server.tool(
        name="list_worktrees",
        description="List git worktrees (main first; detached worktrees have no branch).",
    )(_list_worktrees)

    return ToolHandles(
        create_task=tool_create,
        list_tasks=tool_list,
        start_task=tool_start,
        advance_phase=tool_advance,
        dispatch_phase=tool_dispatch,
        agent_status=tool_agent_status,
        cancel_agent=tool_cancel,
        finish_task=tool_finish,
        add_context=tool_add_context,
        add_session=tool_add_session,
        journal_status=tool_journal_status,
        list_worktrees=tool_worktrees,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the MCP context logger when one is attached, else the module logger."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        log_method = getattr(ctx_logger, level, None) if ctx_logger is not None else None
        if callable(log_method):
            log_method(message, extra=payload)
            return

    getattr(logger, level, logger.info)(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
