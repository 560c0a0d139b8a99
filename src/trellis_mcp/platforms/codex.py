"""Codex CLI adapter (``codex exec --json``)."""

from __future__ import annotations

from typing import Any

from .base import AgentLogEntry, LaunchAgentOptions, PlatformAdapter

_TOOL_ITEMS = {"command_execution", "mcp_tool_call", "file_change", "web_search"}
_LEGACY_TOOL_EVENTS = {"exec_command_begin", "mcp_tool_call_begin", "patch_apply_begin"}


class CodexAdapter(PlatformAdapter):
    platform = "codex"
    config_dir = ".codex"
    executable_name = "codex"

    def command_path(self, name: str) -> str:
        return f"{self.config_dir}/prompts/trellis-{name}.md"

    def build_command(self, options: LaunchAgentOptions) -> list[str]:
        return ["exec", "--json", options.prompt or self.default_prompt(options)]

    def session_id_from_log(self, line: str) -> str | None:
        payload = self._decode(line)
        if payload is None or payload.get("type") != "thread.started":
            return None
        thread_id = payload.get("thread_id")
        return thread_id if isinstance(thread_id, str) and thread_id else None

    def parse_agent_log(self, line: str) -> AgentLogEntry | None:
        payload = self._decode(line)
        if payload is None:
            return None

        if isinstance(payload.get("msg"), dict):
            return self._parse_legacy(payload)

        kind = payload.get("type")
        if kind == "item.completed":
            item = payload.get("item") or {}
            item_type = item.get("type")
            if item_type in _TOOL_ITEMS:
                return self._entry("tool_call", item, payload)
            if item_type == "agent_message":
                return self._entry("message", item.get("text", ""), payload)
            if item_type == "error":
                return self._entry("error", item.get("message", ""), payload)
            return None
        if kind == "turn.completed":
            return self._entry("complete", payload.get("usage", {}), payload)
        if kind == "turn.failed":
            error = payload.get("error") or {}
            return self._entry("error", error.get("message") if isinstance(error, dict) else error, payload)
        if kind == "error":
            return self._entry("error", payload.get("message", ""), payload)
        return None

    def _parse_legacy(self, payload: dict[str, Any]) -> AgentLogEntry | None:
        msg = payload["msg"]
        kind = msg.get("type")
        if kind in _LEGACY_TOOL_EVENTS:
            return self._entry("tool_call", msg, payload)
        if kind == "agent_message":
            return self._entry("message", msg.get("message", ""), payload)
        if kind == "task_complete":
            return self._entry("complete", msg.get("last_agent_message", ""), payload)
        if kind in {"error", "stream_error"}:
            return self._entry("error", msg.get("message", ""), payload)
        return None


__all__ = ["CodexAdapter"]
