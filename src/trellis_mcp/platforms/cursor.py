"""Cursor adapter.

Cursor has no multi-agent launch support here; its ``stream-json`` logs are
still normalized so externally started sessions can be watched.
"""

from __future__ import annotations

from .base import AgentLogEntry, LaunchAgentOptions, PlatformAdapter, PlatformCapabilityError


class CursorAdapter(PlatformAdapter):
    platform = "cursor"
    config_dir = ".cursor"
    executable_name = "cursor-agent"

    def command_path(self, name: str) -> str:
        return f"{self.config_dir}/commands/trellis-{name}.md"

    def supports_multi_agent(self) -> bool:
        return False

    def build_command(self, options: LaunchAgentOptions) -> list[str]:
        raise PlatformCapabilityError("cursor does not support launching agents")

    def session_id_from_log(self, line: str) -> str | None:
        payload = self._decode(line)
        if payload is None:
            return None
        session_id = payload.get("session_id")
        return session_id if isinstance(session_id, str) and session_id else None

    def parse_agent_log(self, line: str) -> AgentLogEntry | None:
        payload = self._decode(line)
        if payload is None:
            return None

        kind = payload.get("type")
        if kind == "tool_call":
            if payload.get("subtype") != "started":
                return None
            return self._entry("tool_call", payload.get("tool_call", {}), payload)
        if kind == "assistant":
            message = payload.get("message") or {}
            blocks = message.get("content") or []
            text = "".join(
                block.get("text", "") for block in blocks if isinstance(block, dict)
            )
            return self._entry("message", text, payload) if text else None
        if kind == "result":
            if payload.get("is_error"):
                return self._entry("error", payload.get("result", ""), payload)
            return self._entry("complete", payload.get("result", ""), payload)
        if kind == "error":
            return self._entry("error", payload.get("message", ""), payload)
        return None


__all__ = ["CursorAdapter"]
