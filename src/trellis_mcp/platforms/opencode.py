"""OpenCode adapter (``opencode run --format json``)."""

from __future__ import annotations

from .base import AgentLogEntry, LaunchAgentOptions, PlatformAdapter


class OpenCodeAdapter(PlatformAdapter):
    platform = "opencode"
    config_dir = ".opencode"
    executable_name = "opencode"

    def supports_hooks(self) -> bool:
        return True

    def build_command(self, options: LaunchAgentOptions) -> list[str]:
        return [
            "run",
            "--agent",
            options.agent_type,
            "--format",
            "json",
            options.prompt or self.default_prompt(options),
        ]

    def session_id_from_log(self, line: str) -> str | None:
        payload = self._decode(line)
        if payload is None:
            return None
        session_id = payload.get("sessionID")
        return session_id if isinstance(session_id, str) and session_id else None

    def parse_agent_log(self, line: str) -> AgentLogEntry | None:
        payload = self._decode(line)
        if payload is None:
            return None

        kind = payload.get("type")
        part = payload.get("part") or {}
        if kind == "tool_use":
            return self._entry("tool_call", part, payload)
        if kind == "text":
            return self._entry("message", part.get("text", ""), payload)
        if kind == "step_finish" and part.get("reason") == "stop":
            return self._entry("complete", part, payload)
        if kind == "error":
            error = payload.get("error") or {}
            data = error.get("data") if isinstance(error, dict) else None
            message = data.get("message") if isinstance(data, dict) else None
            return self._entry("error", message or error, payload)
        return None


__all__ = ["OpenCodeAdapter"]
