"""Claude Code adapter (``claude --output-format stream-json``)."""

from __future__ import annotations

from typing import Any

from .base import AgentLogEntry, LaunchAgentOptions, PlatformAdapter


class ClaudeAdapter(PlatformAdapter):
    platform = "claude"
    config_dir = ".claude"
    executable_name = "claude"

    def supports_hooks(self) -> bool:
        return True

    def build_command(self, options: LaunchAgentOptions) -> list[str]:
        return [
            "--agent",
            self.agent_file(options),
            "--print",
            options.prompt or self.default_prompt(options),
            "--output-format",
            "stream-json",
            "--verbose",
        ]

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
        if kind in {"tool_use", "tool_result"}:
            return self._entry("tool_call", payload, payload)
        if kind == "text":
            return self._entry("message", payload.get("text", ""), payload)
        if kind == "error":
            return self._entry("error", payload.get("message") or payload, payload)
        if kind == "result":
            if payload.get("is_error") or str(payload.get("subtype", "")).startswith("error"):
                return self._entry("error", payload.get("result") or payload.get("subtype"), payload)
            return self._entry("complete", payload.get("result", ""), payload)
        if kind in {"assistant", "user"}:
            return self._parse_message(payload)
        return None

    def _parse_message(self, payload: dict[str, Any]) -> AgentLogEntry | None:
        message = payload.get("message") or {}
        blocks = message.get("content") if isinstance(message, dict) else None
        if isinstance(blocks, str):
            return self._entry("message", blocks, payload)
        if not isinstance(blocks, list):
            return None

        tool_blocks = [
            block
            for block in blocks
            if isinstance(block, dict) and block.get("type") in {"tool_use", "tool_result"}
        ]
        if tool_blocks:
            return self._entry("tool_call", tool_blocks, payload)

        text = "\n".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if text:
            return self._entry("message", text, payload)
        return None


__all__ = ["ClaudeAdapter"]
