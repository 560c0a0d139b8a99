"""Platform adapters and repository probing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping

from .base import (
    AGENT_LOG,
    AgentExecutableNotFoundError,
    AgentLogEntry,
    AgentProcess,
    LaunchAgentOptions,
    PlatformAdapter,
    PlatformCapabilityError,
    PlatformError,
    UnknownPlatformError,
)
from .claude import ClaudeAdapter
from .codex import CodexAdapter
from .cursor import CursorAdapter
from .opencode import OpenCodeAdapter

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type[PlatformAdapter]] = {
    "claude": ClaudeAdapter,
    "opencode": OpenCodeAdapter,
    "codex": CodexAdapter,
    "cursor": CursorAdapter,
}
# Probe order when several config directories are present.
PROBE_ORDER: tuple[str, ...] = ("claude", "opencode", "codex", "cursor")
DEFAULT_PLATFORM = "claude"


@dataclass(slots=True)
class PlatformResolution:
    adapter: PlatformAdapter
    source: Literal["override", "detected", "fallback"]

    @property
    def platform(self) -> str:
        return self.adapter.platform


def get_adapter(platform: str, *, executable: Path | None = None) -> PlatformAdapter:
    try:
        adapter_cls = ADAPTERS[platform]
    except KeyError as exc:
        raise UnknownPlatformError(
            f"Unknown platform '{platform}'. Expected one of {sorted(ADAPTERS)}"
        ) from exc
    return adapter_cls(executable)


def detect_platforms(repo_root: Path) -> list[str]:
    """Return platform ids whose config directory exists in ``repo_root``."""

    root = Path(repo_root)
    return [name for name in PROBE_ORDER if (root / ADAPTERS[name].config_dir).is_dir()]


def resolve_platform(
    repo_root: Path,
    override: str | None = None,
    *,
    executables: Mapping[str, Path] | None = None,
) -> PlatformResolution:
    """Pick the adapter for this invocation.

    An explicit override must name a known platform. Without one, the repo
    root is probed for platform config directories; when nothing is found
    the default platform is used and the fallback is logged as a warning.
    """

    executables = executables or {}

    if override:
        adapter = get_adapter(override, executable=executables.get(override))
        return PlatformResolution(adapter=adapter, source="override")

    detected = detect_platforms(repo_root)
    if detected:
        if len(detected) > 1:
            logger.info(
                "Multiple platform configs found; using first in probe order",
                extra={"detected": detected, "selected": detected[0]},
            )
        name = detected[0]
        return PlatformResolution(
            adapter=get_adapter(name, executable=executables.get(name)), source="detected"
        )

    logger.warning(
        "No platform config directory found; falling back to default platform",
        extra={
            "repo_root": str(repo_root),
            "probed": [ADAPTERS[name].config_dir for name in PROBE_ORDER],
            "fallback": DEFAULT_PLATFORM,
        },
    )
    return PlatformResolution(
        adapter=get_adapter(DEFAULT_PLATFORM, executable=executables.get(DEFAULT_PLATFORM)),
        source="fallback",
    )


__all__ = [
    "ADAPTERS",
    "AGENT_LOG",
    "AgentExecutableNotFoundError",
    "AgentLogEntry",
    "AgentProcess",
    "ClaudeAdapter",
    "CodexAdapter",
    "CursorAdapter",
    "DEFAULT_PLATFORM",
    "LaunchAgentOptions",
    "OpenCodeAdapter",
    "PlatformAdapter",
    "PlatformCapabilityError",
    "PlatformError",
    "PlatformResolution",
    "UnknownPlatformError",
    "detect_platforms",
    "get_adapter",
    "resolve_platform",
]
