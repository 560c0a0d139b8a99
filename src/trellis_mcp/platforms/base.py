"""Platform adapter contract shared by every supported agent tool."""

from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, ClassVar, Literal, Mapping

from ..paths import SPEC_PATH, WORKFLOW_DIR, WORKFLOW_GUIDE
from ..process import ExecutableNotFoundError, resolve_executable, sanitize_environment
from ..tasks.context import manifest_path, write_jsonl
from ..tasks.models import ContextEntry, DevType

logger = logging.getLogger(__name__)

AgentEventType = Literal["tool_call", "message", "error", "complete"]

AGENT_LOG = ".agent-log"


class PlatformError(RuntimeError):
    """Base class for platform adapter errors."""


class UnknownPlatformError(PlatformError):
    """Raised when a platform id does not name a supported adapter."""


class PlatformCapabilityError(PlatformError):
    """Raised when a platform cannot perform the requested operation."""


class AgentExecutableNotFoundError(PlatformError, ExecutableNotFoundError):
    """Raised when the agent CLI for a platform cannot be located."""


@dataclass(slots=True)
class AgentLogEntry:
    """Canonical event produced from one raw agent log line."""

    type: AgentEventType
    timestamp: str
    content: Any


@dataclass(slots=True)
class LaunchAgentOptions:
    agent_type: str
    work_dir: Path
    task_dir: Path
    agent_file: str | None = None
    background: bool = False
    prompt: str | None = None
    log_file: Path | None = None
    env: Mapping[str, str] = field(default_factory=dict)

    def resolved_log_file(self) -> Path:
        return Path(self.log_file) if self.log_file else Path(self.work_dir) / AGENT_LOG


@dataclass(slots=True)
class AgentProcess:
    pid: int
    log_file: Path
    command: tuple[str, ...] = ()
    session_id: str | None = None
    returncode: int | None = None
    handle: subprocess.Popen | None = field(default=None, repr=False, compare=False)


class PlatformAdapter(ABC):
    """Translates orchestration calls into one agent tool's layout, CLI, and log format."""

    platform: ClassVar[str]
    config_dir: ClassVar[str]
    executable_name: ClassVar[str]

    def __init__(
        self,
        executable: Path | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._executable = executable
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(platform={self.platform!r})"

    # -- context generation ----------------------------------------------

    def command_path(self, name: str) -> str:
        return f"{self.config_dir}/commands/trellis/{name}.md"

    def get_implement_base(self) -> list[ContextEntry]:
        return [
            ContextEntry(file=f"{WORKFLOW_DIR}/{WORKFLOW_GUIDE}", reason="Project workflow and conventions"),
            ContextEntry(file=f"{SPEC_PATH}/shared/index.md", reason="Shared coding standards"),
        ]

    def get_implement_backend(self) -> list[ContextEntry]:
        return [
            ContextEntry(file=f"{SPEC_PATH}/backend/index.md", reason="Backend development guide"),
            ContextEntry(file=f"{SPEC_PATH}/backend/api-module.md", reason="API module conventions"),
            ContextEntry(file=f"{SPEC_PATH}/backend/quality.md", reason="Code quality requirements"),
        ]

    def get_implement_frontend(self) -> list[ContextEntry]:
        return [
            ContextEntry(file=f"{SPEC_PATH}/frontend/index.md", reason="Frontend development guide"),
            ContextEntry(file=f"{SPEC_PATH}/frontend/components.md", reason="Component conventions"),
        ]

    def _review_entries(self, dev_type: DevType | None) -> list[ContextEntry]:
        entries: list[ContextEntry] = []
        if dev_type in ("backend", "fullstack"):
            entries.append(ContextEntry(file=self.command_path("check-backend"), reason="Backend check spec"))
        if dev_type in ("frontend", "fullstack"):
            entries.append(ContextEntry(file=self.command_path("check-frontend"), reason="Frontend check spec"))
        return entries

    def get_check_context(self, dev_type: DevType | None) -> list[ContextEntry]:
        return [
            ContextEntry(file=self.command_path("finish-work"), reason="Finish work checklist"),
            ContextEntry(file=f"{SPEC_PATH}/shared/index.md", reason="Shared coding standards"),
            *self._review_entries(dev_type),
        ]

    def get_debug_context(self, dev_type: DevType | None) -> list[ContextEntry]:
        return [
            ContextEntry(file=f"{SPEC_PATH}/shared/index.md", reason="Shared coding standards"),
            *self._review_entries(dev_type),
        ]

    def get_implement_context(self, dev_type: DevType | None) -> list[ContextEntry]:
        entries = self.get_implement_base()
        if dev_type in ("backend", "test", "fullstack"):
            entries.extend(self.get_implement_backend())
        if dev_type in ("frontend", "fullstack"):
            entries.extend(self.get_implement_frontend())
        return entries

    def generate_context_files(self, task_dir: Path, dev_type: DevType | None) -> list[Path]:
        """Rewrite the implement/check/debug manifests for ``dev_type``.

        Output depends only on the platform and ``dev_type``; prior content,
        including manually added entries, is replaced.
        """

        written = [
            write_jsonl(manifest_path(task_dir, "implement"), self.get_implement_context(dev_type)),
            write_jsonl(manifest_path(task_dir, "check"), self.get_check_context(dev_type)),
            write_jsonl(manifest_path(task_dir, "debug"), self.get_debug_context(dev_type)),
        ]
        logger.debug(
            "Generated context manifests",
            extra={"platform": self.platform, "task_dir": str(task_dir), "dev_type": dev_type},
        )
        return written

    # -- capabilities -----------------------------------------------------

    def get_config_dir(self) -> str:
        return self.config_dir

    def supports_multi_agent(self) -> bool:
        return True

    def supports_hooks(self) -> bool:
        return False

    # -- launching --------------------------------------------------------

    def agent_file(self, options: LaunchAgentOptions) -> str:
        return options.agent_file or f"{self.config_dir}/agents/{options.agent_type}.md"

    def default_prompt(self, options: LaunchAgentOptions) -> str:
        return (
            f"Run the {options.agent_type} phase for the task in {options.task_dir}. "
            f"Follow the instructions in {self.agent_file(options)}."
        )

    @abstractmethod
    def build_command(self, options: LaunchAgentOptions) -> list[str]:
        """Return CLI arguments (without the executable) for ``options``."""

    def resolve_executable(self) -> Path:
        try:
            return resolve_executable(self.executable_name, self._executable)
        except ExecutableNotFoundError as exc:
            raise AgentExecutableNotFoundError(str(exc)) from exc

    async def launch_agent(self, options: LaunchAgentOptions) -> AgentProcess:
        """Start an agent in ``options.work_dir`` with output appended to its log file.

        Background launches detach into a new session and return immediately;
        foreground launches wait for the process to exit.
        """

        if not self.supports_multi_agent():
            raise PlatformCapabilityError(f"{self.platform} does not support launching agents")

        command = (str(self.resolve_executable()), *self.build_command(options))
        log_file = options.resolved_log_file()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        env = sanitize_environment(options.env)

        if options.background:
            with log_file.open("ab") as handle:
                process = subprocess.Popen(
                    command,
                    cwd=str(options.work_dir),
                    stdin=subprocess.DEVNULL,
                    stdout=handle,
                    stderr=subprocess.STDOUT,
                    env=env,
                    start_new_session=True,
                )
            logger.info(
                "Launched background agent",
                extra={"platform": self.platform, "pid": process.pid, "log_file": str(log_file)},
            )
            return AgentProcess(pid=process.pid, log_file=log_file, command=command, handle=process)

        with log_file.open("ab") as handle:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(options.work_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=handle,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
            )
            returncode = await process.wait()
        logger.info(
            "Foreground agent exited",
            extra={"platform": self.platform, "pid": process.pid, "returncode": returncode},
        )
        return AgentProcess(pid=process.pid, log_file=log_file, command=command, returncode=returncode)

    # -- log normalization ------------------------------------------------

    @abstractmethod
    def parse_agent_log(self, line: str) -> AgentLogEntry | None:
        """Normalize one raw log line; ``None`` when the line carries no canonical event."""

    def session_id_from_log(self, line: str) -> str | None:
        return None

    @staticmethod
    def _decode(line: str) -> dict[str, Any] | None:
        line = line.strip()
        if not line.startswith("{"):
            return None
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None

    def _timestamp(self, value: Any = None) -> str:
        if isinstance(value, str) and value:
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = value / 1000 if value > 1e11 else value
            return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
        return self._clock().isoformat()

    def _entry(self, event_type: AgentEventType, content: Any, payload: Mapping[str, Any]) -> AgentLogEntry:
        return AgentLogEntry(
            type=event_type,
            timestamp=self._timestamp(payload.get("timestamp")),
            content=content,
        )


__all__ = [
    "AGENT_LOG",
    "AgentExecutableNotFoundError",
    "AgentLogEntry",
    "AgentProcess",
    "LaunchAgentOptions",
    "PlatformAdapter",
    "PlatformCapabilityError",
    "PlatformError",
    "UnknownPlatformError",
]
