"""Subprocess helpers shared by the git runner and agent launchers."""

from __future__ import annotations

import asyncio
import errno
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}


class ExecutableNotFoundError(RuntimeError):
    """Raised when a required executable cannot be located."""


@dataclass(slots=True)
class ExecutionResult:
    """Holds the outcome of a subprocess invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"{' '.join(self.args)} exited with {self.returncode}: {detail}"


@dataclass(slots=True)
class ProcessState:
    alive: bool
    exit_code: int | None = None


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def resolve_executable(name: str, explicit: Path | None = None) -> Path:
    if explicit is not None:
        candidate = Path(explicit)
        if candidate.exists() and candidate.is_file():
            return candidate
        raise ExecutableNotFoundError(f"{name} executable not found at {candidate}")

    binary = shutil.which(name)
    if binary is None:
        raise ExecutableNotFoundError(f"{name} executable not found on PATH")
    return Path(binary)


async def run_exec(
    *cmd: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ExecutionResult:
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd is not None else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=sanitize_environment(env),
    )
    stdout_bytes, stderr_bytes = await process.communicate()
    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")
    return ExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


async def run_shell(command: str, *, cwd: Path) -> ExecutionResult:
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=sanitize_environment(),
    )
    stdout_bytes, stderr_bytes = await process.communicate()
    return ExecutionResult(
        args=(command,),
        returncode=process.returncode,
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_bytes.decode("utf-8", errors="replace"),
    )


def probe_process(pid: int) -> ProcessState:
    """Report whether ``pid`` is still running, reaping it if it is our exited child."""

    if pid <= 0:
        return ProcessState(alive=False)

    try:
        reaped, status = os.waitpid(pid, os.WNOHANG)
    except ChildProcessError:
        pass
    else:
        if reaped == 0:
            return ProcessState(alive=True)
        return ProcessState(alive=False, exit_code=os.waitstatus_to_exitcode(status))

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return ProcessState(alive=False)
    except PermissionError:
        return ProcessState(alive=True)
    except OSError as exc:
        if exc.errno == errno.ESRCH:
            return ProcessState(alive=False)
        raise
    return ProcessState(alive=True)


__all__ = [
    "ExecutableNotFoundError",
    "ExecutionResult",
    "ProcessState",
    "probe_process",
    "resolve_executable",
    "run_exec",
    "run_shell",
    "sanitize_environment",
]
