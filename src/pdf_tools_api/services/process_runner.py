"""Run external tools under a hard time budget.

Every invocation captures stdout and stderr, starts the child in its own
session and, on timeout or cancellation, kills the whole process group so no
grandchild survives the request that spawned it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import signal
from typing import Sequence

from pdf_tools_api.errors import InternalError

LOGGER = logging.getLogger(__name__)
STDERR_EXCERPT_CHARS = 300


class ToolStartError(InternalError):
    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(f"Failed to start {tool_name}: {reason}")
        self.tool_name = tool_name


class ToolTimeoutError(InternalError):
    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        super().__init__(f"{tool_name} timed out after {timeout_seconds:g}s")
        self.tool_name = tool_name
        self.timeout_seconds = timeout_seconds


class ToolExitError(InternalError):
    def __init__(self, tool_name: str, returncode: int, stderr_excerpt: str) -> None:
        super().__init__(f"{tool_name} failed (exit {returncode}): {stderr_excerpt}")
        self.tool_name = tool_name
        self.returncode = returncode
        self.stderr_excerpt = stderr_excerpt


class ToolOutputError(InternalError):
    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


def stderr_excerpt(stderr: bytes, limit: int = STDERR_EXCERPT_CHARS) -> str:
    # Decode first, then cut on characters so a multi-byte sequence is never split.
    text = stderr.decode("utf-8", errors="replace").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


async def run_tool(
    executable: str | os.PathLike[str],
    args: Sequence[str | os.PathLike[str]],
    *,
    timeout_seconds: float,
    tool_name: str | None = None,
) -> ToolResult:
    name = tool_name or Path(executable).name
    argv = [os.fspath(executable), *(os.fspath(arg) for arg in args)]
    LOGGER.debug("Running %s: %s", name, argv)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        raise ToolStartError(name, str(exc)) from exc

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(), timeout=timeout_seconds
        )
    except asyncio.TimeoutError:
        _kill_process_group(process)
        await process.wait()
        LOGGER.warning("%s killed after exceeding %ss budget", name, timeout_seconds)
        raise ToolTimeoutError(name, timeout_seconds) from None
    except asyncio.CancelledError:
        _kill_process_group(process)
        await asyncio.shield(process.wait())
        raise

    returncode = process.returncode if process.returncode is not None else -1
    if returncode != 0:
        excerpt = stderr_excerpt(stderr)
        LOGGER.error("%s exited with %s: %s", name, returncode, excerpt)
        raise ToolExitError(name, returncode, excerpt)
    return ToolResult(returncode=returncode, stdout=stdout, stderr=stderr)
