from __future__ import annotations

import asyncio
from pathlib import Path
import sys
import time

import pytest

from pdf_tools_api.errors import InternalError
from pdf_tools_api.services.process_runner import (
    ToolExitError,
    ToolStartError,
    ToolTimeoutError,
    run_tool,
    stderr_excerpt,
)


def _run_python(code: str, *, timeout_seconds: float = 10.0):
    return asyncio.run(
        run_tool(sys.executable, ["-c", code], timeout_seconds=timeout_seconds, tool_name="python")
    )


def _process_is_gone(pid: int) -> bool:
    status_path = Path(f"/proc/{pid}/status")
    try:
        status = status_path.read_text()
    except FileNotFoundError:
        return True
    # An unreaped zombie has already been killed.
    return any(line.startswith("State:") and "Z" in line for line in status.splitlines())


def test_run_tool_captures_stdout_and_stderr() -> None:
    result = _run_python("import sys; print('42'); sys.stderr.write('note')")

    assert result.returncode == 0
    assert result.stdout_text.strip() == "42"
    assert result.stderr == b"note"


def test_run_tool_reports_nonzero_exit_with_stderr_excerpt() -> None:
    with pytest.raises(ToolExitError) as exc_info:
        _run_python("import sys; sys.stderr.write('x' * 5000); sys.exit(3)")

    error = exc_info.value
    assert error.returncode == 3
    assert error.status_code == 500
    assert len(error.stderr_excerpt) <= 303
    assert error.stderr_excerpt.endswith("...")
    assert "exit 3" in error.message


def test_run_tool_reports_missing_executable_as_start_error(tmp_path: Path) -> None:
    missing = tmp_path / "does-not-exist"

    with pytest.raises(ToolStartError, match="Failed to start does-not-exist"):
        asyncio.run(run_tool(missing, ["--version"], timeout_seconds=5))


def test_tool_errors_are_internal_errors() -> None:
    assert issubclass(ToolStartError, InternalError)
    assert issubclass(ToolTimeoutError, InternalError)
    assert issubclass(ToolExitError, InternalError)


@pytest.mark.skipif(not Path("/proc").is_dir(), reason="requires /proc")
def test_run_tool_timeout_kills_whole_process_tree(tmp_path: Path) -> None:
    pid_file = tmp_path / "grandchild.pid"
    code = (
        "import subprocess, sys, time\n"
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        f"open({str(pid_file)!r}, 'w').write(str(child.pid))\n"
        "time.sleep(60)\n"
    )

    started = time.monotonic()
    with pytest.raises(ToolTimeoutError) as exc_info:
        _run_python(code, timeout_seconds=2.0)
    elapsed = time.monotonic() - started

    assert exc_info.value.timeout_seconds == 2.0
    assert "timed out after 2s" in exc_info.value.message
    assert elapsed < 30

    grandchild_pid = int(pid_file.read_text())
    deadline = time.monotonic() + 5
    while not _process_is_gone(grandchild_pid) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert _process_is_gone(grandchild_pid)


def test_stderr_excerpt_truncates_on_characters() -> None:
    text = "é" * 400

    excerpt = stderr_excerpt(text.encode("utf-8"), limit=300)

    assert excerpt == "é" * 300 + "..."


def test_stderr_excerpt_keeps_short_messages_intact() -> None:
    assert stderr_excerpt(b"  bad xref table \n") == "bad xref table"
    assert stderr_excerpt(b"\xff\xfe broken") == "�� broken"
