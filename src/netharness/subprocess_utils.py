"""Subprocess helpers with optional log streaming and hard timeouts."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import IO, Mapping, Sequence

TIMEOUT_RETURNCODE = 124
NOT_FOUND_RETURNCODE = 127


@dataclass(frozen=True)
class CommandResult:
    """Captured output from a command invocation."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    stdout_path: Path | None
    stderr_path: Path | None
    timed_out: bool
    duration_ms: int = 0


def _tail_text(path: Path, *, max_bytes: int = 65536, max_lines: int = 200) -> str:
    """Return the tail of a text file for log summaries."""
    try:
        with path.open("rb") as handle:
            handle.seek(0, os.SEEK_END)
            size = handle.tell()
            handle.seek(max(0, size - max_bytes))
            data = handle.read()
    except OSError:
        return ""
    text = data.decode("utf-8", errors="replace")
    lines = text.splitlines()
    if len(lines) > max_lines:
        lines = lines[-max_lines:]
    return "\n".join(lines)


def tail_lines(text: str, max_lines: int = 40) -> str:
    """Return the last lines of captured output."""
    lines = text.splitlines()
    if len(lines) > max_lines:
        lines = lines[-max_lines:]
    return "\n".join(lines)


def _decode(raw: str | bytes | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _kill_process_tree(process: subprocess.Popen) -> None:
    """Forcibly terminate the child and every process in its session."""
    if os.name == "posix":
        try:
            os.killpg(process.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    try:
        process.kill()
    except ProcessLookupError:
        pass


def _elapsed_ms(start: float) -> int:
    return int(round((perf_counter() - start) * 1000))


def _spawn(
    cmd_list: list[str],
    *,
    cwd: Path | None,
    env: Mapping[str, str] | None,
    stdout: IO[str] | int,
    stderr: IO[str] | int,
) -> subprocess.Popen:
    return subprocess.Popen(
        cmd_list,
        cwd=cwd,
        env=dict(env) if env is not None else None,
        stdout=stdout,
        stderr=stderr,
        stdin=subprocess.DEVNULL,
        text=True,
        errors="replace",
        start_new_session=os.name == "posix",
    )


def _timeout_message(timeout: float | None) -> str:
    return f"Command timed out after {timeout} seconds."


def run_command(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    stdout_path: Path | None = None,
    stderr_path: Path | None = None,
    tail_bytes: int = 65536,
    tail_lines: int = 200,
) -> CommandResult:
    """Run a command, optionally streaming output to log files.

    The child runs in its own session so a timeout kills the whole process
    tree rooted at it. Timed-out commands report return code 124; commands
    that cannot be spawned report 127 with the OS error on stderr.
    """
    cmd_list = [str(item) for item in command]
    start = perf_counter()
    timed_out = False
    if stdout_path or stderr_path:
        for path in (stdout_path, stderr_path):
            if path:
                path.parent.mkdir(parents=True, exist_ok=True)
        stdout_handle = stdout_path.open("w", encoding="utf-8") if stdout_path else None
        stderr_handle = stderr_path.open("w", encoding="utf-8") if stderr_path else None
        try:
            try:
                process = _spawn(
                    cmd_list,
                    cwd=cwd,
                    env=env,
                    stdout=stdout_handle or subprocess.DEVNULL,
                    stderr=stderr_handle or subprocess.DEVNULL,
                )
            except OSError as exc:
                return CommandResult(
                    cmd_list,
                    NOT_FOUND_RETURNCODE,
                    "",
                    str(exc),
                    stdout_path,
                    stderr_path,
                    False,
                    _elapsed_ms(start),
                )
            try:
                returncode = process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                timed_out = True
                _kill_process_tree(process)
                process.wait()
                returncode = TIMEOUT_RETURNCODE
        finally:
            if stdout_handle:
                stdout_handle.close()
            if stderr_handle:
                stderr_handle.close()
        duration_ms = _elapsed_ms(start)
        limits = {"max_bytes": tail_bytes, "max_lines": tail_lines}
        stdout = _tail_text(stdout_path, **limits) if stdout_path else ""
        stderr = _tail_text(stderr_path, **limits) if stderr_path else ""
        if timed_out:
            message = _timeout_message(timeout)
            stderr = f"{stderr}\n{message}" if stderr else message
        return CommandResult(
            cmd_list,
            returncode,
            stdout,
            stderr,
            stdout_path,
            stderr_path,
            timed_out,
            duration_ms,
        )

    try:
        process = _spawn(
            cmd_list,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as exc:
        return CommandResult(
            cmd_list,
            NOT_FOUND_RETURNCODE,
            "",
            str(exc),
            None,
            None,
            False,
            _elapsed_ms(start),
        )
    try:
        raw_stdout, raw_stderr = process.communicate(timeout=timeout)
        returncode = process.returncode
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_tree(process)
        raw_stdout, raw_stderr = process.communicate()
        returncode = TIMEOUT_RETURNCODE
    duration_ms = _elapsed_ms(start)
    stdout = _decode(raw_stdout)
    stderr = _decode(raw_stderr)
    if timed_out:
        message = _timeout_message(timeout)
        stderr = f"{stderr}\n{message}" if stderr else message
    return CommandResult(
        cmd_list,
        returncode,
        stdout,
        stderr,
        None,
        None,
        timed_out,
        duration_ms,
    )
