"""Subprocess execution shared by the tool-backed strategies."""

import asyncio
import subprocess  # nosec B404 - subprocess used for returning CompletedProcess
from typing import List, Optional, Sequence

import structlog

from multiconvert.strategies.exceptions import ProcessFailedError, ToolNotFoundError

logger = structlog.get_logger(__name__)

SENSITIVE_FLAGS = ("--cookies", "--password", "--username", "--video-password")


def redact_command(cmd: Sequence[str]) -> List[str]:
    """Redact the values of sensitive flags from a command line."""
    redacted = []
    skip_next = False

    for arg in cmd:
        if skip_next:
            redacted.append("[REDACTED]")
            skip_next = False
        elif arg in SENSITIVE_FLAGS:
            redacted.append(arg)
            skip_next = True
        else:
            redacted.append(arg)

    return redacted


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def run_process(
    cmd: Sequence[str],
    timeout: Optional[float] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run an external tool to completion and capture its output.

    The process is killed if the awaiting task is cancelled or the
    optional timeout elapses.

    Args:
        cmd: Executable and arguments
        timeout: Optional deadline in seconds
        check: Raise ProcessFailedError on a non-zero exit code

    Returns:
        CompletedProcess with decoded stdout and stderr

    Raises:
        ToolNotFoundError: If the executable does not exist
        ProcessFailedError: On non-zero exit (when ``check``) or timeout
    """
    cmd = list(cmd)
    logger.debug("process_starting", command=redact_command(cmd))

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error("tool_not_found", executable=cmd[0])
        raise ToolNotFoundError(f"{cmd[0]} is not installed or not in PATH")

    try:
        if timeout:
            stdout_b, stderr_b = await asyncio.wait_for(process.communicate(), timeout=timeout)
        else:
            stdout_b, stderr_b = await process.communicate()
    except asyncio.TimeoutError:
        await _terminate(process)
        raise ProcessFailedError(f"{cmd[0]} timed out after {timeout}s", returncode=-1)
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    stdout = (stdout_b or b"").decode(errors="replace")
    stderr = (stderr_b or b"").decode(errors="replace")

    logger.debug(
        "process_completed",
        executable=cmd[0],
        exit_code=process.returncode,
        stderr_preview=stderr[:500] or None,
    )

    if check and process.returncode != 0:
        message = stderr.strip() or stdout.strip() or f"{cmd[0]} exited with code {process.returncode}"
        raise ProcessFailedError(message, returncode=process.returncode, stderr=stderr)

    return subprocess.CompletedProcess(cmd, process.returncode, stdout, stderr)
