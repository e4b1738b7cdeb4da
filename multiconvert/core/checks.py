"""Shared component check utilities.

Async probes for the external executables the conversion strategies
spawn (ffmpeg, yt-dlp, soffice, pdftoppm). Used by startup logging and
the readiness endpoint.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from multiconvert.core.config import ToolsConfig


@dataclass
class CheckResult:
    """Result of a component availability check.

    Attributes:
        name: Component name (e.g., "ytdlp", "ffmpeg")
        available: Whether the component is available and functional
        version: Version string if available
        error: Error message if check failed
        details: Additional details about the check result
    """

    name: str
    available: bool
    version: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"available": self.available}
        if self.version:
            result["version"] = self.version
        if self.error:
            result["error"] = self.error
        if self.details:
            result.update(self.details)
        return result


async def _run_binary_check(
    name: str,
    command: List[str],
    timeout: float,
    parse_output: Callable[[str], Tuple[bool, Optional[str], Optional[str]]],
    accept_nonzero: bool = False,
) -> CheckResult:
    """Run a binary availability check with common error handling.

    Args:
        name: Component name for the result (e.g., "ytdlp", "ffmpeg").
        command: Command and arguments to execute.
        timeout: Maximum time to wait in seconds.
        parse_output: Callback receiving combined stdout/stderr text.
            Should return (success, version, error_message).
        accept_nonzero: Parse output even on a non-zero exit code. Some
            tools print their version to stderr and exit non-zero.

    Returns:
        CheckResult with availability status.
    """
    proc = None
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        output = (stdout or b"").decode(errors="replace") + (stderr or b"").decode(
            errors="replace"
        )

        if proc.returncode == 0 or accept_nonzero:
            success, version, error = parse_output(output)
            if success:
                return CheckResult(name=name, available=True, version=version)
            return CheckResult(name=name, available=False, version=version, error=error)

        return CheckResult(
            name=name,
            available=False,
            error=f"{command[0]} returned non-zero exit code",
        )
    except asyncio.TimeoutError:
        if proc:
            proc.kill()
            await proc.wait()
        return CheckResult(
            name=name,
            available=False,
            error=f"{command[0]} check timed out",
        )
    except FileNotFoundError:
        return CheckResult(
            name=name,
            available=False,
            error=f"{command[0]} not found",
        )
    except OSError as e:
        return CheckResult(name=name, available=False, error=str(e))


def _first_line(output: str) -> Tuple[bool, Optional[str], Optional[str]]:
    version = output.strip().splitlines()[0] if output.strip() else None
    return True, version, None


async def check_ytdlp(executable: str = "yt-dlp", timeout: float = 5.0) -> CheckResult:
    """Check yt-dlp availability and version."""
    return await _run_binary_check(
        name="ytdlp",
        command=[executable, "--version"],
        timeout=timeout,
        parse_output=_first_line,
    )


async def check_ffmpeg(executable: str = "ffmpeg", timeout: float = 5.0) -> CheckResult:
    """Check ffmpeg availability and version."""

    def parse_version(output: str) -> Tuple[bool, Optional[str], Optional[str]]:
        match = re.search(r"ffmpeg version (\S+)", output)
        return True, match.group(1) if match else "unknown", None

    return await _run_binary_check(
        name="ffmpeg",
        command=[executable, "-version"],
        timeout=timeout,
        parse_output=parse_version,
    )


async def check_soffice(executable: str = "soffice", timeout: float = 15.0) -> CheckResult:
    """Check LibreOffice availability. Its first start can be slow."""
    return await _run_binary_check(
        name="soffice",
        command=[executable, "--version"],
        timeout=timeout,
        parse_output=_first_line,
    )


async def check_pdftoppm(executable: str = "pdftoppm", timeout: float = 5.0) -> CheckResult:
    """Check poppler's pdftoppm availability.

    Older poppler releases exit with status 99 after printing the version.
    """

    def parse_version(output: str) -> Tuple[bool, Optional[str], Optional[str]]:
        match = re.search(r"pdftoppm version (\S+)", output)
        if match:
            return True, match.group(1), None
        return False, None, "Unable to determine pdftoppm version"

    return await _run_binary_check(
        name="pdftoppm",
        command=[executable, "-v"],
        timeout=timeout,
        parse_output=parse_version,
        accept_nonzero=True,
    )


async def check_tools(tools: ToolsConfig) -> Dict[str, CheckResult]:
    """Probe every configured external tool concurrently."""
    results = await asyncio.gather(
        check_ffmpeg(tools.ffmpeg),
        check_ytdlp(tools.ytdlp),
        check_soffice(tools.soffice),
        check_pdftoppm(tools.pdftoppm),
    )
    return {result.name: result for result in results}
