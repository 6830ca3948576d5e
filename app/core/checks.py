"""Availability probes for yt-dlp and ffmpeg.

Both tools are probed by running them with their version flag. The startup
validator uses the result to decide what to switch off; ``/health`` reports
it per component.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from app.core.logging import output_preview

FFMPEG_VERSION_RE = re.compile(r"ffmpeg version (\S+)")


@dataclass
class CheckResult:
    """Outcome of probing one external tool.

    ``details`` carries the probed path when the tool answered.
    """

    name: str
    available: bool
    version: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


async def probe_tool(
    name: str,
    binary: str,
    version_flag: str,
    parse_version: Callable[[str], Optional[str]],
    timeout: float,
) -> CheckResult:
    """Run ``binary version_flag`` and read a version from its stdout.

    A missing binary, a non-zero exit, a timeout, or output without a
    version all make the tool unavailable.
    """
    proc = None
    try:
        proc = await asyncio.create_subprocess_exec(
            binary,
            version_flag,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        if proc is not None:
            proc.kill()
            await proc.wait()
        return CheckResult(name=name, available=False, error=f"{binary} did not answer in {timeout}s")
    except asyncio.CancelledError:
        if proc is not None and proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    except (FileNotFoundError, PermissionError):
        return CheckResult(name=name, available=False, error=f"{binary} not found or not executable")
    except OSError as e:
        return CheckResult(name=name, available=False, error=f"{binary} could not be started: {e}")

    if proc.returncode != 0:
        reason = output_preview(stderr) or "no output"
        return CheckResult(
            name=name,
            available=False,
            error=f"{binary} {version_flag} exited with code {proc.returncode}: {reason}",
        )

    version = parse_version(stdout.decode(errors="replace") if stdout else "")
    if version is None:
        return CheckResult(name=name, available=False, error=f"{binary} printed no version")

    return CheckResult(name=name, available=True, version=version, details={"path": binary})


def _ytdlp_version(output: str) -> Optional[str]:
    # yt-dlp prints a bare date version, e.g. 2025.01.15
    lines = output.strip().splitlines()
    return lines[0].strip() if lines else None


def _ffmpeg_version(output: str) -> Optional[str]:
    if not output.strip():
        return None
    match = FFMPEG_VERSION_RE.search(output)
    # Some static builds print a banner without the usual prefix
    return match.group(1) if match else "unknown"


async def check_ytdlp(binary: str = "yt-dlp", timeout: float = 5.0) -> CheckResult:
    return await probe_tool("ytdlp", binary, "--version", _ytdlp_version, timeout)


async def check_ffmpeg(binary: str = "ffmpeg", timeout: float = 5.0) -> CheckResult:
    return await probe_tool("ffmpeg", binary, "-version", _ffmpeg_version, timeout)
