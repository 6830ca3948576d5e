"""yt-dlp retrieval strategy and metadata lookup."""

import asyncio
import json
import subprocess  # nosec B404 - subprocess used for returning CompletedProcess
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from cachetools import TTLCache

from app.core.logging import output_preview
from app.core.validation import extract_video_id
from app.models.media import FormatTag, MediaInfo, MediaRequest
from app.providers.base import RetrievalStrategy
from app.providers.exceptions import (
    DownloadError,
    ToolNotFoundError,
    VideoUnavailableError,
)

logger = structlog.get_logger(__name__)

# Output name inside the work directory; yt-dlp fills in the extension
OUTPUT_STEM = "video"

# Leftovers yt-dlp may write next to the final file
PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp", ".tmp")


class YtDlpProvider(RetrievalStrategy):
    """Retrieval strategy that shells out to yt-dlp."""

    name = "ytdlp"

    # Select a non-h264 video stream; those are the ones served without the overlay
    NO_WATERMARK_FORMAT = "bv*[vcodec!=h264]+ba/b"

    def __init__(
        self,
        binary: str = "yt-dlp",
        ffmpeg_binary: Optional[str] = None,
        retry_attempts: int = 3,
        retry_backoff: Optional[List[int]] = None,
        metadata_timeout: Optional[float] = 30.0,
        download_timeout: Optional[float] = 300.0,
        cache_ttl: int = 600,
        cache_maxsize: int = 256,
    ):
        """
        Initialize yt-dlp provider.

        Args:
            binary: yt-dlp executable path or name
            ffmpeg_binary: ffmpeg location handed to yt-dlp for merging/extraction
            retry_attempts: Attempts per command for retriable failures
            retry_backoff: Seconds to wait before each retry
            metadata_timeout: Per-attempt timeout for ``--dump-json`` (0/None disables)
            download_timeout: Per-attempt timeout for downloads (0/None disables)
            cache_ttl: Seconds a metadata lookup stays cached
            cache_maxsize: Maximum number of cached lookups
        """
        self.binary = binary
        self.ffmpeg_binary = ffmpeg_binary
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff: List[int] = list(retry_backoff or [2, 4, 8])
        self.metadata_timeout = metadata_timeout or None
        self.download_timeout = download_timeout or None
        self.info_cache: TTLCache = TTLCache(maxsize=cache_maxsize, ttl=cache_ttl)

        logger.info(
            "ytdlp_provider_initialized",
            binary=self.binary,
            ffmpeg=self.ffmpeg_binary,
            retry_attempts=self.retry_attempts,
        )

    @staticmethod
    def format_args(fmt: FormatTag) -> List[str]:
        """Return the format-selection arguments for a format tag."""
        if fmt is FormatTag.AUDIO:
            return ["-x", "--audio-format", "mp3"]
        if fmt is FormatTag.NO_WATERMARK:
            return ["-f", YtDlpProvider.NO_WATERMARK_FORMAT]
        return ["-f", "best"]

    def build_info_command(self, url: str) -> List[str]:
        return [self.binary, "--dump-json", "--no-download", "--no-playlist", url]

    def build_download_command(self, request: MediaRequest, workdir: Path) -> List[str]:
        cmd = [self.binary, "--no-playlist"]
        if self.ffmpeg_binary:
            cmd.extend(["--ffmpeg-location", self.ffmpeg_binary])
        cmd.extend(["-o", str(workdir / f"{OUTPUT_STEM}.%(ext)s")])
        cmd.extend(self.format_args(request.format))
        cmd.append(request.url)
        return cmd

    def cached_info(self, url: str) -> Optional[MediaInfo]:
        """Return a cached metadata lookup without running anything."""
        return self.info_cache.get(url)

    async def get_info(self, url: str) -> MediaInfo:
        """
        Extract video metadata with ``--dump-json``.

        Args:
            url: Video page URL

        Returns:
            MediaInfo for the video

        Raises:
            ToolNotFoundError: If yt-dlp is not installed
            VideoUnavailableError: If the video is private or removed
            DownloadError: If yt-dlp fails or prints unparsable output
        """
        cached = self.info_cache.get(url)
        if cached is not None:
            logger.debug("video_info_cache_hit", url=url)
            return cached

        cmd = self.build_info_command(url)
        logger.info("video_info_requested", url=url)

        try:
            result = await self._execute_with_retry(cmd, timeout=self.metadata_timeout)
        except ToolNotFoundError:
            raise
        except DownloadError as e:
            error_str = str(e)
            if "Video unavailable" in error_str or "Private video" in error_str:
                raise VideoUnavailableError(f"Video is not accessible: {error_str}") from e
            raise

        info = self._parse_info(result.stdout)
        media_info = MediaInfo(
            title=info.get("title") or "",
            webpage_url=info.get("webpage_url") or url,
            duration=info.get("duration"),
            video_id=str(info["id"]) if info.get("id") else extract_video_id(url),
            uploader=info.get("uploader"),
        )
        self.info_cache[url] = media_info

        logger.info("video_info_extracted", video_id=media_info.video_id, title=media_info.title)
        return media_info

    def _parse_info(self, stdout: bytes) -> Dict[str, Any]:
        text = stdout.decode(errors="replace").strip() if stdout else ""
        first_line = text.splitlines()[0] if text else ""
        try:
            info = json.loads(first_line)
        except json.JSONDecodeError as e:
            logger.error("ytdlp_output_parse_failed", error=str(e), output=output_preview(stdout))
            raise DownloadError(f"Failed to parse video info: {str(e)}") from e
        if not isinstance(info, dict):
            raise DownloadError("Failed to parse video info: unexpected JSON payload")
        return info

    async def fetch(self, request: MediaRequest, workdir: Path) -> Path:
        """
        Download the requested media into ``workdir`` with yt-dlp.

        Raises:
            ToolNotFoundError: If yt-dlp is not installed
            DownloadError: If yt-dlp fails or produced no output file
        """
        cmd = self.build_download_command(request, workdir)
        logger.info("ytdlp_download_started", url=request.url, format=request.format.value)
        logger.debug("executing_ytdlp", command=cmd)

        start_time = asyncio.get_running_loop().time()
        result = await self._execute_with_retry(cmd, timeout=self.download_timeout)

        logger.debug(
            "ytdlp_execution_completed",
            exit_code=result.returncode,
            stderr_preview=output_preview(result.stderr),
        )

        output = self._find_output(workdir, request.format)
        if output is None:
            raise DownloadError("Download completed but no output file was found")

        logger.info(
            "ytdlp_download_completed",
            path=str(output),
            file_size=output.stat().st_size,
            duration=asyncio.get_running_loop().time() - start_time,
        )
        return output

    def _find_output(self, workdir: Path, fmt: FormatTag) -> Optional[Path]:
        candidates = [
            p
            for p in workdir.iterdir()
            if p.is_file() and p.stem == OUTPUT_STEM and p.suffix not in PARTIAL_SUFFIXES
        ]
        if not candidates:
            return None
        if fmt is FormatTag.AUDIO:
            for path in candidates:
                if path.suffix == ".mp3":
                    return path
        return max(candidates, key=lambda p: p.stat().st_size)

    def _is_retriable_error(self, error_msg: str) -> bool:
        """Network, 5xx and rate-limit failures are worth retrying."""
        retriable_patterns = [
            "HTTP Error 5",
            "Connection reset",
            "Timeout",
            "timed out",
            "Too Many Requests",
            "HTTP Error 429",
            "Unable to connect",
        ]
        return any(pattern in error_msg for pattern in retriable_patterns)

    def _backoff_for(self, attempt: int) -> int:
        if not self.retry_backoff:
            return 0
        return self.retry_backoff[min(attempt, len(self.retry_backoff) - 1)]

    async def _execute_with_retry(  # noqa: C901
        self,
        cmd: List[str],
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """
        Execute command with retry logic.

        Retriable errors (network, 5xx, 429, timeouts) are retried with
        backoff; anything else fails immediately. A timed-out process is
        killed before the next attempt, and a cancelled one is killed before
        the cancellation propagates.

        Raises:
            ToolNotFoundError: If the binary cannot be executed
            DownloadError: If all attempts fail or a non-retriable error occurs
        """
        last_error: Optional[str] = None

        for attempt in range(self.retry_attempts):
            process = None
            try:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )

                if timeout:
                    stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
                else:
                    stdout, stderr = await process.communicate()

                if process.returncode == 0:
                    return subprocess.CompletedProcess(cmd, process.returncode, stdout, stderr)

                error_msg = stderr.decode(errors="replace").strip() if stderr else ""
                error_msg = error_msg or f"yt-dlp exited with code {process.returncode}"

                if not self._is_retriable_error(error_msg):
                    raise DownloadError(error_msg)

                last_error = error_msg

                if attempt < self.retry_attempts - 1:
                    wait_time = self._backoff_for(attempt)
                    logger.warning(
                        "ytdlp_retrying",
                        attempt=attempt + 1,
                        max_attempts=self.retry_attempts,
                        wait_seconds=wait_time,
                        error=error_msg[:200],
                    )
                    await asyncio.sleep(wait_time)

            except asyncio.TimeoutError:
                if process is not None and process.returncode is None:
                    process.kill()
                    await process.wait()
                last_error = f"Timeout after {timeout}s"
                logger.warning(
                    "ytdlp_timeout",
                    attempt=attempt + 1,
                    max_attempts=self.retry_attempts,
                    timeout=timeout,
                )
                if attempt < self.retry_attempts - 1:
                    await asyncio.sleep(self._backoff_for(attempt))

            except asyncio.CancelledError:
                if process is not None and process.returncode is None:
                    process.kill()
                    await process.wait()
                    logger.warning("ytdlp_killed_on_cancel", binary=self.binary)
                raise

            except DownloadError:
                raise

            except (FileNotFoundError, PermissionError):
                logger.error("ytdlp_not_found", binary=self.binary)
                raise ToolNotFoundError(f"{self.binary} is not installed or not executable")

            except Exception as e:
                last_error = str(e)
                if attempt == self.retry_attempts - 1:
                    raise DownloadError(f"Unexpected error: {last_error}") from e

        raise DownloadError(f"Failed after {self.retry_attempts} attempts: {last_error}")
