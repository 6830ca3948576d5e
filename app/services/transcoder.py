"""ffmpeg enhancement pass for watermark-free downloads."""

import asyncio
from pathlib import Path
from typing import List, Optional

import structlog

from app.core.config import TranscoderConfig
from app.core.logging import output_preview
from app.core.metrics import MetricsCollector
from app.providers.exceptions import TranscodingError

logger = structlog.get_logger(__name__)

ENHANCED_FILENAME = "enhanced_video.mp4"


class Transcoder:
    """Runs the upscale/sharpen/colour pass over a downloaded video."""

    def __init__(
        self,
        config: TranscoderConfig,
        binary: str = "ffmpeg",
        timeout: Optional[float] = 600.0,
    ):
        self.config = config
        self.binary = binary
        self.timeout = timeout or None
        self.enabled = config.enhance_enabled

    def build_command(self, source: Path, target: Path) -> List[str]:
        return [
            self.binary,
            "-y",
            "-i",
            str(source),
            "-vf",
            self.config.video_filter,
            "-c:v",
            "libx264",
            "-crf",
            str(self.config.crf),
            "-preset",
            self.config.preset,
            "-c:a",
            "aac",
            "-b:a",
            self.config.audio_bitrate,
            str(target),
        ]

    async def enhance(self, source: Path) -> Path:
        """
        Re-encode ``source`` into ``enhanced_video.mp4`` beside it.

        Returns:
            Path of the enhanced file

        Raises:
            TranscodingError: If ffmpeg is missing, fails, times out, or
                exits cleanly without writing the output
        """
        target = source.parent / ENHANCED_FILENAME
        cmd = self.build_command(source, target)
        logger.info("transcode_started", source=str(source))
        logger.debug("executing_ffmpeg", command=cmd)

        process = None
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            if self.timeout:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            else:
                _, stderr = await process.communicate()
        except asyncio.TimeoutError:
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
            MetricsCollector.record_transcode("timeout")
            raise TranscodingError(f"ffmpeg timed out after {self.timeout}s")
        except asyncio.CancelledError:
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
                logger.warning("ffmpeg_killed_on_cancel", binary=self.binary)
            raise
        except (FileNotFoundError, PermissionError):
            MetricsCollector.record_transcode("failed")
            logger.error("ffmpeg_not_found", binary=self.binary)
            raise TranscodingError(f"{self.binary} is not installed or not executable")

        if process.returncode != 0:
            MetricsCollector.record_transcode("failed")
            logger.error(
                "transcode_failed",
                exit_code=process.returncode,
                stderr_preview=output_preview(stderr),
            )
            raise TranscodingError(
                output_preview(stderr) or f"ffmpeg exited with code {process.returncode}"
            )

        if not target.is_file() or target.stat().st_size == 0:
            MetricsCollector.record_transcode("failed")
            raise TranscodingError("ffmpeg completed but produced no output file")

        MetricsCollector.record_transcode("success")
        logger.info("transcode_completed", target=str(target), file_size=target.stat().st_size)
        return target
