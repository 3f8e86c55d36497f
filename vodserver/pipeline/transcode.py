import asyncio
import logging
from typing import Any, Dict, List

import ffmpeg
from starlette.concurrency import run_in_threadpool

from ..models import TranscodeProfile
from .util import get_file_size, tail_text

logger = logging.getLogger("video_server")


class FFmpegRunner:
    """Builds encoder commands, manages encoder processes and probes their output"""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe",
                 terminate_grace_sec: float = 5.0):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.terminate_grace_sec = terminate_grace_sec

    def build_command(self, input_path: str, output_path: str, profile: TranscodeProfile) -> List[str]:
        """
        Build the encoder command for a profile.

        Returns:
            argv list, executable first
        """
        output_kwargs = {
            "vcodec": profile.video_codec,
            "acodec": profile.audio_codec,
            "format": profile.container,
            "video_bitrate": profile.video_bitrate,
            "audio_bitrate": profile.audio_bitrate,
        }
        output_kwargs.update(dict(profile.extra_args))

        return (
            ffmpeg
            .input(input_path)
            .output(output_path, **output_kwargs)
            .global_args("-hide_banner", "-loglevel", "error", "-nostdin")
            .overwrite_output()
            .compile(cmd=self.ffmpeg_path)
        )

    async def start(self, command: List[str]) -> asyncio.subprocess.Process:
        """
        Start an encoder process with stderr captured.

        Raises:
            OSError: if the executable cannot be started
        """
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        logger.info(f"Started encoder process with PID {process.pid}")
        return process

    async def terminate(self, process: asyncio.subprocess.Process) -> None:
        """Ask the process to exit, kill it if it does not within the grace period"""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_grace_sec)
        except asyncio.TimeoutError:
            logger.warning(f"Encoder PID {process.pid} ignored SIGTERM, killing")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    def probe(self, path: str) -> Dict[str, Any]:
        """Run ffprobe on a file. Blocking."""
        return ffmpeg.probe(path, cmd=self.ffprobe_path)

    async def validate_output(self, path: str) -> bool:
        """Check that an encode produced a non-empty file ffprobe can read"""
        size = await run_in_threadpool(get_file_size, path)
        if not size:
            logger.error(f"Encoder output missing or empty: {path}")
            return False

        try:
            info = await run_in_threadpool(self.probe, path)
        except ffmpeg.Error as e:
            logger.error(f"Encoder output failed probe {path}: {tail_text(e.stderr)}")
            return False
        except OSError as e:
            logger.error(f"Could not run ffprobe on {path}: {e}")
            return False

        if not info.get("streams"):
            logger.error(f"Encoder output has no streams: {path}")
            return False
        return True
