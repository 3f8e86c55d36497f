"""
Shared fixtures: a video directory with a few files, a config pointing at
it, and a scripted encoder that runs a tiny Python program in place of
ffmpeg.
"""

import asyncio
import sys
import time
from typing import Optional

import ffmpeg
import pytest

from vodserver.adapters.local_adapter import LocalDirectoryStore
from vodserver.catalog import AssetCatalog
from vodserver.config import ServerConfig
from vodserver.pipeline.transcode import FFmpegRunner


CLIP_BYTES = (bytes(range(256)) * 40)[:10000]

# argv: <source> <output>
COPY_SCRIPT = "import shutil, sys, time; time.sleep(0.3); shutil.copyfile(sys.argv[1], sys.argv[2])"
FAIL_SCRIPT = (
    "import sys; open(sys.argv[2], 'wb').write(b'half a movie'); "
    "sys.stderr.write('boom: invalid data found when processing input'); sys.exit(1)"
)
EMPTY_SCRIPT = "import sys; open(sys.argv[2], 'wb').close()"
HANG_SCRIPT = "import sys, time; open(sys.argv[2], 'wb').write(b'partial'); time.sleep(60)"


class ScriptedRunner(FFmpegRunner):
    """Runs a Python snippet instead of ffmpeg and records every invocation"""

    def __init__(self, script: str, probe_error: Optional[bytes] = None):
        super().__init__("ffmpeg", terminate_grace_sec=2.0)
        self.script = script
        self.probe_error = probe_error
        self.invocations = []
        self.probed = []

    def build_command(self, input_path, output_path, profile):
        self.invocations.append((input_path, output_path, profile))
        return [sys.executable, "-c", self.script, input_path, output_path]

    def probe(self, path):
        # Scripted outputs are not real media, so ffprobe is answered here
        self.probed.append(path)
        if self.probe_error is not None:
            raise ffmpeg.Error("ffprobe", b"", self.probe_error)
        return {"streams": [{"index": 0, "codec_type": "video"}]}


async def wait_until(predicate, timeout: float = 5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


@pytest.fixture
def video_dir(tmp_path):
    d = tmp_path / "videos"
    d.mkdir()
    (d / "clip.mp4").write_bytes(CLIP_BYTES)
    (d / "movie.MP4").write_bytes(b"m" * 2048)
    (d / "show.mkv").write_bytes(b"k" * 4096)
    (d / "notes.txt").write_text("not a video")
    (d / "readme.md").write_text("# readme")
    (d / "nested").mkdir()
    return d


@pytest.fixture
def config(video_dir, tmp_path):
    return ServerConfig(
        VIDEO_DIR=str(video_dir),
        TRANSCODED_DIR=str(video_dir / "transcoded"),
        STATIC_DIR=str(tmp_path / "public"),
        LOG_DIR=str(tmp_path / "logs"),
        STREAM_CHUNK_SIZE=1024,
        TRANSCODE_TIMEOUT_SEC=30,
    )


@pytest.fixture
def catalog(config):
    return AssetCatalog(LocalDirectoryStore(config.VIDEO_DIR), config.TRANSCODED_DIR)
