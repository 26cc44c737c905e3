# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


"""
MPEG-TS remuxing through ffmpeg.

MediaRecorder produces WebM, which most DVR software will not ingest. The
transcoder reads the capture on stdin, copies the H.264 video untouched,
re-encodes only the audio to AAC, and writes MPEG-TS to stdout.

An unexpected exit (non-zero code, or any signal other than the SIGTERM sent
by terminate()) resolves the ``failed`` future with a SubprocessError.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import sys
from typing import AsyncIterator, List, Optional, Union

from tabtuner.exceptions import SubprocessError
from tabtuner.utils.logger import logger

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

NOISE_PATTERNS = ("Press [q] to stop", "frame=", "size=", "time=", "bitrate=", "speed=")

COMMON_FFMPEG_PATHS = {
    "win32": [r"C:\ffmpeg\bin\ffmpeg.exe", r"C:\Program Files\ffmpeg\bin\ffmpeg.exe"],
    "default": ["/usr/bin/ffmpeg", "/usr/local/bin/ffmpeg", "/opt/homebrew/bin/ffmpeg"],
}

READ_SIZE = 64 * 1024

_cached_ffmpeg_path: Optional[str] = None


def find_ffmpeg(explicit: Optional[str] = None) -> str:
    """
    Locate the ffmpeg binary, caching the result.

    Raises:
        SubprocessError: If ffmpeg is neither on PATH nor in a common location
    """
    global _cached_ffmpeg_path
    if explicit:
        return explicit
    if _cached_ffmpeg_path:
        return _cached_ffmpeg_path

    path = shutil.which("ffmpeg")
    if not path:
        candidates = COMMON_FFMPEG_PATHS.get(sys.platform, COMMON_FFMPEG_PATHS["default"])
        path = next((p for p in candidates if os.path.exists(p)), None)
    if not path:
        raise SubprocessError("FFmpeg not found. Please install FFmpeg or set it in your PATH.")

    _cached_ffmpeg_path = path
    return path


def is_noise(line: str) -> bool:
    """True for ffmpeg progress chatter that should not reach the logs."""
    return any(pattern in line for pattern in NOISE_PATTERNS)


def build_mpegts_args(audio_bitrate: int) -> List[str]:
    """ffmpeg arguments for WebM on stdin to MPEG-TS on stdout."""
    aac_encoder = "aac_at" if sys.platform == "darwin" else "aac"
    return [
        "-hide_banner",
        "-loglevel", "warning",
        "-fflags", "nobuffer",
        "-flags", "low_delay",
        "-i", "pipe:0",
        "-ss", "1",
        "-c:v", "copy",
        "-c:a", aac_encoder,
        "-b:a", str(audio_bitrate),
        "-muxdelay", "0",
        "-muxpreload", "0",
        "-f", "mpegts",
        "-mpegts_flags", "initial_discontinuity",
        "-flush_packets", "1",
        "pipe:1",
    ]


def describe_exit(returncode: Optional[int]) -> Optional[SubprocessError]:
    """
    Classify an ffmpeg exit status.

    asyncio reports death by signal N as returncode -N. SIGTERM is what
    terminate() sends, so it is not an error; neither is a clean exit.
    """
    if returncode is None or returncode == 0:
        return None
    if returncode < 0:
        signum = -returncode
        if signum == signal.SIGTERM:
            return None
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        return SubprocessError(f"FFmpeg killed by signal {name}", signal_name=name)
    return SubprocessError(f"FFmpeg exited with code {returncode}", returncode=returncode)


class MpegTsTranscoder:
    """
    One ffmpeg process remuxing a single session's capture.

    Attributes:
        audio_bitrate: AAC bitrate in bits per second
        failed: Future resolved with a SubprocessError on unexpected exit

    Example:
        >>> transcoder = MpegTsTranscoder(256000, log=session.log)
        >>> await transcoder.start()
        >>> feeder = asyncio.create_task(transcoder.feed(capture.chunks()))
        >>> async for chunk in transcoder.output():
        ...     yield chunk
        >>> await transcoder.terminate()
    """

    def __init__(
        self,
        audio_bitrate: int,
        ffmpeg_path: Optional[str] = None,
        log: Optional[LoggerLike] = None,
    ) -> None:
        self.audio_bitrate = audio_bitrate
        self.ffmpeg_path = ffmpeg_path
        self.log = log or logger
        self.process: Optional[asyncio.subprocess.Process] = None
        self._shutting_down = False
        self._stderr_task: Optional[asyncio.Task] = None
        self._exit_task: Optional[asyncio.Task] = None
        self.failed: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> None:
        """
        Spawn ffmpeg with all three standard streams piped.

        Raises:
            SubprocessError: If ffmpeg is missing or cannot be spawned
        """
        cmd = [find_ffmpeg(self.ffmpeg_path)] + build_mpegts_args(self.audio_bitrate)
        self.log.debug(f"FFmpeg command: {' '.join(cmd)}")
        try:
            self.process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SubprocessError(f"Failed to start FFmpeg: {e}") from e

        self._stderr_task = asyncio.create_task(self._pump_stderr())
        self._exit_task = asyncio.create_task(self._watch_exit())

    async def _pump_stderr(self) -> None:
        stream = self.process.stderr
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                return
            if self._shutting_down:
                continue
            message = line.decode("utf-8", errors="replace").strip()
            if message and not is_noise(message):
                self.log.info(f"FFmpeg: {message}")

    async def _watch_exit(self) -> None:
        returncode = await self.process.wait()
        if self._shutting_down:
            return
        error = describe_exit(returncode)
        if error is not None and not self.failed.done():
            self.failed.set_result(error)

    async def feed(self, chunks: AsyncIterator[bytes]) -> None:
        """Copy capture chunks into ffmpeg's stdin until either side ends."""
        stdin = self.process.stdin
        try:
            async for chunk in chunks:
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            if not self._shutting_down:
                self.log.debug(f"FFmpeg stdin closed: {e}")
        finally:
            try:
                stdin.close()
            except Exception as e:
                self.log.debug(f"Ignoring FFmpeg stdin close error: {e}")

    async def output(self) -> AsyncIterator[bytes]:
        """Yield MPEG-TS data from ffmpeg's stdout until it closes."""
        stdout = self.process.stdout
        while True:
            data = await stdout.read(READ_SIZE)
            if not data:
                return
            yield data

    async def terminate(self, timeout: float = 5.0) -> None:
        """Stop ffmpeg with SIGTERM, escalating to SIGKILL. Idempotent."""
        if self._shutting_down:
            return
        self._shutting_down = True
        if self.running:
            process = self.process
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                self.log.warning("FFmpeg did not exit after SIGTERM, killing...")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass

        for task in (self._stderr_task, self._exit_task):
            if task is not None and not task.done():
                task.cancel()
