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
Runtime configuration for TabTuner.

All settings live in a single TunerConfig dataclass. Defaults match the
values DVR clients have been tested against (1080p, 8 Mbps video, 256 kbps
audio, two tuners). Every field can be overridden from the environment via
TunerConfig.from_env() using TABTUNER_* variables, and from the command line
by the serve command.

Example:
    >>> config = TunerConfig(width=1280, height=720, max_streams=1)
    >>> config.output_mime_type
    'video/mp2t'
"""

from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from tabtuner.exceptions import ConfigurationError


class OutputFormat(str, Enum):
    """Container delivered to the HTTP client."""

    MPEGTS = "mpegts"   # WebM capture remuxed by ffmpeg
    WEBM = "webm"       # Raw MediaRecorder output


def default_data_dir() -> Path:
    """Platform specific directory holding the persistent browser profile."""
    if sys.platform == "darwin":
        home = os.environ.get("HOME") or os.getcwd()
        return Path(home) / "Library" / "Application Support" / "ChromeCapture"
    if sys.platform == "win32":
        profile = os.environ.get("USERPROFILE") or os.getcwd()
        return Path(profile) / "AppData" / "Local" / "ChromeCapture"
    return Path(os.getcwd())


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EncodingParams:
    """Capture encoder settings handed to the in-page MediaRecorder."""

    video_bits_per_second: int
    audio_bits_per_second: int
    min_frame_rate: int
    max_frame_rate: int
    mime_type: str
    width: int
    height: int

    def to_capture_options(self) -> Dict[str, Any]:
        """Options object passed to the page-side capture script."""
        return {
            "videoBitsPerSecond": self.video_bits_per_second,
            "audioBitsPerSecond": self.audio_bits_per_second,
            "mimeType": self.mime_type,
            "width": self.width,
            "height": self.height,
            "minFrameRate": self.min_frame_rate,
            "maxFrameRate": self.max_frame_rate,
        }


@dataclass
class TunerConfig:
    """Configuration for the tuner service.

    Attributes:
        video_bitrate: Capture video bitrate in bits per second
        audio_bitrate: Capture (and transcoded AAC) audio bitrate in bits per second
        min_frame_rate: Minimum capture frame rate
        max_frame_rate: Maximum capture frame rate
        width: Capture width in pixels
        height: Capture height in pixels
        mime_type: MediaRecorder container/codec
        output_format: Container sent to clients
        minimize_window: Minimize the browser window right after sizing it
        host: Bind address of both listeners
        port: Primary HTTP port
        discovery_port: Conventional HDHomeRun port for the secondary listener
        max_streams: Number of concurrently admitted stream sessions
        queue_wait_seconds: How long a request waits for a free slot
        navigation_timeout: Page navigation timeout in seconds
        playback_timeout: Playback verification timeout in seconds
        tile_wait_timeout: How long to wait for the channel grid to render
        view_scale: Page scale applied after navigation
        settle_delay: Pause used to let UI transitions settle, in seconds
        window_padding: Extra window width/height around the capture area
        data_dir: Directory holding the persistent browser profile
        chrome_bin: Explicit browser executable path
        ffmpeg_path: Explicit ffmpeg path
        docker: Add container friendly GPU/sandbox flags to the browser
        device_id: HDHomeRun device id
        friendly_name: HDHomeRun friendly name
        tuner_count: Tuner count advertised to DVR clients
        channels_file: Optional JSON lineup replacing the built-in one
    """

    video_bitrate: int = 8_000_000
    audio_bitrate: int = 256_000
    min_frame_rate: int = 50
    max_frame_rate: int = 50
    width: int = 1920
    height: int = 1080
    mime_type: str = "video/webm;codecs=H264"
    output_format: OutputFormat = OutputFormat.MPEGTS
    minimize_window: bool = False

    host: str = "0.0.0.0"
    port: int = 5589
    discovery_port: int = 5004

    max_streams: int = 2
    queue_wait_seconds: float = 5.0

    navigation_timeout: float = 60.0
    playback_timeout: float = 60.0
    tile_wait_timeout: float = 30.0
    view_scale: float = 0.25
    settle_delay: float = 0.2
    window_padding: tuple = (80, 160)

    data_dir: Path = field(default_factory=default_data_dir)
    chrome_bin: Optional[str] = None
    ffmpeg_path: Optional[str] = None
    docker: bool = False

    device_id: str = "KAYO1234"
    friendly_name: str = "Kayo Sports Tuner"
    tuner_count: int = 2

    channels_file: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.output_format, OutputFormat):
            try:
                self.output_format = OutputFormat(str(self.output_format).lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unsupported output format: {self.output_format} "
                    f"(expected one of: {', '.join(f.value for f in OutputFormat)})"
                )
        self.data_dir = Path(self.data_dir)
        self.validate()

    def validate(self) -> None:
        """Reject settings the pipeline cannot work with."""
        for name in ("video_bitrate", "audio_bitrate", "width", "height", "min_frame_rate"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_frame_rate < self.min_frame_rate:
            raise ConfigurationError("max_frame_rate must not be lower than min_frame_rate")
        if self.max_streams < 1:
            raise ConfigurationError("max_streams must be at least 1")
        if self.queue_wait_seconds < 0:
            raise ConfigurationError("queue_wait_seconds must not be negative")
        if not math.isfinite(self.view_scale):
            raise ConfigurationError("view_scale must be a finite number")

    @property
    def profile_dir(self) -> Path:
        """Browser user data directory, kept across restarts for logins."""
        return self.data_dir / "chromedata"

    @property
    def transcoding(self) -> bool:
        return self.output_format == OutputFormat.MPEGTS

    @property
    def output_mime_type(self) -> str:
        """Content type of stream responses."""
        return "video/mp2t" if self.transcoding else self.mime_type

    @property
    def discovery_enabled(self) -> bool:
        return self.discovery_port != self.port

    @property
    def encoding(self) -> EncodingParams:
        return EncodingParams(
            video_bits_per_second=self.video_bitrate,
            audio_bits_per_second=self.audio_bitrate,
            min_frame_rate=self.min_frame_rate,
            max_frame_rate=self.max_frame_rate,
            mime_type=self.mime_type,
            width=self.width,
            height=self.height,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> "TunerConfig":
        """Create configuration from TABTUNER_* environment variables.

        Keyword arguments take precedence over the environment.
        """
        env = os.environ
        values: Dict[str, Any] = {}

        int_fields = {
            "TABTUNER_VIDEO_BITRATE": "video_bitrate",
            "TABTUNER_AUDIO_BITRATE": "audio_bitrate",
            "TABTUNER_FRAME_RATE": "min_frame_rate",
            "TABTUNER_WIDTH": "width",
            "TABTUNER_HEIGHT": "height",
            "TABTUNER_PORT": "port",
            "TABTUNER_DISCOVERY_PORT": "discovery_port",
            "TABTUNER_MAX_STREAMS": "max_streams",
            "TABTUNER_TUNER_COUNT": "tuner_count",
        }
        for var, name in int_fields.items():
            if env.get(var):
                try:
                    values[name] = int(env[var])
                except ValueError:
                    raise ConfigurationError(f"{var} must be an integer, got {env[var]!r}")

        if env.get("TABTUNER_QUEUE_WAIT"):
            try:
                values["queue_wait_seconds"] = float(env["TABTUNER_QUEUE_WAIT"])
            except ValueError:
                raise ConfigurationError(
                    f"TABTUNER_QUEUE_WAIT must be a number, got {env['TABTUNER_QUEUE_WAIT']!r}"
                )
        if env.get("TABTUNER_OUTPUT_FORMAT"):
            values["output_format"] = env["TABTUNER_OUTPUT_FORMAT"]
        if env.get("TABTUNER_MINIMIZE_WINDOW"):
            values["minimize_window"] = _env_bool(env["TABTUNER_MINIMIZE_WINDOW"])
        if env.get("TABTUNER_HOST"):
            values["host"] = env["TABTUNER_HOST"]
        if env.get("TABTUNER_DATA_DIR"):
            values["data_dir"] = Path(env["TABTUNER_DATA_DIR"])
        if env.get("TABTUNER_CHANNELS_FILE"):
            values["channels_file"] = env["TABTUNER_CHANNELS_FILE"]
        if env.get("TABTUNER_DEVICE_ID"):
            values["device_id"] = env["TABTUNER_DEVICE_ID"]
        if env.get("TABTUNER_FRIENDLY_NAME"):
            values["friendly_name"] = env["TABTUNER_FRIENDLY_NAME"]
        if env.get("TABTUNER_FFMPEG_PATH"):
            values["ffmpeg_path"] = env["TABTUNER_FFMPEG_PATH"]

        chrome_bin = env.get("TABTUNER_CHROME_BIN") or env.get("CHROME_BIN")
        if chrome_bin:
            values["chrome_bin"] = chrome_bin
        if env.get("DOCKER"):
            values["docker"] = True

        # Frame rate floor raises the ceiling along with it
        if "min_frame_rate" in values:
            values["max_frame_rate"] = max(values["min_frame_rate"], cls.max_frame_rate)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
