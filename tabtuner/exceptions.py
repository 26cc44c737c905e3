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


"""Custom exceptions for TabTuner.

This module defines the exception hierarchy used throughout TabTuner.
All exceptions inherit from TabTunerError, which carries the HTTP status
code a stream request should be answered with when the error ends a session
before the response headers are sent.

Exception Hierarchy:
    TabTunerError (base, 500)
    ├── BrowserError - Shared browser instance errors
    │   └── LaunchError - Browser executable missing or failed to start
    ├── PageError - Page allocation and interaction errors
    ├── NavigationError - Navigation to the channel page failed
    ├── CaptureStartError - Tab capture could not be started
    ├── ChannelSelectionError - Channel tile could not be activated
    ├── PlaybackTimeoutError - Video never started playing
    ├── AdmissionTimeout - No stream slot freed up in time (429)
    ├── StreamingError - Failures detected after piping started
    │   ├── SubprocessError - Transcoder exited or was killed unexpectedly
    │   └── StreamError - Capture byte stream failed
    ├── SessionClosedError - Stage attempted after cleanup already ran
    ├── ChannelNotFoundError - Unknown channel key (404)
    └── ConfigurationError - Invalid configuration

Example:
    try:
        await pipeline.prepare(session, target)
    except AdmissionTimeout:
        # Transient load, the DVR may retry
        pass
    except TabTunerError as e:
        return PlainTextResponse(str(e), status_code=e.status_code)
"""

from typing import Iterable, Optional


class TabTunerError(Exception):
    """Base exception for all TabTuner errors.

    Attributes:
        message: Error message describing what went wrong
        status_code: HTTP status used when the error is reported to a client
    """

    status_code: int = 500

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BrowserError(TabTunerError):
    """Exception raised for errors of the shared browser instance.

    Examples:
        - Browser process crashed
        - Browser context closed while a page was being created
    """
    pass


class LaunchError(BrowserError):
    """Exception raised when the browser cannot be launched.

    Fatal to the request that triggered the launch, never to the process:
    the next acquisition attempts a fresh launch.

    Examples:
        - No Chrome/Chromium executable found
        - Executable found but exited during startup
    """
    pass


class PageError(TabTunerError):
    """Exception raised when a page cannot be created or prepared."""
    pass


class NavigationError(TabTunerError):
    """Exception raised when navigating to the channel page fails.

    Examples:
        - URL unreachable
        - Navigation timeout
        - Window sizing over CDP failed
    """
    pass


class CaptureStartError(TabTunerError):
    """Exception raised when tab capture cannot be started.

    Examples:
        - getDisplayMedia rejected by the browser
        - MediaRecorder does not support the requested mime type
    """
    pass


class ChannelSelectionError(TabTunerError):
    """Exception raised when the channel tile cannot be activated.

    The message carries the selector's reason, e.g. that no tile image
    matched the channel slug.
    """
    pass


class PlaybackTimeoutError(TabTunerError):
    """Exception raised when the video element never starts playing."""
    pass


class AdmissionTimeout(TabTunerError):
    """Exception raised when no stream slot frees up within the wait budget.

    Reported as 429 since it signals transient load rather than a defect.
    """

    status_code = 429


class StreamingError(TabTunerError):
    """Base exception for failures detected while media is being piped.

    These are usually raised after the response headers went out, so they
    cannot change the response status; they only trigger cleanup.
    """
    pass


class SubprocessError(StreamingError):
    """Exception raised when the transcoder cannot start or dies unexpectedly.

    Attributes:
        returncode: Process exit code, if the process exited
        signal_name: Name of the terminating signal, if it was killed
    """

    def __init__(
        self,
        message: str = "",
        returncode: Optional[int] = None,
        signal_name: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.signal_name = signal_name


class StreamError(StreamingError):
    """Exception raised when the capture byte stream fails."""
    pass


class SessionClosedError(TabTunerError):
    """Exception raised when a pipeline stage runs after cleanup started.

    Happens when a client disconnects or a collaborator fails while the
    pipeline is still preparing the stream.
    """
    pass


class ChannelNotFoundError(TabTunerError):
    """Exception raised for an unknown channel key.

    Attributes:
        key: The requested key
        available: Keys that would have been accepted
    """

    status_code = 404

    def __init__(self, key: str, available: Iterable[str] = ()) -> None:
        self.key = key
        self.available = list(available)
        super().__init__(
            "Channel not found. Available channels: " + ", ".join(self.available)
        )


class ConfigurationError(TabTunerError):
    """Exception raised for configuration errors.

    Examples:
        - Non-positive resolution or bitrate
        - Duplicate guide numbers in the channel lineup
        - Unknown output format
    """
    pass
