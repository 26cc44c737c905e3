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
Stream session state and teardown.

A StreamSession is created per stream request and owns everything that
request allocates: a page, a capture stream, an optional transcoder and
possibly an admission slot. Whatever ends the session (client disconnect,
capture error, ffmpeg exit, a failing pipeline stage) calls cleanup(), which
releases those resources in a fixed order exactly once.
"""

from __future__ import annotations

import asyncio
import secrets
from enum import IntEnum
from typing import TYPE_CHECKING, Optional

from playwright.async_api import Page

from tabtuner.exceptions import SessionClosedError
from tabtuner.utils.logger import SessionLogger, logger

if TYPE_CHECKING:
    from tabtuner.core.admission import AdmissionController
    from tabtuner.core.capture import CaptureStream
    from tabtuner.core.page_pool import PagePool
    from tabtuner.core.transcoder import MpegTsTranscoder


class SessionState(IntEnum):
    """Pipeline progress of a session. Values only ever increase."""

    INIT = 0
    PAGE_ACQUIRED = 1
    NAVIGATED = 2
    CAPTURE_STARTED = 3
    SLOT_ACQUIRED = 4
    CHANNEL_SELECTED = 5
    PLAYBACK_VERIFIED = 6
    PIPING = 7
    CLOSED = 8


def new_session_id(label: str) -> str:
    return f"{label}-{secrets.token_hex(3)}"


class StreamSession:
    """
    Resources and progress of one stream request.

    Attributes:
        id: Session identifier used as the log prefix
        state: Current SessionState
        page: Page owned by the session, once acquired
        capture: Capture stream, once started
        transcoder: ffmpeg wrapper when remuxing to MPEG-TS
        holds_slot: Whether an admission slot is held
        finished: Set once cleanup has begun
        failed: Future resolved with the first asynchronous failure

    Example:
        >>> session = StreamSession("espn", page_pool, admission)
        >>> try:
        ...     await pipeline.prepare(session, channel)
        ... except TabTunerError:
        ...     await session.cleanup("prepare failed")
        ...     raise
    """

    def __init__(
        self,
        label: str,
        page_pool: "PagePool",
        admission: "AdmissionController",
    ) -> None:
        self.id = new_session_id(label)
        self.label = label
        self.page_pool = page_pool
        self.admission = admission
        self.log = SessionLogger(logger, self.id)
        self.state = SessionState.INIT
        self.page: Optional[Page] = None
        self.capture: Optional["CaptureStream"] = None
        self.transcoder: Optional["MpegTsTranscoder"] = None
        self.holds_slot = False
        self.finished = False
        self.close_reason: Optional[str] = None
        self.failed: asyncio.Future = asyncio.get_running_loop().create_future()
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"StreamSession(id={self.id!r}, state={self.state.name})"

    def ensure_live(self) -> None:
        """
        Raises:
            SessionClosedError: If cleanup has already started
        """
        if self.finished:
            raise SessionClosedError(f"session {self.id} already closed")

    def advance(self, state: SessionState) -> None:
        """
        Move the session forward to ``state``.

        Raises:
            SessionClosedError: If cleanup has already started
            ValueError: On an attempt to move backwards
        """
        self.ensure_live()
        if state <= self.state:
            raise ValueError(f"cannot move from {self.state.name} to {state.name}")
        self.state = state
        self.log.debug(f"State -> {state.name}")

    def fail(self, error: BaseException) -> None:
        """Record an asynchronous failure. Only the first one is kept."""
        if self.finished or self.failed.done():
            return
        self.log.error(f"Stream failed: {error}")
        self.failed.set_result(error)

    def watch(self, failure: asyncio.Future) -> None:
        """Forward a collaborator's failure future into this session."""

        def _forward(fut: asyncio.Future) -> None:
            if not fut.cancelled() and fut.result() is not None:
                self.fail(fut.result())

        failure.add_done_callback(_forward)

    async def own_page(self, page: Page) -> None:
        """Take ownership of ``page``; closes it at once if already finished."""
        if self.finished:
            await self.page_pool.release(page, f"{self.id} closed before page was used")
            self.ensure_live()
        self.page = page

    async def own_capture(self, capture: "CaptureStream") -> None:
        if self.finished:
            await capture.destroy()
            self.ensure_live()
        self.capture = capture
        self.watch(capture.failed)

    async def own_transcoder(self, transcoder: "MpegTsTranscoder") -> None:
        if self.finished:
            await transcoder.terminate()
            self.ensure_live()
        self.transcoder = transcoder
        self.watch(transcoder.failed)

    def own_slot(self) -> None:
        """Record a granted admission slot, handing it back if already finished."""
        if self.finished:
            self.admission.release()
            self.ensure_live()
        self.holds_slot = True

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def cleanup(self, reason: str = "cleanup") -> None:
        """
        Release everything the session owns. Runs its body at most once.

        Order: transcoder, capture, admission slot, page. Each step is best
        effort; a failing step is logged and the rest still run.
        """
        # Set before the first await so concurrent callers return immediately
        if self.finished:
            return
        self.finished = True
        self.close_reason = reason
        self.log.info(f"Cleaning up: {reason}")

        if not self.failed.done():
            self.failed.set_result(None)

        transcoder, self.transcoder = self.transcoder, None
        if transcoder is not None:
            try:
                await transcoder.terminate()
            except Exception as e:
                self.log.warning(f"Error terminating FFmpeg: {e}")

        capture, self.capture = self.capture, None
        if capture is not None:
            try:
                await capture.destroy()
            except Exception as e:
                self.log.warning(f"Error destroying capture stream: {e}")

        if self.holds_slot:
            self.holds_slot = False
            try:
                self.admission.release()
            except Exception as e:
                self.log.warning(f"Error releasing stream slot: {e}")

        page, self.page = self.page, None
        if page is not None:
            try:
                await self.page_pool.release(page, f"{self.id} {reason}")
            except Exception as e:
                self.log.warning(f"Error releasing page: {e}")

        self.state = SessionState.CLOSED
        self._closed.set()
        self.log.info("Session closed")
