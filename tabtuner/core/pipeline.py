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
The per-request capture pipeline.

prepare() walks a StreamSession through its stages in order:

    Init -> PageAcquired -> Navigated -> CaptureStarted -> SlotAcquired
         -> ChannelSelected -> PlaybackVerified -> Piping

and body() then pipes the capture (through ffmpeg when remuxing) to the
HTTP response until something ends the session. Any stage failure raises a
TabTunerError after the session has been cleaned up, so the HTTP layer only
has to translate the error into a response.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from tabtuner.config import TunerConfig
from tabtuner.core.admission import AdmissionController
from tabtuner.core.capture import CaptureStream, start_capture
from tabtuner.core.channel_selector import ChannelSelector
from tabtuner.core.channels import Channel
from tabtuner.core.page import PageController
from tabtuner.core.page_pool import PagePool
from tabtuner.core.session import SessionState, StreamSession
from tabtuner.core.transcoder import MpegTsTranscoder
from tabtuner.exceptions import AdmissionTimeout, ChannelSelectionError, TabTunerError

CaptureFactory = Callable[..., Awaitable[CaptureStream]]
TranscoderFactory = Callable[..., MpegTsTranscoder]

ADMISSION_TIMEOUT_MESSAGE = "Too many concurrent streams (timed out waiting for a slot)"


class CapturePipeline:
    """
    Builds and runs stream sessions.

    The capture and transcoder factories are the seams to the browser's
    tab capture and to ffmpeg; tests replace them with fakes.

    Example:
        >>> pipeline = CapturePipeline(config, page_pool, admission, selector)
        >>> session = pipeline.new_session("espn")
        >>> await pipeline.prepare(session, channel=lineup.get("espn"))
        >>> return StreamingResponse(pipeline.body(session), media_type=pipeline.media_type)
    """

    def __init__(
        self,
        config: TunerConfig,
        page_pool: PagePool,
        admission: AdmissionController,
        selector: Optional[ChannelSelector] = None,
        capture_factory: CaptureFactory = start_capture,
        transcoder_factory: TranscoderFactory = MpegTsTranscoder,
    ) -> None:
        self.config = config
        self.page_pool = page_pool
        self.admission = admission
        self.selector = selector or ChannelSelector(
            wait_timeout=config.tile_wait_timeout, settle_delay=config.settle_delay
        )
        self.capture_factory = capture_factory
        self.transcoder_factory = transcoder_factory

    @property
    def media_type(self) -> str:
        return self.config.output_mime_type

    def new_session(self, label: str) -> StreamSession:
        return StreamSession(label, self.page_pool, self.admission)

    async def prepare(
        self,
        session: StreamSession,
        channel: Optional[Channel] = None,
        url: Optional[str] = None,
    ) -> None:
        """
        Run every stage up to Piping.

        With ``channel`` the channel's page is opened and its tile clicked;
        with only ``url`` the page is captured as-is (no selection and no
        playback check).

        Raises:
            TabTunerError: The failing stage's error; the session has been
                cleaned up by then
        """
        target_url = channel.url if channel is not None else url
        if not target_url:
            raise ValueError("prepare() needs a channel or a url")
        try:
            await self._run_stages(session, target_url, channel)
        except asyncio.CancelledError:
            await asyncio.shield(session.cleanup("request cancelled"))
            raise
        except TabTunerError as e:
            session.log.error(f"Stream setup failed: {e.message}")
            await session.cleanup(type(e).__name__)
            raise
        except Exception as e:
            session.log.error(f"Unexpected stream setup error: {e}", exc_info=True)
            await session.cleanup("unexpected error")
            raise TabTunerError(str(e)) from e

    async def _run_stages(self, session: StreamSession, url: str, channel: Optional[Channel]) -> None:
        config = self.config

        page = await self.page_pool.acquire()
        await session.own_page(page)
        session.advance(SessionState.PAGE_ACQUIRED)

        controller = PageController(page, log=session.log)
        await controller.ensure_active()
        await controller.goto(url, timeout=config.navigation_timeout)
        await controller.set_window_bounds(config)
        await controller.set_view_scale(config.view_scale)
        await asyncio.sleep(config.settle_delay)
        session.advance(SessionState.NAVIGATED)

        capture = await self.capture_factory(page, config.encoding, log=session.log)
        await session.own_capture(capture)
        session.advance(SessionState.CAPTURE_STARTED)

        admitted = await self.admission.try_admit(config.queue_wait_seconds)
        if not admitted:
            session.log.warning(f"[Streams] {ADMISSION_TIMEOUT_MESSAGE}")
            raise AdmissionTimeout(ADMISSION_TIMEOUT_MESSAGE)
        session.own_slot()
        session.advance(SessionState.SLOT_ACQUIRED)
        session.log.info(f"[Streams] Active: {self.admission.active}/{self.admission.capacity}")

        if channel is not None:
            result = await self.selector.select(page, channel.slug, log=session.log)
            if not result.success:
                raise ChannelSelectionError(f"Failed to select channel: {result.reason}")
            session.advance(SessionState.CHANNEL_SELECTED)

            await controller.wait_for_playback(timeout=config.playback_timeout)
            session.log.info("Playback started")
            await self._polish(controller, session)
            session.advance(SessionState.PLAYBACK_VERIFIED)

        if config.transcoding:
            transcoder = self.transcoder_factory(
                config.audio_bitrate, ffmpeg_path=config.ffmpeg_path, log=session.log
            )
            await transcoder.start()
            await session.own_transcoder(transcoder)

        # Capture or ffmpeg may already have died during setup
        if session.failed.done() and session.failed.result() is not None:
            raise session.failed.result()
        session.advance(SessionState.PIPING)

    async def _polish(self, controller: PageController, session: StreamSession) -> None:
        """Fullscreen and minimize; failures are only logged."""
        try:
            await controller.request_fullscreen()
            await controller.verify_fullscreen()
        except Exception as e:
            session.log.info(f"Fullscreen failed: {e}")
        try:
            await controller.minimize_window()
        except Exception as e:
            session.log.info(f"Minimize failed: {e}")

    async def body(self, session: StreamSession) -> AsyncIterator[bytes]:
        """
        Stream media bytes for a prepared session.

        Ends when the source runs dry or the session fails; either way the
        session is cleaned up on exit, including when the consumer stops
        iterating because the client went away.
        """
        reason = "client disconnected"
        feeder: Optional[asyncio.Task] = None
        next_chunk: Optional[asyncio.Future] = None
        try:
            if session.finished:
                reason = session.close_reason or "session closed"
                return
            if session.transcoder is not None:
                feeder = asyncio.create_task(session.transcoder.feed(session.capture.chunks()))
                source = session.transcoder.output()
            else:
                source = session.capture.chunks()

            iterator = source.__aiter__()
            while True:
                next_chunk = asyncio.ensure_future(iterator.__anext__())
                await asyncio.wait(
                    {next_chunk, session.failed}, return_when=asyncio.FIRST_COMPLETED
                )
                # A failure wins over a chunk that arrived in the same pass
                if session.failed.done():
                    next_chunk.cancel()
                    error = session.failed.result()
                    reason = f"stream error: {error}" if error is not None else "session closed"
                    break
                try:
                    chunk = next_chunk.result()
                except StopAsyncIteration:
                    reason = "stream ended"
                    break
                yield chunk
        finally:
            for task in (next_chunk, feeder):
                if task is not None and not task.done():
                    task.cancel()
            await asyncio.shield(session.cleanup(reason))
