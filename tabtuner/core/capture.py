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
Tab capture for TabTuner.

The page records itself: a getDisplayMedia() stream of the current tab is
fed to a MediaRecorder, and every encoded chunk is handed to Python through
a function exposed on the page. On the Python side the chunks land in an
asyncio.Queue and are read back as an async byte stream.

Failures inside the page (recorder errors, the capture track ending) resolve
the stream's ``failed`` future with a StreamError.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import AsyncIterator, Optional, Union

from playwright.async_api import Page

from tabtuner.config import EncodingParams
from tabtuner.exceptions import CaptureStartError, StreamError
from tabtuner.utils.logger import logger

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

CHUNK_BINDING = "__tabtunerCaptureChunk"
ERROR_BINDING = "__tabtunerCaptureError"

# Milliseconds of media per MediaRecorder chunk
TIMESLICE_MS = 20

START_CAPTURE = """async (opts) => {
    const stream = await navigator.mediaDevices.getDisplayMedia({
        video: {
            width: { min: opts.width, max: opts.width },
            height: { min: opts.height, max: opts.height },
            frameRate: { min: opts.minFrameRate, max: opts.maxFrameRate },
        },
        audio: true,
        preferCurrentTab: true,
        selfBrowserSurface: 'include',
    });
    const recorder = new MediaRecorder(stream, {
        mimeType: opts.mimeType,
        videoBitsPerSecond: opts.videoBitsPerSecond,
        audioBitsPerSecond: opts.audioBitsPerSecond,
    });
    const toBase64 = (buffer) => {
        const bytes = new Uint8Array(buffer);
        let binary = '';
        for (let i = 0; i < bytes.length; i += 0x8000) {
            binary += String.fromCharCode.apply(null, bytes.subarray(i, i + 0x8000));
        }
        return btoa(binary);
    };
    recorder.ondataavailable = async (event) => {
        if (event.data && event.data.size > 0) {
            window.%(chunk)s(toBase64(await event.data.arrayBuffer()));
        }
    };
    recorder.onerror = (event) => {
        window.%(error)s(String((event.error && event.error.message) || event.error || 'recorder error'));
    };
    stream.getTracks().forEach((track) => {
        track.onended = () => {
            if (!window.__tabtunerCaptureStopping) window.%(error)s('capture track ended: ' + track.kind);
        };
    });
    window.__tabtunerCaptureStopping = false;
    window.__tabtunerCapture = { stream: stream, recorder: recorder };
    recorder.start(%(timeslice)d);
    return recorder.mimeType;
}""" % {"chunk": CHUNK_BINDING, "error": ERROR_BINDING, "timeslice": TIMESLICE_MS}

STOP_CAPTURE = """() => {
    const capture = window.__tabtunerCapture;
    if (!capture) return;
    window.__tabtunerCaptureStopping = true;
    try { if (capture.recorder.state !== 'inactive') capture.recorder.stop(); } catch (e) {}
    capture.stream.getTracks().forEach((track) => track.stop());
    window.__tabtunerCapture = null;
}"""


class CaptureStream:
    """
    Audio/video byte stream recorded from one page.

    Attributes:
        page: Page being captured
        encoding: Resolution, bitrate and frame-rate bounds
        mime_type: Container actually chosen by the recorder
        failed: Future resolved with a StreamError when capture breaks

    Chunks recorded before the consumer attaches (while the channel is
    selected and playback verified) are buffered without limit unless
    ``max_buffered_chunks`` is given.

    Example:
        >>> capture = CaptureStream(page, config.encoding)
        >>> await capture.start()
        >>> async for chunk in capture.chunks():
        ...     sink.write(chunk)
        >>> await capture.destroy()
    """

    def __init__(
        self,
        page: Page,
        encoding: EncodingParams,
        log: Optional[LoggerLike] = None,
        max_buffered_chunks: Optional[int] = None,
    ) -> None:
        self.page = page
        self.encoding = encoding
        self.log = log or logger
        self.mime_type = encoding.mime_type
        self.bytes_received = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_buffered_chunks or 0)
        self._destroyed = False
        self.failed: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    async def start(self) -> None:
        """
        Start recording the page.

        Raises:
            CaptureStartError: If bindings or the recorder cannot be set up
        """
        try:
            await self.page.expose_function(CHUNK_BINDING, self._on_chunk)
            await self.page.expose_function(ERROR_BINDING, self._on_error)
            mime_type = await self.page.evaluate(START_CAPTURE, self.encoding.to_capture_options())
        except Exception as e:
            raise CaptureStartError(f"failed to start capture: {e}") from e
        if mime_type:
            self.mime_type = mime_type

    def _on_chunk(self, payload: str) -> None:
        if self._destroyed:
            return
        data = base64.b64decode(payload)
        self.bytes_received += len(data)
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            self.fail(StreamError("capture consumer stalled, buffer overflow"))

    def _on_error(self, message: str) -> None:
        self.fail(StreamError(f"capture stream error: {message}"))

    def fail(self, error: Exception) -> None:
        """Record the first failure; later ones are ignored."""
        if self._destroyed or self.failed.done():
            return
        self.log.info(f"Stream error: {error}")
        self.failed.set_result(error)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield captured chunks until the stream is destroyed."""
        while True:
            data = await self._queue.get()
            if data is None:
                return
            yield data

    async def destroy(self) -> None:
        """Stop recording and end chunks(). Idempotent, never raises."""
        if self._destroyed:
            return
        self._destroyed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Make room for the end marker
            self._queue.get_nowait()
            self._queue.put_nowait(None)
        try:
            await self.page.evaluate(STOP_CAPTURE)
        except Exception as e:
            self.log.debug(f"Ignoring capture stop error: {e}")


async def start_capture(
    page: Page,
    encoding: EncodingParams,
    log: Optional[LoggerLike] = None,
) -> CaptureStream:
    """Create and start a CaptureStream for ``page``."""
    capture = CaptureStream(page, encoding, log=log)
    await capture.start()
    return capture
