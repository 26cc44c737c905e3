# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures: mocked Playwright objects and fake media collaborators."""

import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from tabtuner.config import OutputFormat, TunerConfig


def make_page(url: str = "about:blank") -> MagicMock:
    """Mock Playwright page with the async methods the engine uses."""
    page = MagicMock()
    page.url = url
    page.goto = AsyncMock()
    page.close = AsyncMock()
    page.bring_to_front = AsyncMock()
    page.evaluate = AsyncMock(return_value=None)
    page.expose_function = AsyncMock()
    page.add_init_script = AsyncMock()
    page.add_style_tag = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.mouse = MagicMock()
    page.mouse.click = AsyncMock()

    cdp = MagicMock()
    cdp.send = AsyncMock(return_value={"windowId": 1})
    page.cdp = cdp
    page.context = MagicMock()
    page.context.new_cdp_session = AsyncMock(return_value=cdp)
    return page


@pytest.fixture
def mock_page():
    return make_page()


@pytest.fixture
def mock_context():
    """Mock persistent context handing out a fresh page per new_page() call."""
    context = MagicMock()
    context.pages_created = []

    async def new_page():
        page = make_page()
        context.pages_created.append(page)
        return page

    context.new_page = AsyncMock(side_effect=new_page)
    context.close = AsyncMock()
    context.on = MagicMock()
    context.browser = MagicMock()
    context.browser.on = MagicMock()
    return context


@pytest.fixture
def mock_playwright(mock_context):
    playwright = MagicMock()
    playwright.chromium.launch_persistent_context = AsyncMock(return_value=mock_context)
    playwright.stop = AsyncMock()
    return playwright


@pytest.fixture
def config(tmp_path):
    """Fast configuration: raw WebM output, no settle delays."""
    return TunerConfig(
        data_dir=tmp_path,
        output_format=OutputFormat.WEBM,
        settle_delay=0,
        queue_wait_seconds=0.2,
        chrome_bin="/usr/bin/chromium",
    )


class FakeCapture:
    """Stands in for CaptureStream: a queue of canned chunks."""

    def __init__(self, chunks=(b"chunk-1", b"chunk-2"), end: bool = False):
        self.failed = asyncio.get_running_loop().create_future()
        self._queue: asyncio.Queue = asyncio.Queue()
        for chunk in chunks:
            self._queue.put_nowait(chunk)
        if end:
            self._queue.put_nowait(None)
        self.destroy_calls = 0

    @property
    def destroyed(self) -> bool:
        return self.destroy_calls > 0

    async def chunks(self):
        while True:
            data = await self._queue.get()
            if data is None:
                return
            yield data

    async def destroy(self) -> None:
        self.destroy_calls += 1
        self._queue.put_nowait(None)


class FakeTranscoder:
    """Stands in for MpegTsTranscoder: echoes fed chunks with a prefix."""

    instances: List["FakeTranscoder"] = []

    def __init__(self, audio_bitrate: int, ffmpeg_path: Optional[str] = None, log=None):
        self.audio_bitrate = audio_bitrate
        self.failed = asyncio.get_running_loop().create_future()
        self._out: asyncio.Queue = asyncio.Queue()
        self.started = False
        self.terminate_calls = 0
        FakeTranscoder.instances.append(self)

    async def start(self) -> None:
        self.started = True

    async def feed(self, chunks) -> None:
        async for chunk in chunks:
            self._out.put_nowait(b"ts:" + chunk)
        self._out.put_nowait(None)

    async def output(self):
        while True:
            data = await self._out.get()
            if data is None:
                return
            yield data

    async def terminate(self) -> None:
        self.terminate_calls += 1
        self._out.put_nowait(None)


@pytest.fixture
def capture_factory():
    """Async capture factory recording every FakeCapture it creates."""
    created: List[FakeCapture] = []

    async def factory(page, encoding, log=None):
        capture = FakeCapture()
        created.append(capture)
        return capture

    factory.created = created
    return factory


@pytest.fixture
def transcoder_factory():
    FakeTranscoder.instances = []
    return FakeTranscoder


@pytest.fixture
def fake_capture_cls():
    return FakeCapture
