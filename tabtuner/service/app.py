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
FastAPI applications for TabTuner.

create_app() builds the primary listener: tuner documents, the M3U
playlist, the index page and the two stream endpoints. create_discovery_app()
builds the secondary listener on the conventional HDHomeRun port from the
same named handlers, plus a redirect of stream requests to the primary port.

Both apps share one TunerRuntime (browser, page pool, admission controller,
pipeline) through ``app.state.runtime``.

Example Usage:
    ```bash
    tabtuner serve --port 5589 --output-format mpegts
    curl -o espn.ts http://localhost:5589/stream/espn
    ```
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response, StreamingResponse

from tabtuner import __version__
from tabtuner.config import TunerConfig
from tabtuner.core.admission import AdmissionController
from tabtuner.core.browser import BrowserManager
from tabtuner.core.channels import Channel, ChannelLineup, default_lineup, load_channels
from tabtuner.core.page_pool import PagePool
from tabtuner.core.pipeline import CapturePipeline
from tabtuner.core.session import StreamSession
from tabtuner.core.transcoder import find_ffmpeg
from tabtuner.exceptions import TabTunerError
from tabtuner.service import tuner
from tabtuner.utils.logger import logger

DISCONNECT_POLL_INTERVAL = 0.5


@dataclass
class TunerRuntime:
    """Process-wide collaborators shared by every request."""

    config: TunerConfig
    lineup: ChannelLineup
    browser: BrowserManager
    page_pool: PagePool
    admission: AdmissionController
    pipeline: CapturePipeline

    @classmethod
    def build(cls, config: TunerConfig, lineup: Optional[ChannelLineup] = None) -> "TunerRuntime":
        if lineup is None:
            lineup = load_channels(config.channels_file) if config.channels_file else default_lineup()
        browser = BrowserManager(config)
        page_pool = PagePool(browser, settle_delay=config.settle_delay)
        admission = AdmissionController(capacity=config.max_streams)
        pipeline = CapturePipeline(config, page_pool, admission)
        return cls(config, lineup, browser, page_pool, admission, pipeline)

    async def close(self) -> None:
        await self.browser.close()


class SessionStreamingResponse(StreamingResponse):
    """StreamingResponse that always cleans its session up, even if the body never starts."""

    def __init__(self, session: StreamSession, content: Any, **kwargs: Any) -> None:
        super().__init__(content, **kwargs)
        self.session = session

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await asyncio.shield(self.session.cleanup("response closed"))


def error_response(exc: TabTunerError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def _watch_disconnect(request: Request, session: StreamSession) -> None:
    while not session.finished:
        if await request.is_disconnected():
            await session.cleanup("client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def start_stream(
    request: Request,
    label: str,
    channel: Optional[Channel] = None,
    url: Optional[str] = None,
) -> Response:
    """Prepare a session and hand its body to a streaming response."""
    runtime: TunerRuntime = tuner.runtime_of(request)
    pipeline = runtime.pipeline
    session = pipeline.new_session(label)
    session.log.info(f"Stream requested: {channel.name if channel else url}")

    watcher = asyncio.create_task(_watch_disconnect(request, session))
    try:
        await pipeline.prepare(session, channel=channel, url=url)
    except TabTunerError as e:
        return error_response(e)
    finally:
        watcher.cancel()

    return SessionStreamingResponse(
        session,
        pipeline.body(session),
        media_type=pipeline.media_type,
        headers={"Cache-Control": "no-store", "Connection": "keep-alive"},
    )


async def stream_channel(key: str, request: Request) -> Response:
    """Stream a lineup channel; 404 for unknown keys."""
    runtime: TunerRuntime = tuner.runtime_of(request)
    try:
        channel = runtime.lineup.require(key)
    except TabTunerError as e:
        logger.info(f"Unknown channel requested: {key}")
        return error_response(e)
    return await start_stream(request, channel.key, channel=channel)


async def stream_url(request: Request, url: Optional[str] = None) -> Response:
    """Capture an arbitrary page without channel selection."""
    if not url:
        return PlainTextResponse("Missing url parameter", status_code=400)
    return await start_stream(request, "url", url=url)


def _register_tuner_routes(app: FastAPI) -> None:
    for path, handler, methods in tuner.DISCOVERY_ROUTES:
        app.add_api_route(path, handler, methods=methods, tags=["Tuner"])


async def tabtuner_error_handler(request: Request, exc: TabTunerError) -> PlainTextResponse:
    logger.error(f"Request failed: {exc}")
    return error_response(exc)


def create_app(
    config: Optional[TunerConfig] = None,
    lineup: Optional[ChannelLineup] = None,
    runtime: Optional[TunerRuntime] = None,
) -> FastAPI:
    """
    Build the primary application.

    Args:
        config: Tuner configuration (defaults to TunerConfig.from_env())
        lineup: Channel lineup (defaults to the configured or built-in one)
        runtime: Pre-built runtime, shared with the discovery app

    Returns:
        FastAPI application; its lifespan closes the browser on shutdown
    """
    if runtime is None:
        runtime = TunerRuntime.build(config or TunerConfig.from_env(), lineup)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = runtime.config
        logger.info("Starting TabTuner service...")
        if cfg.transcoding:
            try:
                logger.info(f"[FFmpeg] Using {find_ffmpeg(cfg.ffmpeg_path)}")
            except TabTunerError as e:
                logger.warning(f"[FFmpeg] {e.message}")
        logger.info(f"[Streams] Max: {cfg.max_streams} QueueWait: {cfg.queue_wait_seconds}s")
        logger.info(f"[Output] Format: {cfg.output_format.value}")
        logger.info(f"[Channels] Available: {len(runtime.lineup)}")

        yield

        logger.info("Shutting down TabTuner service...")
        await runtime.close()
        logger.info("TabTuner service shut down")

    app = FastAPI(
        title="TabTuner",
        description="Browser tabs served as a virtual HDHomeRun tuner",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.add_exception_handler(TabTunerError, tabtuner_error_handler)

    app.add_api_route("/", tuner.index, methods=["GET"], include_in_schema=False)
    _register_tuner_routes(app)
    app.add_api_route("/playlist.m3u", tuner.playlist, methods=["GET"], tags=["Tuner"])
    app.add_api_route("/stream/{key}", stream_channel, methods=["GET"], tags=["Streams"])
    app.add_api_route("/stream", stream_url, methods=["GET"], tags=["Streams"])
    return app


def create_discovery_app(runtime: TunerRuntime) -> FastAPI:
    """
    Build the secondary listener for the conventional discovery port.

    Stream requests are redirected to the primary port on the same host.
    """
    primary_port = runtime.config.port

    async def redirect_stream(key: str, request: Request) -> RedirectResponse:
        target = f"{request.url.scheme}://{request.url.hostname}:{primary_port}/stream/{key}"
        return RedirectResponse(target, status_code=302)

    app = FastAPI(title="TabTuner discovery", version=__version__, docs_url=None, redoc_url=None)
    app.state.runtime = runtime
    _register_tuner_routes(app)
    app.add_api_route("/stream/{key}", redirect_stream, methods=["GET"], tags=["Streams"])
    return app
