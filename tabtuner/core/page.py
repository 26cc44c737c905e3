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
Page control for TabTuner.

This module provides the PageController class used by the capture pipeline
to drive one page: navigation, window geometry and zoom, lifecycle state,
playback verification and the cosmetic fullscreen/minimize steps.

Window and scale changes go through a CDP session attached to the page,
since Playwright has no API for browser window bounds.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, Optional, Union

from playwright.async_api import CDPSession, Page

from tabtuner.config import TunerConfig
from tabtuner.exceptions import NavigationError, PlaybackTimeoutError
from tabtuner.utils.logger import logger

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

# Element present and buffered is not enough: the position must advance.
PLAYBACK_PREDICATE = """() => {
    const v = document.querySelector('video');
    if (!v) return false;
    if (v.readyState < 3) return false;
    return v.currentTime > 0.5;
}"""

REQUEST_FULLSCREEN = """() => {
    try {
        const target = document.querySelector('video') || document.documentElement;
        if (target.requestFullscreen) { target.requestFullscreen(); return true; }
        if (target.webkitRequestFullscreen) { target.webkitRequestFullscreen(); return true; }
        return false;
    } catch (e) {
        return false;
    }
}"""

IS_FULLSCREEN = """() => !!(document.fullscreenElement || document.webkitFullscreenElement)"""


def zoom_level_for_scale(scale: float) -> int:
    """Chrome zoom level used when page scale emulation is unavailable."""
    if scale <= 0.26:
        return -3
    if scale <= 0.51:
        return -2
    if scale <= 0.76:
        return -1
    return 0


class PageController:
    """
    Controls a single capture page.

    Attributes:
        page: The underlying Playwright Page instance
        log: Logger (usually a session-prefixed adapter)

    Example:
        >>> controller = PageController(page)
        >>> await controller.goto(channel.url, timeout=60.0)
        >>> await controller.set_window_bounds(config)
        >>> await controller.wait_for_playback(timeout=60.0)
    """

    def __init__(self, page: Page, log: Optional[LoggerLike] = None) -> None:
        self.page = page
        self.log = log or logger
        self._cdp: Optional[CDPSession] = None

    async def cdp(self) -> CDPSession:
        """CDP session attached to this page, created on first use."""
        if self._cdp is None:
            self._cdp = await self.page.context.new_cdp_session(self.page)
        return self._cdp

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        session = await self.cdp()
        return await session.send(method, params or {})

    async def ensure_active(self) -> None:
        """Keep the page focused and in the active lifecycle state.

        Capture and media playback are throttled in background tabs; every
        step here is best effort.
        """
        try:
            await self.page.bring_to_front()
        except Exception as e:
            self.log.debug(f"bring_to_front failed: {e}")
        try:
            await self.send("Page.setWebLifecycleState", {"state": "active"})
        except Exception as e:
            self.log.debug(f"setWebLifecycleState failed: {e}")
        try:
            await self.send("Emulation.setFocusEmulationEnabled", {"enabled": True})
        except Exception as e:
            self.log.debug(f"setFocusEmulationEnabled failed: {e}")

    async def goto(self, url: str, timeout: float = 60.0) -> None:
        """
        Navigate to a URL, waiting for DOMContentLoaded.

        Args:
            url: URL to navigate to
            timeout: Timeout in seconds

        Raises:
            NavigationError: If navigation fails or times out
        """
        try:
            self.log.info(f"Navigating to {url}")
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
        except Exception as e:
            raise NavigationError(f"failed to goto {url}: {e}") from e

    async def set_window_bounds(self, config: TunerConfig) -> None:
        """
        Size the window around the capture area, minimizing if configured.

        Raises:
            NavigationError: If the window cannot be resized over CDP
        """
        extra_w, extra_h = config.window_padding
        try:
            win = await self.send("Browser.getWindowForTarget")
            await self.send(
                "Browser.setWindowBounds",
                {
                    "windowId": win["windowId"],
                    "bounds": {
                        "windowState": "normal",
                        "width": config.width + extra_w,
                        "height": config.height + extra_h,
                    },
                },
            )
            if config.minimize_window:
                await self.send(
                    "Browser.setWindowBounds",
                    {"windowId": win["windowId"], "bounds": {"windowState": "minimized"}},
                )
        except Exception as e:
            raise NavigationError(f"failed to set window bounds: {e}") from e

    async def set_view_scale(self, scale: float) -> None:
        """Scale the page, falling back to browser zoom levels."""
        try:
            scale = float(scale)
        except (TypeError, ValueError):
            return
        if not math.isfinite(scale) or scale <= 0:
            return
        try:
            await self.send("Emulation.setPageScaleFactor", {"pageScaleFactor": scale})
        except Exception:
            try:
                await self.send("Browser.setZoomLevel", {"zoomLevel": zoom_level_for_scale(scale)})
            except Exception as e:
                self.log.debug(f"setZoomLevel failed: {e}")

    async def wait_for_playback(self, timeout: float = 60.0) -> None:
        """
        Wait until a video element exists and is actually playing.

        Raises:
            PlaybackTimeoutError: If playback did not start within the timeout
        """
        try:
            await self.page.wait_for_selector("video", state="attached", timeout=timeout * 1000)
            await self.page.wait_for_function(PLAYBACK_PREDICATE, timeout=timeout * 1000)
        except Exception as e:
            raise PlaybackTimeoutError(f"playback did not start: {e}") from e

    async def request_fullscreen(self) -> bool:
        success = await self.page.evaluate(REQUEST_FULLSCREEN)
        if success:
            self.log.info("Fullscreen requested via browser API")
        else:
            self.log.info("Fullscreen API not available")
        return bool(success)

    async def verify_fullscreen(self, delay: float = 0.3) -> bool:
        await asyncio.sleep(delay)
        is_fullscreen = bool(await self.page.evaluate(IS_FULLSCREEN))
        if is_fullscreen:
            self.log.info("Fullscreen verified")
        else:
            self.log.info("Fullscreen verification failed")
        return is_fullscreen

    async def minimize_window(self) -> None:
        """Minimize the window while keeping the page lifecycle active."""
        try:
            win = await self.send("Browser.getWindowForTarget")
            await self.send(
                "Browser.setWindowBounds",
                {"windowId": win["windowId"], "bounds": {"windowState": "minimized"}},
            )
        except Exception as e:
            self.log.info(f"Failed to minimize window: {e}")
            return
        try:
            await self.send("Page.setWebLifecycleState", {"state": "active"})
            await self.send("Emulation.setFocusEmulationEnabled", {"enabled": True})
            self.log.info("Window minimized (kept active)")
        except Exception:
            self.log.info("Window minimized (but failed to force active state)")
