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
Shared browser management for TabTuner.

This module provides the BrowserManager class which owns the single Chromium
instance every stream session borrows pages from. The browser is launched
lazily with a persistent profile directory (so logins survive restarts),
watched for disconnection, and relaunched on the next acquisition after it
goes away.

Lifecycle:
    ABSENT -> LAUNCHING -> CONNECTED -> DISCONNECTED -> ABSENT

Only one launch can be in flight at a time; concurrent callers that arrive
while a launch is running wait for it and share its result.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
from enum import Enum
from typing import Any, List, Optional

from playwright.async_api import BrowserContext, Page, async_playwright

from tabtuner.config import TunerConfig
from tabtuner.exceptions import LaunchError
from tabtuner.utils.logger import logger

BROWSER_ARGS = [
    "--no-first-run",
    "--hide-crash-restore-bubble",
    "--allow-running-insecure-content",
    "--autoplay-policy=no-user-gesture-required",
    "--disable-blink-features=AutomationControlled",
    "--hide-scrollbars",
    "--disable-notifications",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-background-media-suspend",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--force-prefers-reduced-motion",
    "--disable-features=CalculateNativeWinOcclusion",
    # Let getDisplayMedia pick the calling tab without a picker dialog
    "--auto-accept-this-tab-capture",
    "--enable-usermedia-screen-capturing",
]

DOCKER_ARGS = [
    "--use-gl=angle",
    "--use-angle=gl-egl",
    "--enable-features=VaapiVideoDecoder,VaapiVideoEncoder",
    "--ignore-gpu-blocklist",
    "--enable-zero-copy",
    "--enable-drdc",
    "--no-sandbox",
]

IGNORED_DEFAULT_ARGS = [
    "--enable-automation",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-component-update",
    "--disable-component-extensions-with-background-pages",
    "--enable-blink-features=IdleDetection",
    "--mute-audio",
]

MAC_EXECUTABLES = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
]


class BrowserState(str, Enum):
    """Lifecycle state of the shared browser."""

    ABSENT = "absent"
    LAUNCHING = "launching"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


def _windows_executables() -> List[str]:
    profile = os.environ.get("USERPROFILE", "")
    return [
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
        os.path.join(profile, "AppData", "Local", "Google", "Chrome", "Application", "chrome.exe"),
        os.path.join(profile, "AppData", "Local", "Chromium", "Application", "chrome.exe"),
    ]


def resolve_executable_path(explicit: Optional[str] = None) -> str:
    """
    Locate the Chrome/Chromium executable to launch.

    Args:
        explicit: Path from configuration; wins over discovery.
            CHROME_BIN in the environment is honoured next.

    Returns:
        Absolute path (or PATH-resolved name) of the executable

    Raises:
        LaunchError: If no executable can be found or the platform is unsupported
    """
    override = explicit or os.environ.get("CHROME_BIN")
    if override:
        return override

    if sys.platform.startswith("linux"):
        for name in ("chromium-browser", "chromium"):
            path = shutil.which(name)
            if path:
                return path
        raise LaunchError("Chromium not found (tried chromium-browser, chromium)")

    if sys.platform == "darwin":
        candidates = MAC_EXECUTABLES
    elif sys.platform == "win32":
        candidates = _windows_executables()
    else:
        raise LaunchError(f"Unsupported platform: {sys.platform}")

    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    raise LaunchError("No Chrome or Chromium installation found")


class BrowserManager:
    """
    Owns the process-wide browser shared by all stream sessions.

    Sessions never hold the browser itself; they call acquire() and create
    pages from the returned context. When the browser disconnects (crash,
    window closed by hand) the handle is cleared so the next acquire()
    launches a fresh instance against the same profile.

    Attributes:
        config: Tuner configuration (profile dir, window size, executable)
        state: Current BrowserState

    Example:
        >>> manager = BrowserManager(TunerConfig())
        >>> context = await manager.acquire()
        >>> page = await context.new_page()
        >>> await manager.close()
    """

    def __init__(self, config: TunerConfig) -> None:
        self.config = config
        self.state = BrowserState.ABSENT
        self._playwright: Any = None
        self._context: Optional[BrowserContext] = None
        self._launch_lock = asyncio.Lock()
        self.launch_count = 0

    @property
    def is_connected(self) -> bool:
        return self.state == BrowserState.CONNECTED and self._context is not None

    async def acquire(self) -> BrowserContext:
        """
        Return the connected browser, launching it first if needed.

        Raises:
            LaunchError: If the executable is missing or fails to start
        """
        if self.is_connected:
            return self._context

        async with self._launch_lock:
            # Another caller may have finished launching while we waited
            if self.is_connected:
                return self._context

            self.state = BrowserState.LAUNCHING
            try:
                context = await self._launch()
            except LaunchError:
                self.state = BrowserState.ABSENT
                raise
            except Exception as e:
                self.state = BrowserState.ABSENT
                logger.error(f"Failed to launch browser: {e}")
                raise LaunchError(f"Failed to launch browser: {e}") from e

            self._context = context
            self.state = BrowserState.CONNECTED
            self.launch_count += 1
            logger.info("Browser launched")
            return context

    def launch_args(self) -> List[str]:
        args = list(BROWSER_ARGS)
        args.append(f"--window-size={self.config.width},{self.config.height}")
        if self.config.docker:
            args.extend(DOCKER_ARGS)
        return args

    async def _launch(self) -> BrowserContext:
        executable_path = resolve_executable_path(self.config.chrome_bin)
        profile_dir = self.config.profile_dir
        profile_dir.mkdir(parents=True, exist_ok=True)

        if self._playwright is None:
            self._playwright = await async_playwright().start()

        logger.info(f"Launching browser {executable_path} (profile: {profile_dir})")
        context = await self._playwright.chromium.launch_persistent_context(
            str(profile_dir),
            executable_path=executable_path,
            headless=False,
            no_viewport=True,
            args=self.launch_args(),
            ignore_default_args=IGNORED_DEFAULT_ARGS,
        )

        context.on("close", self._on_disconnected)
        context.on("page", self._on_page_created)
        if context.browser is not None:
            context.browser.on("disconnected", self._on_disconnected)
        return context

    def _on_disconnected(self, *_: Any) -> None:
        # Fired by both the context and the browser; only the first counts
        if self.state != BrowserState.CONNECTED:
            return
        logger.info("Browser disconnected")
        self.state = BrowserState.DISCONNECTED
        self._context = None

    def _on_page_created(self, page: Page) -> None:
        logger.info(f"New target page created: {page.url}")
        page.on("close", lambda p: logger.info(f"Browser page closed: {p.url}"))
        page.on(
            "framenavigated",
            lambda frame: (
                logger.info(f"Target page changed: {frame.url}")
                if frame.parent_frame is None
                else None
            ),
        )

    async def close(self) -> None:
        """Close the browser and stop Playwright. Safe to call repeatedly."""
        context, self._context = self._context, None
        self.state = BrowserState.ABSENT
        if context is not None:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"Error closing browser: {e}")
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"Error stopping playwright: {e}")
            self._playwright = None
        logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserManager":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
