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
Page allocation for stream sessions.

Every session gets a brand new page from the shared browser and closes it
when it is done; pages are never reused, so each capture starts from clean
navigation state. The pool only tracks which pages are currently owned.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional, Set

from playwright.async_api import Page

from tabtuner.core.browser import BrowserManager
from tabtuner.exceptions import PageError, TabTunerError
from tabtuner.utils.logger import logger

NO_ANIMATION_CSS = (
    "*{animation-duration:0s!important;transition-duration:0s!important;scroll-behavior:auto!important}"
    "*::before{animation-duration:0s!important;transition-duration:0s!important}"
    "*::after{animation-duration:0s!important;transition-duration:0s!important}"
)

# Re-applied on every document the page loads.
NO_ANIMATION_INIT_SCRIPT = """(() => {
    const css = %s;
    const inject = () => {
        const style = document.createElement('style');
        style.textContent = css;
        (document.head || document.documentElement).appendChild(style);
    };
    if (document.readyState === 'loading') {
        document.addEventListener('DOMContentLoaded', inject, { once: true });
    } else {
        inject();
    }
})();"""


class PagePool:
    """
    Hands out fresh, hardened pages and tracks the ones in use.

    Hardening applied to each page:
    - Content-Security-Policy bypass, so injected styles and scripts run
    - A stylesheet zeroing animation and transition durations, making UI
      state changes immediate and deterministic

    Example:
        >>> pool = PagePool(browser_manager)
        >>> page = await pool.acquire()
        >>> ...
        >>> await pool.release(page, "stream ended")
    """

    def __init__(self, browser: BrowserManager, settle_delay: float = 0.2) -> None:
        self.browser = browser
        self.settle_delay = settle_delay
        self.in_use: Set[Page] = set()

    async def acquire(self) -> Page:
        """
        Create a new page on the shared browser and register it as in use.

        Raises:
            LaunchError: If the browser cannot be launched
            PageError: If the page cannot be created
        """
        context = await self.browser.acquire()
        try:
            page = await context.new_page()
        except Exception as e:
            raise PageError(f"failed to open page: {e}") from e

        try:
            await self._harden(page)
        except Exception as e:
            try:
                await page.close()
            except Exception as close_error:
                logger.debug(f"Ignoring page close error: {close_error}")
            if isinstance(e, TabTunerError):
                raise
            raise PageError(f"failed to prepare page: {e}") from e

        self.in_use.add(page)
        return page

    async def _harden(self, page: Page) -> None:
        cdp = await page.context.new_cdp_session(page)
        await cdp.send("Page.setBypassCSP", {"enabled": True})
        await asyncio.sleep(self.settle_delay)

        script = NO_ANIMATION_INIT_SCRIPT % json.dumps(NO_ANIMATION_CSS)
        try:
            await page.add_init_script(script)
            await page.add_style_tag(content=NO_ANIMATION_CSS)
        except Exception as e:
            logger.debug(f"Failed to inject no-animation stylesheet: {e}")

    async def release(self, page: Optional[Page], reason: Optional[str] = None) -> None:
        """
        Forget and close a page.

        Never raises: releasing an unknown, already released or already closed
        page is a no-op apart from logging.
        """
        if page is None:
            return
        self.in_use.discard(page)
        try:
            await page.close()
        except Exception as e:
            logger.debug(f"Ignoring page close error: {e}")
        if reason:
            logger.info(f"[Page] Closed: {reason}")

    @property
    def active_count(self) -> int:
        return len(self.in_use)
