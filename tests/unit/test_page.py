# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for PageController."""

from unittest.mock import AsyncMock

import pytest

from tabtuner.core.page import PLAYBACK_PREDICATE, PageController, zoom_level_for_scale
from tabtuner.exceptions import NavigationError, PlaybackTimeoutError


def sent(page):
    return [c.args[0] for c in page.cdp.send.await_args_list]


class TestNavigation:
    """Tests for goto() and window geometry."""

    @pytest.mark.asyncio
    async def test_goto(self, mock_page):
        controller = PageController(mock_page)

        await controller.goto("https://example.com", timeout=60)

        mock_page.goto.assert_awaited_once_with(
            "https://example.com", wait_until="domcontentloaded", timeout=60000
        )

    @pytest.mark.asyncio
    async def test_goto_failure(self, mock_page):
        mock_page.goto.side_effect = TimeoutError("Timeout 60000ms exceeded")
        controller = PageController(mock_page)

        with pytest.raises(NavigationError, match="failed to goto https://example.com"):
            await controller.goto("https://example.com")

    @pytest.mark.asyncio
    async def test_window_bounds_padded(self, mock_page, config):
        controller = PageController(mock_page)

        await controller.set_window_bounds(config)

        mock_page.cdp.send.assert_any_await(
            "Browser.setWindowBounds",
            {
                "windowId": 1,
                "bounds": {"windowState": "normal", "width": 2000, "height": 1240},
            },
        )
        assert sent(mock_page).count("Browser.setWindowBounds") == 1

    @pytest.mark.asyncio
    async def test_window_bounds_minimized(self, mock_page, config):
        config.minimize_window = True
        controller = PageController(mock_page)

        await controller.set_window_bounds(config)

        mock_page.cdp.send.assert_any_await(
            "Browser.setWindowBounds", {"windowId": 1, "bounds": {"windowState": "minimized"}}
        )

    @pytest.mark.asyncio
    async def test_window_bounds_failure(self, mock_page, config):
        mock_page.cdp.send.side_effect = RuntimeError("Browser window not found")
        controller = PageController(mock_page)

        with pytest.raises(NavigationError, match="failed to set window bounds: Browser window not found"):
            await controller.set_window_bounds(config)

    @pytest.mark.asyncio
    async def test_cdp_session_is_reused(self, mock_page, config):
        controller = PageController(mock_page)

        await controller.set_window_bounds(config)
        await controller.ensure_active()

        mock_page.context.new_cdp_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ensure_active_is_best_effort(self, mock_page):
        mock_page.bring_to_front.side_effect = RuntimeError("detached")
        mock_page.cdp.send.side_effect = RuntimeError("not supported")
        controller = PageController(mock_page)

        await controller.ensure_active()


class TestViewScale:
    """Tests for set_view_scale()."""

    @pytest.mark.parametrize(
        "scale,level",
        [(0.25, -3), (0.5, -2), (0.75, -1), (1.0, 0)],
    )
    def test_zoom_buckets(self, scale, level):
        assert zoom_level_for_scale(scale) == level

    @pytest.mark.asyncio
    async def test_page_scale_factor(self, mock_page):
        await PageController(mock_page).set_view_scale(0.25)

        mock_page.cdp.send.assert_awaited_once_with(
            "Emulation.setPageScaleFactor", {"pageScaleFactor": 0.25}
        )

    @pytest.mark.asyncio
    async def test_falls_back_to_zoom(self, mock_page):
        mock_page.cdp.send = AsyncMock(side_effect=[RuntimeError("unsupported"), None])

        await PageController(mock_page).set_view_scale(0.25)

        mock_page.cdp.send.assert_awaited_with("Browser.setZoomLevel", {"zoomLevel": -3})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scale", [0, -1, float("nan"), "abc"])
    async def test_invalid_scale_ignored(self, mock_page, scale):
        await PageController(mock_page).set_view_scale(scale)

        mock_page.cdp.send.assert_not_awaited()


class TestPlayback:
    """Tests for playback verification and cosmetics."""

    @pytest.mark.asyncio
    async def test_wait_for_playback(self, mock_page):
        await PageController(mock_page).wait_for_playback(timeout=5)

        mock_page.wait_for_selector.assert_awaited_once_with("video", state="attached", timeout=5000)
        mock_page.wait_for_function.assert_awaited_once_with(PLAYBACK_PREDICATE, timeout=5000)

    @pytest.mark.asyncio
    async def test_playback_timeout(self, mock_page):
        mock_page.wait_for_function.side_effect = TimeoutError("Timeout 5000ms exceeded")

        with pytest.raises(PlaybackTimeoutError):
            await PageController(mock_page).wait_for_playback(timeout=5)

    def test_predicate_requires_progress(self):
        assert "readyState < 3" in PLAYBACK_PREDICATE
        assert "currentTime > 0.5" in PLAYBACK_PREDICATE

    @pytest.mark.asyncio
    async def test_fullscreen(self, mock_page):
        mock_page.evaluate = AsyncMock(side_effect=[True, True])
        controller = PageController(mock_page)

        assert await controller.request_fullscreen() is True
        assert await controller.verify_fullscreen(delay=0) is True

    @pytest.mark.asyncio
    async def test_minimize_failure_is_logged_only(self, mock_page):
        mock_page.cdp.send.side_effect = RuntimeError("no window")

        await PageController(mock_page).minimize_window()
