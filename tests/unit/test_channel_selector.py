# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for channel tile selection."""

from unittest.mock import AsyncMock

import pytest

from tabtuner.core.channel_selector import (
    COLLECT_TILE_ANCESTORS,
    FOCUS_TILE_ANCESTOR,
    TILE_NOT_FOUND,
    BoundingBox,
    ChannelSelector,
    TileTarget,
    locate_tile_target,
)

SLUG = "5bce8eb9e4b0a8faf3c14a94"


def node(tag="DIV", role=None, onclick=False, cursor="auto", width=200, height=120):
    return {
        "tag": tag,
        "role": role,
        "onclick": onclick,
        "cursor": cursor,
        "width": width,
        "height": height,
    }


class FakeDom:
    """Answers the selector's page.evaluate() calls from canned data."""

    def __init__(self, candidates, boxes):
        self.candidates = candidates
        self.boxes = boxes
        self.focused = []

    async def evaluate(self, script, arg=None):
        if script == COLLECT_TILE_ANCESTORS:
            return self.candidates
        if script == FOCUS_TILE_ANCESTOR:
            index, depth = arg
            self.focused.append((index, depth))
            return self.boxes.get((index, depth))
        raise AssertionError("unexpected script")


class TestLocateTileTarget:
    """Tests for the ancestor heuristic."""

    def test_first_semantic_ancestor(self):
        candidates = [{"index": 3, "ancestors": [node(), node(tag="A"), node(tag="BUTTON")]}]
        assert locate_tile_target(candidates) == [TileTarget(3, 1, "semantic")]

    @pytest.mark.parametrize(
        "clickable",
        [node(tag="a"), node(role="button"), node(onclick=True), node(tag="BUTTON")],
    )
    def test_semantic_kinds(self, clickable):
        candidates = [{"index": 0, "ancestors": [node(), clickable]}]
        assert locate_tile_target(candidates)[0].kind == "semantic"

    def test_zero_size_semantic_skipped(self):
        candidates = [{"index": 0, "ancestors": [node(tag="A", width=0, height=0), node(tag="A")]}]
        assert locate_tile_target(candidates) == [TileTarget(0, 1, "semantic")]

    def test_pointer_fallback_first_seen_wins(self):
        candidates = [
            {
                "index": 0,
                "ancestors": [
                    node(cursor="pointer", width=10, height=10),
                    node(cursor="pointer"),
                    node(cursor="pointer", width=400, height=300),
                ],
            }
        ]
        assert locate_tile_target(candidates) == [TileTarget(0, 1, "pointer")]

    def test_semantic_preferred_over_earlier_pointer(self):
        candidates = [{"index": 0, "ancestors": [node(cursor="pointer"), node(tag="A")]}]
        assert locate_tile_target(candidates) == [TileTarget(0, 1, "semantic")]

    def test_one_target_per_image(self):
        candidates = [
            {"index": 0, "ancestors": [node()]},
            {"index": 5, "ancestors": [node(tag="A")]},
            {"index": 7, "ancestors": [node(cursor="pointer")]},
        ]
        assert locate_tile_target(candidates) == [
            TileTarget(5, 0, "semantic"),
            TileTarget(7, 0, "pointer"),
        ]


class TestBoundingBox:
    def test_center_and_visibility(self):
        box = BoundingBox(100, 50, 200, 120)
        assert box.center() == (200, 110)
        assert box.visible
        assert not BoundingBox(100, 50, 0, 120).visible


class TestChannelSelectorSelect:
    """Tests for ChannelSelector.select()."""

    @pytest.mark.asyncio
    async def test_clicks_center_of_clickable_ancestor(self, mock_page):
        box = BoundingBox(100, 200, 300, 150)
        dom = FakeDom(
            [{"index": 2, "ancestors": [node(), node(tag="A", width=300, height=150)]}],
            {(2, 1): {"x": 100, "y": 200, "width": 300, "height": 150}},
        )
        mock_page.evaluate = AsyncMock(side_effect=dom.evaluate)
        selector = ChannelSelector(wait_timeout=1, settle_delay=0)

        result = await selector.select(mock_page, SLUG)

        assert result.success is True
        assert result.point == box.center()
        mock_page.mouse.click.assert_awaited_once_with(250, 275)
        assert dom.focused == [(2, 1)]

    @pytest.mark.asyncio
    async def test_no_matching_image(self, mock_page):
        dom = FakeDom([], {})
        mock_page.evaluate = AsyncMock(side_effect=dom.evaluate)
        selector = ChannelSelector(wait_timeout=1, settle_delay=0)

        result = await selector.select(mock_page, SLUG)

        assert result.success is False
        assert result.reason == TILE_NOT_FOUND
        mock_page.mouse.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invisible_target_not_clicked(self, mock_page):
        dom = FakeDom(
            [{"index": 0, "ancestors": [node(tag="A")]}],
            {(0, 0): {"x": 0, "y": 0, "width": 0, "height": 0}},
        )
        mock_page.evaluate = AsyncMock(side_effect=dom.evaluate)

        result = await ChannelSelector(wait_timeout=1, settle_delay=0).select(mock_page, SLUG)

        assert result.success is False
        mock_page.mouse.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_proceeds_when_grid_never_appears(self, mock_page):
        mock_page.wait_for_function.side_effect = TimeoutError("Timeout 1000ms exceeded")
        dom = FakeDom(
            [{"index": 0, "ancestors": [node(cursor="pointer")]}],
            {(0, 0): {"x": 0, "y": 0, "width": 200, "height": 120}},
        )
        mock_page.evaluate = AsyncMock(side_effect=dom.evaluate)

        result = await ChannelSelector(wait_timeout=1, settle_delay=0).select(mock_page, SLUG)

        assert result.success is True
        mock_page.mouse.click.assert_awaited_once_with(100, 60)

    @pytest.mark.asyncio
    async def test_waits_for_slug_image(self, mock_page):
        mock_page.evaluate = AsyncMock(side_effect=FakeDom([], {}).evaluate)

        await ChannelSelector(wait_timeout=2, settle_delay=0).select(mock_page, SLUG)

        assert mock_page.wait_for_function.await_args.kwargs == {"arg": SLUG, "timeout": 2000}
