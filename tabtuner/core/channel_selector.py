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
Channel tile selection.

Channel pages show a grid of tiles, each carrying a logo image whose URL
contains the channel's slug. Selecting a channel means finding that image,
climbing to the element that actually reacts to clicks, and clicking its
center with a real pointer event.

The DOM is read in two steps. The page first reports, for every image that
matches the slug, the chain of its ancestors with the attributes the
heuristic needs. The choice is made here in Python by locate_tile_target(),
then the page scrolls the chosen element into view and reports its box.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from playwright.async_api import Page

from tabtuner.utils.logger import logger

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

TILE_NOT_FOUND = "Channel tile not found in page images."

# Minimum size of a cursor:pointer element accepted as a fallback target
MIN_FALLBACK_SIZE = 20

SLUG_IMAGE_PRESENT = """(slug) => Array.from(document.querySelectorAll('img'))
    .some((img) => img.src && img.src.includes(slug))"""

COLLECT_TILE_ANCESTORS = """(slug) => {
    const found = [];
    document.querySelectorAll('img').forEach((img, index) => {
        if (!img.src || !img.src.includes(slug)) return;
        const ancestors = [];
        let el = img.parentElement;
        while (el && el !== document.body) {
            const rect = el.getBoundingClientRect();
            ancestors.push({
                tag: el.tagName,
                role: el.getAttribute('role'),
                onclick: el.hasAttribute('onclick'),
                cursor: window.getComputedStyle(el).cursor,
                width: rect.width,
                height: rect.height,
            });
            el = el.parentElement;
        }
        found.push({ index: index, ancestors: ancestors });
    });
    return found;
}"""

FOCUS_TILE_ANCESTOR = """([index, depth]) => {
    const img = document.querySelectorAll('img')[index];
    if (!img) return null;
    let el = img.parentElement;
    for (let i = 0; i < depth && el; i++) el = el.parentElement;
    if (!el) return null;
    el.scrollIntoView({ behavior: 'instant', block: 'center', inline: 'center' });
    const rect = el.getBoundingClientRect();
    return { x: rect.x, y: rect.y, width: rect.width, height: rect.height };
}"""


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def visible(self) -> bool:
        return self.width > 0 and self.height > 0

    def center(self) -> tuple:
        return (self.x + self.width / 2, self.y + self.height / 2)


@dataclass(frozen=True)
class TileTarget:
    """Ancestor chosen for the click.

    Attributes:
        image_index: Position of the matching image among all page images
        depth: Number of steps above the image's parent (0 = the parent)
        kind: "semantic" for links/buttons/role=button/onclick, "pointer" for
            the cursor:pointer fallback
    """

    image_index: int
    depth: int
    kind: str


@dataclass
class SelectionResult:
    success: bool
    reason: Optional[str] = None
    point: Optional[tuple] = None


def is_semantic_clickable(node: Dict[str, Any]) -> bool:
    tag = str(node.get("tag") or "").upper()
    return (
        tag in ("A", "BUTTON")
        or node.get("role") == "button"
        or bool(node.get("onclick"))
    )


def is_pointer_fallback(node: Dict[str, Any]) -> bool:
    return (
        (node.get("width") or 0) > MIN_FALLBACK_SIZE
        and (node.get("height") or 0) > MIN_FALLBACK_SIZE
        and node.get("cursor") == "pointer"
    )


def locate_tile_target(candidates: Sequence[Dict[str, Any]]) -> List[TileTarget]:
    """
    Rank click targets for the matching images, best first.

    For each image (in document order) the ancestor walk yields the first
    visible semantic clickable element; when the walk finds none, the first
    ancestor seen with a pointer cursor and a usable size is used instead.
    At most one target is produced per image.
    """
    targets: List[TileTarget] = []
    for candidate in candidates:
        index = int(candidate.get("index", 0))
        pointer_depth: Optional[int] = None
        chosen: Optional[TileTarget] = None

        for depth, node in enumerate(candidate.get("ancestors") or []):
            if is_semantic_clickable(node) and (node.get("width") or 0) > 0 and (node.get("height") or 0) > 0:
                chosen = TileTarget(index, depth, "semantic")
                break
            if pointer_depth is None and is_pointer_fallback(node):
                pointer_depth = depth

        if chosen is None and pointer_depth is not None:
            chosen = TileTarget(index, pointer_depth, "pointer")
        if chosen is not None:
            targets.append(chosen)
    return targets


class ChannelSelector:
    """
    Activates a channel tile on a page that shows the channel grid.

    Failures are returned, not retried; the pipeline turns them into a
    session-ending error.

    Example:
        >>> selector = ChannelSelector(wait_timeout=30.0)
        >>> result = await selector.select(page, channel.slug)
        >>> if not result.success:
        ...     raise ChannelSelectionError(result.reason)
    """

    def __init__(
        self,
        wait_timeout: float = 30.0,
        settle_delay: float = 0.2,
        log: Optional[LoggerLike] = None,
    ) -> None:
        self.wait_timeout = wait_timeout
        self.settle_delay = settle_delay
        self.log = log or logger

    async def wait_for_grid(self, page: Page, slug: str) -> bool:
        """Wait for any image carrying the slug; False on timeout."""
        try:
            await page.wait_for_function(
                SLUG_IMAGE_PRESENT, arg=slug, timeout=self.wait_timeout * 1000
            )
            return True
        except Exception:
            return False

    async def select(self, page: Page, slug: str, log: Optional[LoggerLike] = None) -> SelectionResult:
        log = log or self.log

        if not await self.wait_for_grid(page, slug):
            # Some pages render slower than the timeout; try anyway
            log.warning(f'Channel slug "{slug}" image did not appear, proceeding anyway...')

        candidates = await page.evaluate(COLLECT_TILE_ANCESTORS, slug) or []
        for target in locate_tile_target(candidates):
            raw = await page.evaluate(FOCUS_TILE_ANCESTOR, [target.image_index, target.depth])
            if not raw:
                continue
            box = BoundingBox(raw["x"], raw["y"], raw["width"], raw["height"])
            if not box.visible:
                continue

            point = box.center()
            await asyncio.sleep(self.settle_delay)
            await page.mouse.click(point[0], point[1])
            log.info(f"Clicked {target.kind} tile target at ({point[0]:.0f}, {point[1]:.0f})")
            return SelectionResult(success=True, point=point)

        return SelectionResult(success=False, reason=TILE_NOT_FOUND)
