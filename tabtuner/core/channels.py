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
Channel lineup for the virtual tuner.

A Channel maps a short key (used in /stream/<key>) to the page that plays it
and the slug that identifies its tile in that page's channel grid. The lineup
is loaded once at startup and never changes while the service runs.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from tabtuner.exceptions import ChannelNotFoundError, ConfigurationError

KAYO_BROWSE_URL = "https://kayosports.com.au/browse"


@dataclass(frozen=True)
class Channel:
    """A single channel of the lineup.

    Attributes:
        key: Identifier used in stream URLs (lower case)
        name: Display name shown in DVR guides
        number: Guide number, unique across the lineup
        url: Page that shows the channel grid
        slug: Substring of the tile image URL that identifies the channel
    """

    key: str
    name: str
    number: int
    url: str
    slug: str

    @property
    def stream_path(self) -> str:
        return f"/stream/{self.key}"


DEFAULT_CHANNELS: List[Channel] = [
    Channel("espn", "ESPN", 509, KAYO_BROWSE_URL, "5bce8eb9e4b0a8faf3c14a94"),
    Channel("footy", "Fox Footy", 504, KAYO_BROWSE_URL, "5bcefacfe4b0a8faf3c14ae2"),
    Channel("cricket", "Fox Cricket", 501, KAYO_BROWSE_URL, "5bcef5ede4b0a8faf3c14acf"),
    Channel("505", "Fox Sports 505", 505, KAYO_BROWSE_URL, "5bcefaf5e4b0cb6f1d7f46fc"),
    Channel("503", "Fox Sports 503", 503, KAYO_BROWSE_URL, "5bcef93ae4b0a8faf3c14ada"),
    Channel("506", "Fox Sports 506", 506, KAYO_BROWSE_URL, "5bcefc4ae4b0a8faf3c14aed"),
    Channel("league", "Fox League", 502, KAYO_BROWSE_URL, "5bcef901e4b0cb6f1d7f46f3"),
    Channel("news", "Fox Sports News", 500, KAYO_BROWSE_URL, "5bcefccee4b0a8faf3c14aef"),
    Channel("racing", "Racing.com", 529, KAYO_BROWSE_URL, "5ccacc4ae4b020d0a4eb3979"),
    Channel("ufc", "Main Event UFC", 523, KAYO_BROWSE_URL, "66d524f4e4b06b17c2bfdd58"),
    Channel("espn2", "ESPN2", 510, KAYO_BROWSE_URL, "5bcef583e4b0a8faf3c14acb"),
    Channel("507", "Fox Sports 507", 507, KAYO_BROWSE_URL, "5bcefc6be4b0cb6f1d7f4703"),
]


class ChannelLineup:
    """Ordered, read-only mapping of channel key to Channel.

    Keys are matched case-insensitively. Insertion order is preserved for the
    lineup document; sorted_by_number() gives guide order.

    Raises:
        ConfigurationError: On duplicate keys or duplicate guide numbers
    """

    def __init__(self, channels: Iterable[Channel]) -> None:
        self._channels: "OrderedDict[str, Channel]" = OrderedDict()
        numbers: Dict[int, str] = {}
        for channel in channels:
            key = channel.key.lower()
            if key in self._channels:
                raise ConfigurationError(f"Duplicate channel key: {key}")
            if channel.number in numbers:
                raise ConfigurationError(
                    f"Guide number {channel.number} used by both "
                    f"{numbers[channel.number]} and {key}"
                )
            numbers[channel.number] = key
            self._channels[key] = channel

    def get(self, key: str) -> Optional[Channel]:
        return self._channels.get(key.lower())

    def require(self, key: str) -> Channel:
        """Look up a channel or raise ChannelNotFoundError listing valid keys."""
        channel = self.get(key)
        if channel is None:
            raise ChannelNotFoundError(key, self.keys())
        return channel

    def keys(self) -> List[str]:
        return list(self._channels.keys())

    def sorted_by_number(self) -> List[Channel]:
        return sorted(self._channels.values(), key=lambda c: c.number)

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._channels.values())

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._channels


def load_channels(path: Union[str, Path]) -> ChannelLineup:
    """Load a lineup from a JSON file.

    The file holds an object keyed by channel key::

        {"espn": {"name": "ESPN", "number": 509,
                  "url": "https://...", "slug": "5bce8eb9..."}}

    Raises:
        ConfigurationError: If the file is unreadable or an entry is incomplete
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Failed to read channels file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Channels file {path} must contain a JSON object")

    channels = []
    for key, entry in raw.items():
        try:
            channels.append(
                Channel(
                    key=str(key).lower(),
                    name=str(entry["name"]),
                    number=int(entry["number"]),
                    url=str(entry["url"]),
                    slug=str(entry["slug"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid channel entry {key!r}: {e}") from e
    return ChannelLineup(channels)


def default_lineup() -> ChannelLineup:
    return ChannelLineup(DEFAULT_CHANNELS)
