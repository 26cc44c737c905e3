# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for the channel lineup."""

import json

import pytest

from tabtuner.core.channels import (
    DEFAULT_CHANNELS,
    Channel,
    ChannelLineup,
    default_lineup,
    load_channels,
)
from tabtuner.exceptions import ChannelNotFoundError, ConfigurationError


def channel(key, number):
    return Channel(key, key.upper(), number, "https://example.com", f"slug-{key}")


class TestChannelLineup:
    """Tests for ChannelLineup."""

    def test_default_lineup(self):
        lineup = default_lineup()
        assert len(lineup) == len(DEFAULT_CHANNELS) == 12
        assert lineup.get("espn").number == 509

    def test_numbers_unique_in_defaults(self):
        numbers = [c.number for c in DEFAULT_CHANNELS]
        assert len(numbers) == len(set(numbers))

    def test_preserves_order(self):
        lineup = ChannelLineup([channel("b", 2), channel("a", 1)])
        assert lineup.keys() == ["b", "a"]
        assert [c.key for c in lineup.sorted_by_number()] == ["a", "b"]

    def test_case_insensitive_lookup(self):
        lineup = default_lineup()
        assert lineup.get("ESPN") is lineup.get("espn")
        assert "Footy" in lineup
        assert "nope" not in lineup

    def test_require_unknown_lists_keys(self):
        lineup = ChannelLineup([channel("a", 1), channel("b", 2)])

        with pytest.raises(ChannelNotFoundError) as exc_info:
            lineup.require("zzz")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Channel not found. Available channels: a, b"

    def test_duplicate_number_rejected(self):
        with pytest.raises(ConfigurationError, match="Guide number 1"):
            ChannelLineup([channel("a", 1), channel("b", 1)])

    def test_duplicate_key_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate channel key"):
            ChannelLineup([channel("a", 1), channel("A", 2)])

    def test_stream_path(self):
        assert channel("espn", 1).stream_path == "/stream/espn"


class TestLoadChannels:
    """Tests for load_channels()."""

    def test_load(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text(
            json.dumps(
                {
                    "One": {"name": "One", "number": 1, "url": "https://x", "slug": "s1"},
                    "two": {"name": "Two", "number": "2", "url": "https://x", "slug": "s2"},
                }
            )
        )

        lineup = load_channels(path)

        assert lineup.keys() == ["one", "two"]
        assert lineup.get("two").number == 2

    def test_missing_field(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text(json.dumps({"one": {"name": "One", "number": 1}}))

        with pytest.raises(ConfigurationError, match="Invalid channel entry"):
            load_channels(path)

    def test_unreadable(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Failed to read"):
            load_channels(tmp_path / "missing.json")

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text("[]")

        with pytest.raises(ConfigurationError, match="JSON object"):
            load_channels(path)
