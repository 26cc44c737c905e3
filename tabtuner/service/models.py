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
Pydantic models for the tuner discovery documents.

Field names follow the HDHomeRun JSON documents that DVR clients (Plex,
Channels, Emby) read, so they are PascalCase on the wire.

Example:
    >>> LineupEntry(GuideNumber="509", GuideName="ESPN", URL="http://host:5589/stream/espn")
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class DiscoverResponse(BaseModel):
    """
    Device identity returned by /discover.json.

    Attributes:
        FriendlyName: Name shown by DVR clients
        Manufacturer: Reported manufacturer
        ModelNumber: Reported HDHomeRun model
        FirmwareName: Reported firmware name
        FirmwareVersion: Reported firmware version
        TunerCount: Number of tuners advertised
        DeviceID: Device identifier
        DeviceAuth: Authentication token (unused, kept for compatibility)
        BaseURL: Root URL of the primary listener
        LineupURL: URL of lineup.json
    """

    FriendlyName: str = Field(..., description="Name shown by DVR clients")
    Manufacturer: str = Field(default="Silicondust", description="Reported manufacturer")
    ModelNumber: str = Field(default="HDHR4-2US", description="Reported model")
    FirmwareName: str = Field(default="hdhomerun4_atsc", description="Reported firmware")
    FirmwareVersion: str = Field(default="20190621", description="Reported firmware version")
    TunerCount: int = Field(..., ge=1, description="Advertised tuner count")
    DeviceID: str = Field(..., description="Device identifier")
    DeviceAuth: str = Field(default="test1234", description="Compatibility auth token")
    BaseURL: str = Field(..., description="Root URL of the tuner")
    LineupURL: str = Field(..., description="URL of lineup.json")


class LineupEntry(BaseModel):
    """One channel in /lineup.json."""

    GuideNumber: str = Field(..., description="Guide channel number")
    GuideName: str = Field(..., description="Channel display name")
    URL: str = Field(..., description="Stream URL")


class LineupStatus(BaseModel):
    """Static /lineup_status.json document; the lineup never needs scanning."""

    ScanInProgress: int = 0
    ScanPossible: int = 1
    Source: str = "Cable"
    SourceList: List[str] = Field(default_factory=lambda: ["Cable"])


class TunerStatus(BaseModel):
    """Live admission counters returned by /status.json."""

    ActiveStreams: int = Field(..., ge=0)
    MaxStreams: int = Field(..., ge=1)
