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
HDHomeRun-compatible tuner documents.

Every endpoint here is a plain named function reading the shared
TunerRuntime from ``request.app.state.runtime``, so the same handlers are
registered on the primary app and on the discovery-port app.
"""

from __future__ import annotations

import html
from typing import TYPE_CHECKING, List

from fastapi import Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from tabtuner.core.channels import Channel, ChannelLineup
from tabtuner.service.models import DiscoverResponse, LineupEntry, LineupStatus, TunerStatus

if TYPE_CHECKING:
    from tabtuner.service.app import TunerRuntime

M3U_MEDIA_TYPE = "application/x-mpegurl"


def base_url(request: Request) -> str:
    """Scheme and host (with port) the client used to reach us."""
    return str(request.base_url).rstrip("/")


def runtime_of(request: Request) -> "TunerRuntime":
    return request.app.state.runtime


def stream_url(root: str, channel: Channel) -> str:
    return f"{root}{channel.stream_path}"


def build_lineup(lineup: ChannelLineup, root: str) -> List[LineupEntry]:
    """Lineup entries in configuration order."""
    return [
        LineupEntry(GuideNumber=str(ch.number), GuideName=ch.name, URL=stream_url(root, ch))
        for ch in lineup
    ]


def build_m3u(lineup: ChannelLineup, root: str, with_names: bool = True) -> str:
    """
    Extended M3U playlist sorted by guide number.

    Example:
        #EXTM3U

        #EXTINF:-1 channel-id="kayo-news" tvg-chno="500" tvg-name="Fox Sports News",Fox Sports News
        http://host:5589/stream/news
    """
    entries = []
    for ch in lineup.sorted_by_number():
        attrs = f'channel-id="kayo-{ch.key}" tvg-chno="{ch.number}"'
        if with_names:
            attrs += f' tvg-name="{ch.name}"'
        entries.append(f"#EXTINF:-1 {attrs},{ch.name}\n{stream_url(root, ch)}")
    return "#EXTM3U\n\n" + "\n\n".join(entries)


def build_device_xml(friendly_name: str, device_id: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<root xmlns="urn:schemas-upnp-org:device-1-0">'
        "<specVersion><major>1</major><minor>0</minor></specVersion>"
        "<device>"
        "<deviceType>urn:schemas-upnp-org:device:MediaServer:1</deviceType>"
        f"<friendlyName>{html.escape(friendly_name)}</friendlyName>"
        "<manufacturer>Silicondust</manufacturer>"
        "<modelName>HDHR4-2US</modelName>"
        "<modelNumber>HDHR4-2US</modelNumber>"
        "<serialNumber></serialNumber>"
        f"<UDN>uuid:{html.escape(device_id)}</UDN>"
        "</device>"
        "</root>"
    )


def build_index_html(runtime: "TunerRuntime", root: str, host: str) -> str:
    config = runtime.config
    esc = html.escape
    rows = "".join(
        f'<tr><td align="center">{ch.number}</td><td>{esc(ch.name)}</td>'
        f'<td><a href="{stream_url(root, ch)}">{ch.stream_path}</a></td></tr>'
        for ch in runtime.lineup.sorted_by_number()
    )
    plex_address = f"{root.split('://')[0]}://{host.split(':')[0]}:{config.port}"
    return (
        "<html>"
        "<title>TabTuner</title>"
        "<h2>TabTuner</h2>"
        f"<p>Output Format: <strong>{config.output_format.value.upper()}</strong></p>"
        "<h3>HDHomeRun Emulation</h3>"
        f"<p>Device Name: <strong>{esc(config.friendly_name)}</strong></p>"
        f"<p>Device ID: <strong>{esc(config.device_id)}</strong></p>"
        f"<p>Tuners: <strong>{config.tuner_count}</strong></p>"
        "<p>To add in Plex:</p>"
        "<ol>"
        "<li>Go to Settings &rarr; Live TV &amp; DVR</li>"
        '<li>Click "Set Up Plex DVR"</li>'
        f"<li>Enter this address: <code>{esc(plex_address)}</code></li>"
        "</ol>"
        "<h3>Available Channels</h3>"
        '<table border="1" cellpadding="5" cellspacing="0">'
        "<tr><th>Number</th><th>Name</th><th>Stream URL</th></tr>"
        f"{rows}"
        "</table>"
        "<h3>M3U Playlist</h3>"
        f'<p><a href="{root}/playlist.m3u">Download M3U</a></p>'
        f"<pre>{esc(build_m3u(runtime.lineup, root, with_names=False))}</pre>"
        "<h3>HDHomeRun Discovery URLs</h3>"
        "<ul>"
        '<li><a href="/discover.json">/discover.json</a> - Device discovery</li>'
        '<li><a href="/lineup.json">/lineup.json</a> - Channel lineup</li>'
        '<li><a href="/lineup_status.json">/lineup_status.json</a> - Lineup status</li>'
        '<li><a href="/device.xml">/device.xml</a> - Device XML</li>'
        "</ul>"
        "</html>"
    )


# Handlers


async def discover(request: Request) -> DiscoverResponse:
    """Device identity for DVR auto-discovery."""
    config = runtime_of(request).config
    root = base_url(request)
    return DiscoverResponse(
        FriendlyName=config.friendly_name,
        TunerCount=config.tuner_count,
        DeviceID=config.device_id,
        BaseURL=root,
        LineupURL=f"{root}/lineup.json",
    )


async def device_xml(request: Request) -> Response:
    config = runtime_of(request).config
    return Response(
        content=build_device_xml(config.friendly_name, config.device_id),
        media_type="application/xml",
    )


async def lineup(request: Request) -> List[LineupEntry]:
    return build_lineup(runtime_of(request).lineup, base_url(request))


async def lineup_status(request: Request) -> LineupStatus:
    return LineupStatus()


async def status(request: Request) -> TunerStatus:
    """Live admission counters."""
    return TunerStatus(**runtime_of(request).admission.to_dict())


async def lineup_post(request: Request) -> PlainTextResponse:
    return PlainTextResponse("OK")


async def playlist(request: Request) -> Response:
    return Response(
        content=build_m3u(runtime_of(request).lineup, base_url(request)),
        media_type=M3U_MEDIA_TYPE,
    )


async def index(request: Request) -> HTMLResponse:
    host = request.headers.get("host", request.url.netloc)
    return HTMLResponse(build_index_html(runtime_of(request), base_url(request), host))


DISCOVERY_ROUTES = [
    ("/discover.json", discover, ["GET"]),
    ("/device.xml", device_xml, ["GET"]),
    ("/lineup.json", lineup, ["GET"]),
    ("/lineup_status.json", lineup_status, ["GET"]),
    ("/status.json", status, ["GET"]),
    ("/lineup.post", lineup_post, ["POST"]),
]
