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


"""TabTuner Server CLI.

Command-line interface for starting the tuner service.

Usage:
    tabtuner-serve [-v BPS] [-a BPS] [-f FPS] [-p PORT] [-w WIDTH] [-H HEIGHT]
                   [-m] [-o {webm,mpegts}]

    Or with Python:
    python -m tabtuner.cli.serve

Environment Variables:
    TABTUNER_PORT=5589
    TABTUNER_OUTPUT_FORMAT=mpegts
    TABTUNER_MAX_STREAMS=2
    CHROME_BIN=/usr/bin/chromium
"""

from __future__ import annotations

import argparse
import asyncio
import os
import socket
import sys
from typing import List, Optional

from tabtuner.config import OutputFormat, TunerConfig
from tabtuner.exceptions import TabTunerError
from tabtuner.utils.logger import configure_logging, logger

BANNER = r"""  _        _     _
 | |_ __ _| |__ | |_ _   _ _ __   ___ _ __
 | __/ _` | '_ \| __| | | | '_ \ / _ \ '__|
 | || (_| | |_) | |_| |_| | | | |  __/ |
  \__\__,_|_.__/ \__|\__,_|_| |_|\___|_|"""


def create_parser() -> argparse.ArgumentParser:
    """Create the serve argument parser.

    Defaults come from TABTUNER_* variables, falling back to built-in values.
    """
    defaults = TunerConfig.from_env()
    parser = argparse.ArgumentParser(
        prog="tabtuner-serve",
        description="Start the TabTuner service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tabtuner-serve                        # MPEG-TS on port 5589
  tabtuner-serve -o webm -p 8080        # Raw WebM on port 8080
  tabtuner-serve -v 6000000 -f 30 -m    # Lower bitrate, minimized window
        """,
    )

    parser.add_argument(
        "-v", "--video-bitrate",
        type=int,
        default=defaults.video_bitrate,
        help=f"Video bitrate in bits per second (default: {defaults.video_bitrate})",
    )
    parser.add_argument(
        "-a", "--audio-bitrate",
        type=int,
        default=defaults.audio_bitrate,
        help=f"Audio bitrate in bits per second (default: {defaults.audio_bitrate})",
    )
    parser.add_argument(
        "-f", "--frame-rate",
        type=int,
        default=defaults.min_frame_rate,
        help=f"Minimum frame rate (default: {defaults.min_frame_rate})",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=defaults.port,
        help=f"Port number for the server (default: {defaults.port})",
    )
    parser.add_argument(
        "-w", "--width",
        type=int,
        default=defaults.width,
        help=f"Video width in pixels (default: {defaults.width})",
    )
    parser.add_argument(
        "-H", "--height",
        type=int,
        default=defaults.height,
        help=f"Video height in pixels (default: {defaults.height})",
    )
    parser.add_argument(
        "-m", "--minimize-window",
        action="store_true",
        default=defaults.minimize_window,
        help="Minimize the browser window after sizing it",
    )
    parser.add_argument(
        "-o", "--output-format",
        choices=[f.value for f in OutputFormat],
        default=defaults.output_format.value,
        help=f"Output container (default: {defaults.output_format.value})",
    )
    parser.add_argument(
        "--host",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})",
    )
    parser.add_argument(
        "--max-streams",
        type=int,
        default=defaults.max_streams,
        help=f"Concurrent stream limit (default: {defaults.max_streams})",
    )
    parser.add_argument(
        "--channels-file",
        default=defaults.channels_file,
        help="JSON file replacing the built-in channel lineup",
    )
    parser.add_argument(
        "--data-dir",
        default=str(defaults.data_dir),
        help="Directory holding the browser profile (default: platform specific)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("TABTUNER_LOG_LEVEL", "info").lower(),
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    return parser


def build_config(args: argparse.Namespace) -> TunerConfig:
    """Turn parsed arguments into a TunerConfig."""
    return TunerConfig.from_env(
        video_bitrate=args.video_bitrate,
        audio_bitrate=args.audio_bitrate,
        min_frame_rate=args.frame_rate,
        max_frame_rate=max(args.frame_rate, TunerConfig.max_frame_rate),
        port=args.port,
        width=args.width,
        height=args.height,
        minimize_window=args.minimize_window,
        output_format=args.output_format,
        host=args.host,
        max_streams=args.max_streams,
        channels_file=args.channels_file,
        data_dir=args.data_dir,
    )


def print_settings(config: TunerConfig) -> None:
    print()
    print(BANNER)
    print()
    print("  Selected settings:")
    print(f"  Video Bitrate: {config.video_bitrate} bps ({config.video_bitrate / 1_000_000:g}Mbps)")
    print(f"  Audio Bitrate: {config.audio_bitrate} bps ({config.audio_bitrate / 1000:g}kbps)")
    print(f"  Minimum Frame Rate: {config.min_frame_rate} fps")
    print(f"  Port: {config.port}")
    print(f"  Resolution: {config.width}x{config.height}")
    print(f"  Output Format: {config.output_format.value}")
    print(f"  Max Streams: {config.max_streams}")
    print(f"  Profile Dir: {config.profile_dir}")
    print()


def port_available(host: str, port: int) -> bool:
    """True if ``port`` can be bound on ``host`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


async def run_servers(config: TunerConfig, log_level: str = "info") -> None:
    """Run the primary listener and, if possible, the discovery listener."""
    import uvicorn

    from tabtuner.service.app import TunerRuntime, create_app, create_discovery_app

    runtime = TunerRuntime.build(config)
    primary = uvicorn.Server(
        uvicorn.Config(create_app(runtime=runtime), host=config.host, port=config.port, log_level=log_level)
    )
    logger.info(f"[HDHomeRun] Device ID: {config.device_id}")
    logger.info(f"[HDHomeRun] To add in Plex: Enter this server address: http://YOUR_IP:{config.port}")

    discovery: Optional[uvicorn.Server] = None
    if config.discovery_enabled:
        if port_available(config.host, config.discovery_port):
            discovery = uvicorn.Server(
                uvicorn.Config(
                    create_discovery_app(runtime),
                    host=config.host,
                    port=config.discovery_port,
                    log_level=log_level,
                    lifespan="off",
                )
            )
        else:
            logger.info(
                f"[HDHomeRun] Port {config.discovery_port} already in use, "
                f"using main port {config.port} only"
            )

    discovery_task = None
    if discovery is not None:
        discovery_task = asyncio.create_task(_serve_discovery(discovery, config.discovery_port))
    try:
        await primary.serve()
    finally:
        if discovery_task is not None:
            discovery.should_exit = True
            await discovery_task


async def _serve_discovery(server, port: int) -> None:
    logger.info(f"[HDHomeRun] Also listening on standard port {port}")
    try:
        await server.serve()
    except SystemExit:
        # uvicorn exits when it cannot bind
        logger.info(f"[HDHomeRun] Could not bind port {port}, using main port only")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the serve command."""
    try:
        # Defaults are read from the environment
        parser = create_parser()
    except TabTunerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = build_config(args)
    except TabTunerError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    try:
        import uvicorn  # noqa: F401
    except ImportError:
        print("Error: uvicorn is not installed. Install it with:")
        print("  pip install uvicorn[standard]")
        return 1

    print_settings(config)
    asyncio.run(run_servers(config, log_level=args.log_level.lower()))
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
