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


"""TabTuner unified CLI.

Usage:
    # Start the tuner service
    tabtuner serve --port 5589

    # Check that a browser and ffmpeg can be found
    tabtuner doctor
"""

from __future__ import annotations

import argparse
import json
import os
import platform
import sys
from typing import List, Optional

from tabtuner.config import TunerConfig
from tabtuner.core.browser import resolve_executable_path
from tabtuner.core.transcoder import find_ffmpeg
from tabtuner.exceptions import TabTunerError
from tabtuner.utils.logger import configure_logging


def get_version() -> str:
    """Get the TabTuner version."""
    import tabtuner

    return getattr(tabtuner, "__version__", "unknown")


def print_status_line(label: str, message: str) -> None:
    print(f"  [{label:>4}] {message}")


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    version = get_version()
    if args.json:
        info = {
            "tabtuner": version,
            "python": platform.python_version(),
            "platform": platform.system(),
            "architecture": platform.machine(),
        }
        print(json.dumps(info, indent=2))
    else:
        print(f"TabTuner {version}")
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    """Check that the external binaries the pipeline needs are present."""
    try:
        config = TunerConfig.from_env()
    except TabTunerError as e:
        print_status_line("FAIL", f"Configuration: {e.message}")
        return 1

    checks = []
    print(f"TabTuner {get_version()} on Python {platform.python_version()} ({platform.system()})")
    print()

    try:
        import playwright  # noqa: F401

        print_status_line("OK", "Playwright installed")
        checks.append(True)
    except ImportError:
        print_status_line("FAIL", "Playwright not installed (pip install playwright)")
        checks.append(False)

    try:
        print_status_line("OK", f"Browser: {resolve_executable_path(config.chrome_bin)}")
        checks.append(True)
    except TabTunerError as e:
        print_status_line("FAIL", f"Browser: {e.message}")
        checks.append(False)

    try:
        print_status_line("OK", f"FFmpeg: {find_ffmpeg(config.ffmpeg_path)}")
        checks.append(True)
    except TabTunerError as e:
        # Only the mpegts output needs ffmpeg
        label = "FAIL" if config.transcoding else "WARN"
        print_status_line(label, f"FFmpeg: {e.message}")
        checks.append(not config.transcoding)

    print_status_line("INFO", f"Profile dir: {config.profile_dir}")
    print()
    if all(checks):
        print("All checks passed. Start the tuner with: tabtuner serve")
        return 0
    print("Some checks failed. Please fix the issues above.")
    return 1


def cmd_serve(args: argparse.Namespace, remaining: List[str]) -> int:
    """Delegate to the serve CLI."""
    from tabtuner.cli import serve

    return serve.main(remaining)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="tabtuner",
        description="TabTuner - browser tabs as a virtual HDHomeRun tuner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve       Start the tuner service
  doctor      Diagnose installation issues
  version     Show version information

Examples:
  tabtuner serve -o webm -p 8080
  tabtuner doctor
""",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("TABTUNER_LOG_LEVEL", "INFO").upper(),
        help="Set logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.add_argument("--json", "-j", action="store_true", help="Output in JSON format")
    version_parser.set_defaults(func=cmd_version)

    doctor_parser = subparsers.add_parser("doctor", help="Diagnose installation issues")
    doctor_parser.set_defaults(func=cmd_doctor)

    # serve options are parsed by tabtuner.cli.serve
    subparsers.add_parser("serve", help="Start the tuner service", add_help=False)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the unified CLI."""
    parser = create_parser()
    args, remaining = parser.parse_known_args(argv)
    configure_logging(args.log_level)

    if args.command == "serve":
        return cmd_serve(args, remaining)
    if hasattr(args, "func"):
        return args.func(args)
    parser.print_help()
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
