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


"""Logging configuration for TabTuner."""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str = "tabtuner",
    level: int = logging.INFO,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Setup and configure a logger for TabTuner.

    Args:
        name: Logger name
        level: Logging level
        format_string: Custom format string for log messages

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    logger.addHandler(handler)

    return logger


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Reconfigure the package logger, accepting level names from the CLI."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    return setup_logger(level=level)


class SessionLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with a session id.

    Example:
        >>> log = SessionLogger(logger, "espn-1a2b")
        >>> log.info("Playback started")   # "[espn-1a2b] Playback started"
    """

    def __init__(self, base: logging.Logger, session_id: str) -> None:
        super().__init__(base, {"session_id": session_id})
        self.session_id = session_id

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.session_id}] {msg}", kwargs


# Default logger instance
logger = setup_logger()
