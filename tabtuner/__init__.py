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
TabTuner - browser tabs as live TV channels.

Plays a channel in a real Chromium page, records the tab, and serves the
media as a continuous HTTP stream behind a virtual HDHomeRun tuner so DVR
software can record it.
"""

__version__ = "0.3.0"
__author__ = "Firefly Software Solutions Inc"
__license__ = "Apache-2.0"

from tabtuner.config import OutputFormat, TunerConfig
from tabtuner.core.admission import AdmissionController
from tabtuner.core.browser import BrowserManager
from tabtuner.core.channels import Channel, ChannelLineup, default_lineup, load_channels
from tabtuner.core.page_pool import PagePool
from tabtuner.core.pipeline import CapturePipeline
from tabtuner.core.session import SessionState, StreamSession

__all__ = [
    # Config
    "OutputFormat",
    "TunerConfig",
    # Core
    "AdmissionController",
    "BrowserManager",
    "CapturePipeline",
    "PagePool",
    "SessionState",
    "StreamSession",
    # Channels
    "Channel",
    "ChannelLineup",
    "default_lineup",
    "load_channels",
]
