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
HTTP surface of the tuner.

- Primary app: tuner discovery/lineup documents, stream endpoints, M3U, index
- Discovery app: the same discovery/lineup handlers on the conventional
  HDHomeRun port, redirecting stream requests to the primary app

Example:
    >>> from tabtuner.service.app import create_app
    >>> app = create_app(TunerConfig.from_env())
"""

from tabtuner.service.app import TunerRuntime, create_app, create_discovery_app

__all__ = [
    "TunerRuntime",
    "create_app",
    "create_discovery_app",
]
