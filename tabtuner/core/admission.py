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
Admission control for stream sessions.

Capturing a page costs a lot of CPU, memory and GPU, so only a fixed number
of sessions may stream at once. Callers over the limit queue up for a
bounded time instead of being rejected outright, which gives bursty DVR
clients (channel scans, quick re-tunes) a grace window.

Concurrency here is cooperative: counters are only touched between
suspension points, so no lock is needed.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Deque, Dict

from tabtuner.utils.logger import logger


class AdmissionController:
    """
    Counting limiter with a FIFO queue of waiters.

    A released slot is handed directly to the oldest waiter still queued, so
    a newcomer can never overtake someone who has been waiting.

    Invariants:
        0 <= active <= capacity

    Example:
        >>> admission = AdmissionController(capacity=2)
        >>> if await admission.try_admit(timeout=5.0):
        ...     try:
        ...         ...
        ...     finally:
        ...         admission.release()
    """

    def __init__(self, capacity: int = 2) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @property
    def waiting(self) -> int:
        """Number of callers queued for a slot."""
        return sum(1 for w in self._waiters if not w.done())

    async def try_admit(self, timeout: float) -> bool:
        """
        Take a slot, waiting up to ``timeout`` seconds for one to free up.

        Returns:
            True if a slot is now held by the caller, False on timeout.
            A False result leaves no trace in the queue.
        """
        if self._active < self.capacity and not self._waiters:
            self._active += 1
            return True

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await asyncio.wait({waiter}, timeout=timeout)
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just as we were cancelled; pass it on
                self.release()
            else:
                self._remove(waiter)
            raise

        if waiter.done():
            return True

        self._remove(waiter)
        return False

    def release(self) -> None:
        """
        Give a slot back, waking the oldest waiter if there is one.

        The slot moves straight to that waiter, so the active count is
        unchanged in that case.
        """
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(True)
                return

        if self._active <= 0:
            logger.warning("[Streams] release() without a held slot ignored")
            return
        self._active -= 1

    def _remove(self, waiter: asyncio.Future) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        if not waiter.done():
            waiter.cancel()

    def to_dict(self) -> Dict[str, Any]:
        """Live counters in the shape of the tuner status document."""
        return {"ActiveStreams": self._active, "MaxStreams": self.capacity}
