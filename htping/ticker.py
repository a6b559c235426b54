# Copyright 2025 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.

"""
Ticker module for htping.

This module provides a Ticker class that emits ticks at a fixed interval on the
monotonic clock. Tick times are anchored to the start time so that slow
consumers do not accumulate drift. The ticker knows nothing about probe ids or
request limits; the dispatch loop simply stops waiting on it.
"""

import threading
import time
from typing import Callable, Optional


class Ticker:
    """
    Interval ticker driven by the monotonic clock.

    The schedule is ``start_time + n * interval``. When the consumer falls more
    than one interval behind, the missed ticks are dropped and the schedule is
    re-anchored on the current time.
    """

    def __init__(
        self,
        interval_ms: int,
        count: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the Ticker.

        Args:
            interval_ms: Time in milliseconds between ticks (must be >= 1)
            count: Maximum number of ticks to deliver (0 for unbounded)
            clock: Monotonic clock function returning seconds
        """
        if interval_ms < 1:
            raise ValueError(f"Ticker interval must be at least 1ms, got {interval_ms}")
        if count < 0:
            raise ValueError(f"Ticker count must be non-negative, got {count}")
        self.interval = interval_ms / 1000.0
        self.count = count
        self.ticks = 0
        self.start_time: Optional[float] = None
        self._clock = clock
        self._next_tick: Optional[float] = None
        self._stop_event = threading.Event()

    def start(self, current_time: Optional[float] = None) -> None:
        """
        Anchor the schedule so that the first tick fires one interval from now.

        Args:
            current_time: The current monotonic time (uses the clock if not provided)
        """
        if current_time is None:
            current_time = self._clock()
        self.start_time = current_time
        self._next_tick = current_time + self.interval

    def next_tick_time(self, current_time: Optional[float] = None) -> float:
        """
        Compute when the next tick is due.

        Args:
            current_time: The current monotonic time (uses the clock if not provided)

        Returns:
            Monotonic time of the next tick
        """
        if current_time is None:
            current_time = self._clock()
        if self._next_tick is None:
            self.start(current_time)
        assert self._next_tick is not None
        if current_time - self._next_tick > self.interval:
            # Dropped ticks: keep the phase and land on the latest missed tick,
            # which fires immediately.
            missed = int((current_time - self._next_tick) // self.interval)
            self._next_tick += missed * self.interval
        return self._next_tick

    def wait(self) -> bool:
        """
        Block until the next tick.

        Returns:
            True when a tick fired, False when the ticker was stopped or
            has delivered all of its ticks
        """
        if self.exhausted:
            return False
        due = self.next_tick_time()
        remaining = due - self._clock()
        if remaining > 0 and self._stop_event.wait(remaining):
            return False
        if self._stop_event.is_set():
            return False
        self.ticks += 1
        self._next_tick = due + self.interval
        return True

    def stop(self) -> None:
        """Stop the ticker and wake any waiter."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def exhausted(self) -> bool:
        """True once stopped or once ``count`` ticks have been delivered."""
        return self.stopped or (self.count > 0 and self.ticks >= self.count)
