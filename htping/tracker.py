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
# Review for correctness and security.

"""
Outstanding probe tracking for htping.

This module provides an OutstandingTracker class that records which probe ids
have been dispatched but have not yet delivered a result. It backs the drain
barrier of the dispatch loop:
- Every dispatched id is marked outstanding before its worker starts
- Workers mark their id completed after the result event is queued
- The dispatch loop waits until nothing is outstanding before ending the run
"""

import threading
from typing import Optional, Set


class OutstandingTracker:
    """
    Tracks in-flight probe ids.

    Unlike a bounded worker pool this class never refuses work; it only
    counts it so that the end of the run can wait for every launched probe.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._outstanding: Set[int] = set()
        self._dispatched = 0
        self._completed = 0

    def mark_dispatched(self, probe_id: int) -> None:
        """
        Mark a probe id as in flight.

        Args:
            probe_id: The probe id being dispatched
        """
        with self._lock:
            self._outstanding.add(probe_id)
            self._dispatched += 1

    def mark_completed(self, probe_id: int) -> bool:
        """
        Mark a probe id as finished, removing it from outstanding tracking.

        Args:
            probe_id: The probe id that delivered its result

        Returns:
            True if the id was outstanding, False otherwise
        """
        with self._lock:
            if probe_id not in self._outstanding:
                return False
            self._outstanding.remove(probe_id)
            self._completed += 1
            if not self._outstanding:
                self._idle.notify_all()
            return True

    def outstanding_count(self) -> int:
        with self._lock:
            return len(self._outstanding)

    def outstanding_ids(self) -> Set[int]:
        """Return a copy of the in-flight probe ids."""
        with self._lock:
            return self._outstanding.copy()

    @property
    def dispatched(self) -> int:
        with self._lock:
            return self._dispatched

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no probe is outstanding.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if the tracker drained, False if the timeout expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._outstanding, timeout=timeout)
