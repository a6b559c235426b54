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
Probe history and display state for htping.

The History keeps one record per probe id in dispatch order. Completions can
arrive in any order; they are matched by id and replace the pending record in
place, so the display order never changes once an id has been dispatched.

DisplayModel is the reducer driven by the UI loop. It is the only writer of the
History, so no locking is needed here.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from htping.prober import new_probe_record

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 25
TERMINAL_STATUSES = frozenset(("success", "failure"))


class History:
    """Insertion-ordered mapping of probe id to probe record."""

    def __init__(self) -> None:
        self._records: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, probe_id: object) -> bool:
        return probe_id in self._records

    def get(self, probe_id: int) -> Optional[Dict[str, Any]]:
        return self._records.get(probe_id)

    def add_pending(self, probe_id: int, dispatched_at: Optional[float] = None) -> bool:
        """
        Append a pending record for a newly dispatched id.

        Args:
            probe_id: The dispatched probe id
            dispatched_at: Monotonic dispatch time, kept for diagnostics

        Returns:
            True if a record was appended, False for a duplicate id
        """
        if probe_id in self._records:
            logger.warning("Ignoring duplicate pending event for probe %d", probe_id)
            return False
        record = new_probe_record(probe_id)
        record["dispatched_at"] = dispatched_at
        self._records[probe_id] = record
        return True

    def complete(self, record: Dict[str, Any]) -> bool:
        """
        Apply a completion record.

        The pending record with the same id is replaced where it stands. A
        completion for an unknown id is appended; a second completion for an id
        that is already terminal is ignored.

        Returns:
            True if the history changed
        """
        probe_id = record["id"]
        existing = self._records.get(probe_id)
        if existing is None:
            logger.warning("Completion for unknown probe %d; appending", probe_id)
            self._records[probe_id] = dict(record)
            return True
        if existing["status"] in TERMINAL_STATUSES:
            logger.warning("Ignoring repeated completion for probe %d", probe_id)
            return False
        updated = dict(record)
        updated.setdefault("dispatched_at", existing.get("dispatched_at"))
        self._records[probe_id] = updated
        return True

    def records(self) -> List[Dict[str, Any]]:
        """Return all records in dispatch order."""
        return list(self._records.values())

    def window(self, size: int) -> List[Dict[str, Any]]:
        """
        Return the last ``size`` records in dispatch order.

        Windowing is a view over the history; nothing is dropped.
        """
        records = self.records()
        if size >= len(records):
            return records
        if size <= 0:
            return []
        return records[-size:]

    def pending_count(self) -> int:
        return sum(1 for record in self._records.values() if record["status"] == "pending")


class DisplayModel:
    """
    Single-threaded reducer over the htping event stream.

    Events are dicts with a ``type`` of ``pending``, ``result``, ``resize`` or
    ``quit``. Once a quit event has been applied the model is exiting and all
    further events are dropped.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE, width: int = 80, height: int = 24) -> None:
        self.history = History()
        self.window_size = window_size
        self.width = width
        self.height = height
        self.state = "running"
        self.quit_reason: Optional[str] = None

    @property
    def exiting(self) -> bool:
        return self.state == "exiting"

    def update(self, event: Dict[str, Any]) -> bool:
        """
        Apply one event.

        Returns:
            True if the visible output may have changed
        """
        if self.exiting:
            logger.debug("Model exiting; dropping %s event", event.get("type"))
            return False

        event_type = event.get("type")
        if event_type == "pending":
            return self.history.add_pending(event["id"], event.get("dispatched_at"))
        if event_type == "result":
            return self.history.complete(event["probe"])
        if event_type == "resize":
            width = event.get("width") or self.width
            height = event.get("lines") or self.height
            if (width, height) == (self.width, self.height):
                return False
            self.width = width
            self.height = height
            return True
        if event_type == "quit":
            self.state = "exiting"
            self.quit_reason = event.get("reason")
            logger.info("Stopping display (%s)", self.quit_reason)
            return True
        logger.warning("Unknown event type: %r", event_type)
        return False

    @property
    def max_frame_lines(self) -> int:
        """Physical lines the live region may use; the last row holds the cursor."""
        return max(self.height - 1, 1)

    def visible_records(self) -> List[Dict[str, Any]]:
        return self.history.window(self.window_size)
