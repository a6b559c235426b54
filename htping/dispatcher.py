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
Probe dispatching for htping.

The dispatch loop fires one probe immediately and one per tick afterwards,
without waiting for earlier probes to finish. Each probe runs in its own
thread. A "pending" event is queued synchronously before the thread starts so
that the UI can show the probe as in flight right away.

When the request limit is reached (or a stop is requested) the loop stops
dispatching, waits for every launched probe to deliver its result, and only
then queues the end-of-run quit event.
"""

import logging
import threading
import time
from queue import Queue
from typing import Any, Callable, Dict, Optional

from htping.prober import new_probe_record
from htping.ticker import Ticker
from htping.tracker import OutstandingTracker

logger = logging.getLogger(__name__)

ProbeFn = Callable[[int], Dict[str, Any]]


def _run_probe(
    probe_id: int,
    probe_fn: ProbeFn,
    event_queue: "Queue[Dict[str, Any]]",
    tracker: OutstandingTracker,
) -> None:
    """Worker body: run one probe and queue its result event."""
    try:
        record = probe_fn(probe_id)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        # Keep the drain barrier intact: every dispatched id must complete.
        logger.exception("Probe %d crashed", probe_id)
        record = new_probe_record(probe_id, status="failure")
        record["error"] = f"internal error: {exc}"
    try:
        event_queue.put({"type": "result", "probe": record})
    finally:
        tracker.mark_completed(probe_id)


def dispatch_probes(
    ticker: Ticker,
    probe_fn: ProbeFn,
    event_queue: "Queue[Dict[str, Any]]",
    limit: int = 0,
    stop_event: Optional[threading.Event] = None,
    tracker: Optional[OutstandingTracker] = None,
) -> int:
    """
    Dispatch probes on every tick until the limit is reached or a stop is requested.

    Args:
        ticker: Ticker pacing the probes (stopped before this function returns)
        probe_fn: Callable performing one probe for an id and returning its record
        event_queue: Queue receiving pending, result and quit events
        limit: Total number of probes to send (0 for unlimited)
        stop_event: Event that ends dispatching early
        tracker: Optional OutstandingTracker (creates new if None)

    Returns:
        Number of probes dispatched
    """
    if tracker is None:
        tracker = OutstandingTracker()

    probe_id = 1
    ticker.start()
    try:
        while True:
            if limit and probe_id > limit:
                break
            if stop_event is not None and stop_event.is_set():
                break

            event_queue.put({"type": "pending", "id": probe_id, "dispatched_at": time.monotonic()})
            tracker.mark_dispatched(probe_id)
            worker = threading.Thread(
                target=_run_probe,
                args=(probe_id, probe_fn, event_queue, tracker),
                name=f"htping-probe-{probe_id}",
                daemon=True,
            )
            worker.start()
            probe_id += 1

            if limit and probe_id > limit:
                break
            if not ticker.wait():
                break
    finally:
        ticker.stop()

    dispatched = probe_id - 1
    logger.info("Dispatched %d probe(s); waiting for %d in flight", dispatched, tracker.outstanding_count())
    logger.debug("In flight: %s", sorted(tracker.outstanding_ids()))
    tracker.wait_idle()
    logger.info("Drained: %d dispatched, %d completed", tracker.dispatched, tracker.completed)
    event_queue.put({"type": "quit", "reason": "end"})
    return dispatched


def start_dispatcher(
    ticker: Ticker,
    probe_fn: ProbeFn,
    event_queue: "Queue[Dict[str, Any]]",
    limit: int = 0,
    stop_event: Optional[threading.Event] = None,
) -> threading.Thread:
    """
    Run dispatch_probes in a background daemon thread.

    The thread is a daemon so that a user quit can unwind the process without
    waiting for the drain.
    """
    thread = threading.Thread(
        target=dispatch_probes,
        args=(ticker, probe_fn, event_queue, limit, stop_event),
        name="htping-dispatcher",
        daemon=True,
    )
    thread.start()
    return thread
