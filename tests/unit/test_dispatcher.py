#!/usr/bin/env python3
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
Unit tests for htping.dispatcher module.

Covers:
- Fire-and-forget dispatch paced by the ticker
- Draining of in-flight probes before the end-of-run quit event
- Early stop via stop_event
- Crashing probe functions turned into failure records
"""

import logging
import os
import queue
import sys
import threading
import time
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from htping.dispatcher import dispatch_probes, start_dispatcher  # noqa: E402
from htping.prober import new_probe_record  # noqa: E402
from htping.ticker import Ticker  # noqa: E402
from htping.tracker import OutstandingTracker  # noqa: E402


def _drain(event_queue):
    events = []
    while True:
        try:
            events.append(event_queue.get_nowait())
        except queue.Empty:
            return events


def _instant_probe(probe_id):
    record = new_probe_record(probe_id, status="success")
    record["status_code"] = 200
    return record


class TestDispatchProbes(unittest.TestCase):
    """Tests for dispatch_probes."""

    def test_limit_dispatches_exact_count(self):
        event_queue = queue.Queue()
        ticker = Ticker(10)
        dispatched = dispatch_probes(ticker, _instant_probe, event_queue, limit=4)
        self.assertEqual(dispatched, 4)
        events = _drain(event_queue)
        pending_ids = [e["id"] for e in events if e["type"] == "pending"]
        result_ids = sorted(e["probe"]["id"] for e in events if e["type"] == "result")
        self.assertEqual(pending_ids, [1, 2, 3, 4])
        self.assertEqual(result_ids, [1, 2, 3, 4])
        self.assertEqual(events[-1], {"type": "quit", "reason": "end"})
        self.assertTrue(ticker.stopped)

    def test_pending_precedes_result_for_each_id(self):
        event_queue = queue.Queue()
        dispatch_probes(Ticker(5), _instant_probe, event_queue, limit=3)
        events = _drain(event_queue)
        for probe_id in (1, 2, 3):
            pending_index = next(i for i, e in enumerate(events) if e["type"] == "pending" and e["id"] == probe_id)
            result_index = next(
                i for i, e in enumerate(events) if e["type"] == "result" and e["probe"]["id"] == probe_id
            )
            self.assertLess(pending_index, result_index)

    def test_drain_waits_for_slow_probe(self):
        """The quit event is queued only after every launched probe finished."""

        def probe_fn(probe_id):
            if probe_id == 3:
                time.sleep(0.3)
            return _instant_probe(probe_id)

        event_queue = queue.Queue()
        tracker = OutstandingTracker()
        with logging.captured_logs("htping.dispatcher", logging.INFO) as records:
            dispatch_probes(Ticker(10), probe_fn, event_queue, limit=5, tracker=tracker)
        self.assertTrue(any(r.getMessage() == "Drained: 5 dispatched, 5 completed" for r in records))
        events = _drain(event_queue)
        results = [e for e in events if e["type"] == "result"]
        self.assertEqual(len(results), 5)
        self.assertEqual(results[-1]["probe"]["id"], 3)
        self.assertEqual(events[-1]["type"], "quit")
        self.assertEqual(tracker.outstanding_count(), 0)
        self.assertEqual(tracker.completed, 5)

    def test_probes_overlap(self):
        """A slow probe does not delay dispatch of the next one."""
        release = threading.Event()

        def probe_fn(probe_id):
            release.wait(1.0)
            return _instant_probe(probe_id)

        event_queue = queue.Queue()
        started = time.monotonic()
        thread = threading.Thread(target=dispatch_probes, args=(Ticker(20), probe_fn, event_queue, 3))
        thread.start()
        try:
            deadline = started + 0.5
            pending = []
            while len(pending) < 3 and time.monotonic() < deadline:
                try:
                    event = event_queue.get(timeout=0.05)
                except queue.Empty:
                    continue
                if event["type"] == "pending":
                    pending.append(event["id"])
            self.assertEqual(pending, [1, 2, 3])
            self.assertLess(time.monotonic() - started, 0.5)
        finally:
            release.set()
            thread.join(timeout=2.0)
        self.assertFalse(thread.is_alive())

    def test_dispatch_spacing(self):
        event_queue = queue.Queue()
        dispatch_probes(Ticker(100), _instant_probe, event_queue, limit=3)
        stamps = [e["dispatched_at"] for e in _drain(event_queue) if e["type"] == "pending"]
        self.assertEqual(len(stamps), 3)
        for earlier, later in zip(stamps, stamps[1:]):
            self.assertGreater(later - earlier, 0.08)
            self.assertLess(later - earlier, 0.2)

    def test_stop_event_ends_dispatch(self):
        event_queue = queue.Queue()
        stop_event = threading.Event()
        ticker = Ticker(20)
        thread = threading.Thread(
            target=dispatch_probes, args=(ticker, _instant_probe, event_queue, 0, stop_event)
        )
        thread.start()
        time.sleep(0.1)
        stop_event.set()
        ticker.stop()
        thread.join(timeout=1.0)
        self.assertFalse(thread.is_alive())
        events = _drain(event_queue)
        self.assertGreaterEqual(len([e for e in events if e["type"] == "pending"]), 1)
        self.assertEqual(events[-1], {"type": "quit", "reason": "end"})

    def test_stop_event_set_before_start(self):
        event_queue = queue.Queue()
        stop_event = threading.Event()
        stop_event.set()
        dispatched = dispatch_probes(Ticker(10), _instant_probe, event_queue, stop_event=stop_event)
        self.assertEqual(dispatched, 0)
        self.assertEqual(_drain(event_queue), [{"type": "quit", "reason": "end"}])

    def test_crashing_probe_becomes_failure(self):
        def probe_fn(probe_id):
            raise RuntimeError("boom")

        event_queue = queue.Queue()
        with logging.captured_logs("htping.dispatcher", logging.ERROR) as records:
            dispatch_probes(Ticker(10), probe_fn, event_queue, limit=1)
        events = _drain(event_queue)
        result = next(e["probe"] for e in events if e["type"] == "result")
        self.assertEqual(result["status"], "failure")
        self.assertEqual(result["error"], "internal error: boom")
        self.assertEqual(events[-1]["type"], "quit")
        self.assertTrue(any("crashed" in r.getMessage() for r in records))


class TestStartDispatcher(unittest.TestCase):
    """Tests for start_dispatcher."""

    def test_runs_in_daemon_thread(self):
        event_queue = queue.Queue()
        thread = start_dispatcher(Ticker(10), _instant_probe, event_queue, limit=2)
        self.assertTrue(thread.daemon)
        thread.join(timeout=1.0)
        self.assertFalse(thread.is_alive())
        events = _drain(event_queue)
        self.assertEqual(events[-1]["type"], "quit")
        self.assertEqual(len([e for e in events if e["type"] == "result"]), 2)


if __name__ == "__main__":
    unittest.main()
