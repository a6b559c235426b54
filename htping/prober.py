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
HTTP probe execution for htping.

This module performs a single HTTP round trip for a probe id and turns it into
a completion record. Transport failures are captured as data on the record;
they never propagate to the dispatch loop.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx

from htping.json_filter import JsonFilterError, filter_json, is_json_content_type

logger = logging.getLogger(__name__)

CLOCK_FORMAT = "%H:%M:%S.%f"


def new_probe_record(probe_id: int, status: str = "pending") -> Dict[str, Any]:
    """Create an empty probe record with every field present."""
    return {
        "id": probe_id,
        "status": status,
        "start": None,
        "end": None,
        "duration": None,
        "status_code": None,
        "url": None,
        "payload": None,
        "payload_error": None,
        "error": None,
    }


def build_client(insecure: bool = False, timeout: Optional[float] = None) -> httpx.Client:
    """
    Build the shared HTTP client used by every probe.

    Args:
        insecure: Skip TLS certificate verification
        timeout: Per-request timeout in seconds (None leaves requests unbounded)

    Returns:
        httpx.Client with pooled connections that follows redirects
    """
    return httpx.Client(
        follow_redirects=True,
        verify=not insecure,
        timeout=httpx.Timeout(timeout),
    )


def format_clock(moment: Optional[datetime]) -> str:
    """Format a timestamp as HH:MM:SS.mmm."""
    if moment is None:
        return ""
    return moment.strftime(CLOCK_FORMAT)[:-3]


def _format_seconds(seconds: float) -> str:
    text = f"{seconds:.3f}".rstrip("0").rstrip(".")
    return f"{text}s"


def format_duration(seconds: Optional[float]) -> str:
    """
    Format a duration rounded to milliseconds.

    Examples: ``0s``, ``87ms``, ``1.204s``, ``2m5.1s``, ``1h0m3s``.
    """
    if seconds is None:
        return ""
    total_ms = int(round(seconds * 1000))
    if total_ms == 0:
        return "0s"
    if total_ms < 1000:
        return f"{total_ms}ms"
    hours, remainder_ms = divmod(total_ms, 3_600_000)
    minutes, remainder_ms = divmod(remainder_ms, 60_000)
    secs = _format_seconds(remainder_ms / 1000.0)
    if hours:
        return f"{hours}h{minutes}m{secs}"
    if minutes:
        return f"{minutes}m{secs}"
    return secs


def _describe_error(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__


def _filter_response(response: httpx.Response, json_filter: str) -> Dict[str, Optional[str]]:
    """Apply the jq filter to a response, returning payload fields for the record."""
    content_type = response.headers.get("Content-Type", "")
    if not is_json_content_type(content_type):
        return {"payload": None, "payload_error": f"Invalid content type: {content_type}"}
    try:
        body = response.read()
    except httpx.HTTPError as exc:
        return {"payload": None, "payload_error": _describe_error(exc)}
    try:
        return {"payload": filter_json(body, json_filter), "payload_error": None}
    except JsonFilterError as exc:
        return {"payload": None, "payload_error": str(exc)}


def probe_url(
    client: httpx.Client,
    method: str,
    url: str,
    probe_id: int,
    json_filter: str = "",
) -> Dict[str, Any]:
    """
    Perform one HTTP probe and build its completion record.

    The end time is taken as soon as the response headers arrive (or the
    request fails), so the duration covers connection setup and the full
    round trip but not reading the body for the filter.

    Args:
        client: Shared httpx client
        method: HTTP method
        url: Target URL
        probe_id: Sequence id of this probe
        json_filter: Optional jq expression applied to JSON responses

    Returns:
        A probe record with status 'success' or 'failure'
    """
    record = new_probe_record(probe_id)
    record["start"] = datetime.now()
    started = time.monotonic()
    try:
        with client.stream(method, url) as response:
            duration = time.monotonic() - started
            record["duration"] = duration
            record["end"] = record["start"] + timedelta(seconds=duration)
            record["status"] = "success"
            record["status_code"] = response.status_code
            record["url"] = str(response.url)
            if json_filter:
                record.update(_filter_response(response, json_filter))
    except httpx.HTTPError as exc:
        if record["duration"] is None:
            duration = time.monotonic() - started
            record["duration"] = duration
            record["end"] = record["start"] + timedelta(seconds=duration)
        if record["status"] == "success":
            # Raised while closing an otherwise complete response.
            logger.debug("Probe %d: error closing response: %s", probe_id, exc)
            return record
        record["status"] = "failure"
        record["error"] = _describe_error(exc)
        logger.debug("Probe %d failed: %s", probe_id, record["error"])
        return record

    logger.debug(
        "Probe %d: %s %s in %s",
        probe_id,
        record["status_code"],
        record["url"],
        format_duration(record["duration"]),
    )
    return record
