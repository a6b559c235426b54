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
htping UI Rendering Module

This module contains the text rendering for htping: ANSI text utilities,
status colouring, probe line formatting, wrapping to the terminal width and
the in-place repaint of the live region.
"""

import os
import re
import sys
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple

from htping.prober import format_clock, format_duration

ANSI_RESET = "\x1b[0m"
ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")
STATUS_COLORS = {
    "success": "\x1b[32m",  # Green
    "client_error": "\x1b[33m",  # Yellow
    "server_error": "\x1b[31m",  # Red
    "error": "\x1b[31m",  # Red
    "payload": "\x1b[36m",  # Cyan
}

# Cursor control for repainting the live region
CURSOR_PREVIOUS_LINES = "\x1b[{count}F"
CURSOR_NEXT_LINE = "\x1b[1E"
CLEAR_LINE = "\x1b[2K"
CLEAR_TO_END = "\x1b[J"


# ============================================================================
# ANSI/Text Utility Functions
# ============================================================================


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return ANSI_ESCAPE_RE.sub("", text)


def visible_len(text: str) -> int:
    """Get the visible length of text (excluding ANSI codes)."""
    return len(strip_ansi(text))


def colorize_text(text: str, status: Optional[str], use_color: bool) -> str:
    """Apply color to text based on status."""
    if not use_color or not status:
        return text
    color = STATUS_COLORS.get(status)
    if not color:
        return text
    return f"{color}{text}{ANSI_RESET}"


def wrap_visible(text: str, width: int) -> List[str]:
    """
    Hard-wrap text to a visible width, preserving ANSI codes.

    A colour that is active at a break is closed at the end of the line and
    reopened at the start of the next one.

    Returns:
        List of physical lines (a single element when no wrapping is needed)
    """
    if width <= 0 or visible_len(text) <= width:
        return [text]
    lines: List[str] = []
    current: List[str] = []
    active = ""
    visible_count = 0
    index = 0
    while index < len(text):
        if text[index] == "\x1b":
            match = ANSI_ESCAPE_RE.match(text, index)
            if match:
                code = match.group(0)
                current.append(code)
                active = "" if code == ANSI_RESET else code
                index = match.end()
                continue
        if visible_count == width:
            if active:
                current.append(ANSI_RESET)
            lines.append("".join(current))
            current = [active] if active else []
            visible_count = 0
        current.append(text[index])
        visible_count += 1
        index += 1
    lines.append("".join(current))
    return lines


# ============================================================================
# Probe Formatting Functions
# ============================================================================


def status_class(status_code: Optional[int]) -> Optional[str]:
    """
    Bucket an HTTP status code for colouring.

    Returns:
        'success' for 2xx, 'client_error' for 4xx, 'server_error' for 5xx,
        None for everything else
    """
    if status_code is None:
        return None
    if 200 <= status_code <= 299:
        return "success"
    if 400 <= status_code <= 499:
        return "client_error"
    if 500 <= status_code <= 599:
        return "server_error"
    return None


def format_status_code(status_code: int, use_color: bool) -> str:
    return colorize_text(str(status_code), status_class(status_code), use_color)


def _format_timing(record: Dict[str, Any]) -> str:
    return (
        f"start={format_clock(record['start'])}, "
        f"duration={format_duration(record['duration'])}, "
        f"end={format_clock(record['end'])}"
    )


def format_probe_line(record: Dict[str, Any], use_color: bool = False) -> str:
    """
    Format one probe record as a single display line.

    Pending probes show only their id. Failures show timing and the error.
    Successes show timing, final URL, status code and the filter output.
    """
    probe_id = record["id"]
    status = record["status"]
    if status == "pending":
        return f"{probe_id}:"
    if status == "failure":
        error = colorize_text(record.get("error") or "", "error", use_color)
        return f"{probe_id}: {_format_timing(record)} {error}"

    line = f"{probe_id}: {_format_timing(record)}, url={record['url']} [{format_status_code(record['status_code'], use_color)}]"
    if record.get("payload_error"):
        line += " " + colorize_text(record["payload_error"], "error", use_color)
    elif record.get("payload"):
        payload = record["payload"]
        prefix, sep, value = payload.partition(" ")
        if sep:
            payload = f"{prefix}{sep}{colorize_text(value, 'payload', use_color)}"
        line += " " + payload
    return line


def build_probe_lines(records: Sequence[Dict[str, Any]], use_color: bool = False) -> List[str]:
    """Format records in order, one logical line per probe."""
    return [format_probe_line(record, use_color) for record in records]


def build_frame_lines(
    records: Sequence[Dict[str, Any]],
    width: int,
    use_color: bool = False,
    max_lines: int = 0,
) -> List[str]:
    """
    Format the visible records and wrap them to the terminal width.

    When ``max_lines`` is positive only the last ``max_lines`` physical lines
    are kept, so the frame never scrolls the terminal and the cursor-up
    repaint stays on the region.
    """
    lines: List[str] = []
    for line in build_probe_lines(records, use_color):
        lines.extend(wrap_visible(line, width))
    if max_lines > 0 and len(lines) > max_lines:
        lines = lines[-max_lines:]
    return lines


def render_final(records: Sequence[Dict[str, Any]], use_color: bool = False) -> str:
    """Render the full history once, in dispatch order."""
    lines = build_probe_lines(records, use_color)
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def format_banner(method: str, url: str, interval_ms: int) -> str:
    return f"{method} {url} [{interval_ms}ms]"


# ============================================================================
# Terminal Functions
# ============================================================================


def get_terminal_size(fallback: Tuple[int, int] = (80, 24)) -> os.terminal_size:
    """
    Get the terminal size by directly querying the terminal.

    This function uses os.get_terminal_size() which queries the actual
    terminal instead of checking COLUMNS/LINES environment variables
    first (like shutil does). This ensures the size updates when the
    terminal is resized.

    Args:
        fallback: Tuple of (columns, lines) to use if terminal size
                  cannot be determined

    Returns:
        os.terminal_size with columns and lines attributes
    """
    for stream in (sys.stdout, sys.stderr, sys.stdin):
        try:
            if stream.isatty():
                return os.get_terminal_size(stream.fileno())
        except (AttributeError, ValueError, OSError):
            continue
    return os.terminal_size(fallback)


class LiveRenderer:
    """
    Repaints the live probe region in place.

    The region starts at the cursor position at the first draw. Each later
    draw moves back to the top of the region and rewrites only the lines that
    changed, clearing anything left over from a taller previous frame.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.last_lines: Optional[List[str]] = None

    def draw(self, lines: Sequence[str]) -> bool:
        """
        Draw a frame.

        Returns:
            True if anything was written
        """
        lines = list(lines)
        if lines == self.last_lines:
            return False

        chunks: List[str] = []
        previous = self.last_lines or []
        if previous:
            chunks.append(CURSOR_PREVIOUS_LINES.format(count=len(previous)))
        for index, line in enumerate(lines):
            if index < len(previous) and previous[index] == line:
                chunks.append(CURSOR_NEXT_LINE)
                continue
            chunks.append(f"{CLEAR_LINE}{line}\n")
        if len(lines) < len(previous):
            chunks.append(CLEAR_TO_END)

        self.stream.write("".join(chunks))
        self.stream.flush()
        self.last_lines = lines
        return True

    def clear(self) -> None:
        """Erase the live region, leaving the cursor where it started."""
        if self.last_lines:
            self.stream.write(CURSOR_PREVIOUS_LINES.format(count=len(self.last_lines)) + CLEAR_TO_END)
            self.stream.flush()
        self.last_lines = None
