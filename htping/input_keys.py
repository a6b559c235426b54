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
Keyboard input handling for htping using the readchar library.

The UI loop polls read_key() between frames. Only quit keys matter to htping
(Ctrl+C, q, Esc); arrow keys are still decoded so that their escape sequences
are not mistaken for a bare Esc press.
"""

import contextlib
import select
import sys
import termios
import tty
from typing import Generator, Optional

import readchar
import readchar.key

# Time to wait for the rest of an escape sequence after ESC.
# Slow terminals and remote sessions (SSH) can split sequences across reads.
ESCAPE_SEQUENCE_TIMEOUT = 0.1

QUIT_KEYS = frozenset((readchar.key.CTRL_C, "q", "Q", readchar.key.ESC))


@contextlib.contextmanager
def terminal_cbreak_mode(fd: Optional[int] = None) -> Generator[None, None, None]:
    """Context manager that puts a terminal in cbreak mode and restores it on exit.

    Signals stay enabled, so Ctrl+C still raises KeyboardInterrupt in the main
    thread. The previous settings are restored even when the body raises.

    Args:
        fd: Terminal file descriptor to configure.  Defaults to ``sys.stdin.fileno()``.
    """
    if fd is None:
        fd = sys.stdin.fileno()
    try:
        old_settings = termios.tcgetattr(fd)
    except termios.error:
        # Not a real terminal (e.g. a pipe or test mock) – skip setup.
        yield
        return
    try:
        tty.setcbreak(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


def parse_escape_sequence(seq: str) -> Optional[str]:
    """
    Parse ANSI escape sequence to identify arrow keys.

    Args:
        seq: The escape sequence string (without the leading ESC)

    Returns:
        String identifier for arrow keys ('arrow_up', 'arrow_down', etc.)
        or None if sequence is not recognized
    """
    arrow_map = {
        "A": "arrow_up",
        "B": "arrow_down",
        "C": "arrow_right",
        "D": "arrow_left",
    }
    if not seq:
        return None
    if seq[0] in ("[", "O") and seq[-1] in arrow_map:
        return arrow_map[seq[-1]]
    return None


def _read_escape_tail() -> str:
    seq = ""
    while True:
        ready, _, _ = select.select([sys.stdin], [], [], ESCAPE_SEQUENCE_TIMEOUT)
        if not ready:
            break
        char = readchar.readchar()
        if not char:
            break
        seq += char
        if char.isalpha() or char == "~":
            break
    return seq


def read_key() -> Optional[str]:
    """
    Read a key from stdin without blocking.

    Returns special strings for arrow keys ('arrow_left', 'arrow_right',
    'arrow_up', 'arrow_down'), the character for normal keys, a bare ESC
    when no sequence follows it, or None if no input is available.
    """
    if not sys.stdin.isatty():
        return None

    ready, _, _ = select.select([sys.stdin], [], [], 0)
    if not ready:
        return None

    char = readchar.readchar()
    if not char:
        return None
    if char != readchar.key.ESC:
        return char

    seq = _read_escape_tail()
    if not seq:
        return char
    parsed = parse_escape_sequence(seq)
    return parsed if parsed is not None else char + seq


def is_quit_key(key: Optional[str]) -> bool:
    """Check whether a key requests termination (Ctrl+C, q, Esc)."""
    return key in QUIT_KEYS
