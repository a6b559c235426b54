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
Command-line interface for htping.

This module contains the main entry point, command-line argument handling and
the UI loop that feeds probe events into the display model.
"""

import argparse
import contextlib
import logging
import os
import queue
import re
import sys
import threading
from typing import Any, Dict, List, Optional

import httpx

from htping import __version__
from htping.config import load_config
from htping.dispatcher import start_dispatcher
from htping.input_keys import is_quit_key, read_key, terminal_cbreak_mode
from htping.model import DEFAULT_WINDOW_SIZE, DisplayModel
from htping.prober import build_client, probe_url
from htping.ticker import Ticker
from htping.ui_render import (
    LiveRenderer,
    build_frame_lines,
    format_banner,
    get_terminal_size,
    render_final,
)

logger = logging.getLogger(__name__)

# RFC 7230 token characters
_METHOD_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

EVENT_POLL_SECONDS = 0.05


def _configure_logging(log_level: str, log_file: Optional[str]) -> None:
    """Configure logging handlers for CLI execution."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, log_level, logging.WARNING),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


# Hardcoded defaults for config-overridable fields.
# Applied after config merging for any field still set to None.
_HARDCODED_DEFAULTS: Dict[str, Any] = {
    "interval": 1000,
    "limit": 0,
    "pager": DEFAULT_WINDOW_SIZE,
    "method": "GET",
    "json": "",
    "insecure": False,
    "color": True,
    "log_level": "WARNING",
}


def _apply_config_to_args(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    """
    Overlay config file values onto a parsed argument namespace.

    Only fields that are still ``None`` (i.e. not explicitly set on the CLI)
    are updated.

    Args:
        args: Namespace returned by ``argparse.ArgumentParser.parse_args()``.
        config: Dictionary of values loaded from the config file.
    """
    for key, value in config.items():
        if hasattr(args, key) and getattr(args, key) is None:
            setattr(args, key, value)


def parse_target_url(value: str) -> str:
    """Validate the target as an absolute http(s) URL (argparse type)."""
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError) as exc:
        raise argparse.ArgumentTypeError(f"invalid URL '{value}': {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise argparse.ArgumentTypeError(f"invalid URL '{value}': expected an absolute http:// or https:// URL")
    return str(url)


def handle_options(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="htping",
        description="htping - Send HTTP probe requests at regular intervals",
        epilog="Press q, Esc or Ctrl+C to stop. The full probe history is printed on exit.",
    )
    parser.add_argument("url", type=parse_target_url, help="Target URL (absolute http:// or https:// URL)")
    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=None,
        help="Interval between requests in milliseconds (default: 1000)",
    )
    parser.add_argument(
        "-l",
        "--limit",
        type=int,
        default=None,
        help="Number of requests to make (default: 0 for unlimited)",
    )
    parser.add_argument(
        "-p",
        "--pager",
        "-t",
        "--tail",
        dest="pager",
        type=int,
        default=None,
        help=f"Number of most recent requests to show while running (default: {DEFAULT_WINDOW_SIZE})",
    )
    parser.add_argument(
        "-m",
        "--method",
        type=str,
        default=None,
        help="HTTP request method (default: GET)",
    )
    parser.add_argument(
        "-j",
        "--json",
        type=str,
        default=None,
        help="jq-compatible filter applied to JSON responses",
    )
    parser.add_argument(
        "-k",
        "--insecure",
        action="store_true",
        default=None,
        help="Allow insecure connections (skip TLS certificate verification)",
    )
    parser.add_argument(
        "-T",
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: none)",
    )
    parser.add_argument(
        "--no-color",
        dest="color",
        action="store_false",
        default=None,
        help="Disable colored output",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file path for persistent logging",
    )
    parser.add_argument(
        "--no-config",
        action="store_true",
        default=False,
        help="Skip loading ~/.htping.conf config file",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    # Load and apply config file unless --no-config was given
    if not args.no_config:
        try:
            config = load_config()
            _apply_config_to_args(args, config)
        except ValueError as exc:
            parser.error(str(exc))

    # Apply hardcoded defaults for any config-overridable field still at None
    for field, default in _HARDCODED_DEFAULTS.items():
        if getattr(args, field, None) is None:
            setattr(args, field, default)

    if args.interval < 1:
        parser.error("--interval must be at least 1 millisecond.")
    if args.limit < 0:
        parser.error("--limit must be a non-negative integer (0 for unlimited).")
    if args.pager < 1:
        parser.error("--pager must be a positive integer.")
    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be a positive number of seconds.")
    args.method = args.method.upper()
    return args


def build_probe_request(client: httpx.Client, method: str, url: str) -> httpx.Request:
    """
    Build the request once up front so that bad input fails before probing starts.

    Raises:
        ValueError: If the method or URL cannot form a valid request
    """
    if not _METHOD_RE.fullmatch(method):
        raise ValueError(f"invalid HTTP method {method!r}")
    try:
        return client.build_request(method, url)
    except (httpx.InvalidURL, TypeError, UnicodeError) as exc:
        raise ValueError(str(exc)) from exc


def _use_color(args: argparse.Namespace) -> bool:
    return bool(args.color) and sys.stdout.isatty() and "NO_COLOR" not in os.environ


def _drain_events(model: DisplayModel, event_queue: "queue.Queue[Dict[str, Any]]", timeout: float) -> bool:
    """Apply every queued event, waiting up to ``timeout`` for the first one."""
    changed = False
    try:
        event = event_queue.get(timeout=timeout)
    except queue.Empty:
        return False
    while True:
        changed = model.update(event) or changed
        if model.exiting:
            return changed
        try:
            event = event_queue.get_nowait()
        except queue.Empty:
            return changed


def run_ui_loop(
    model: DisplayModel,
    renderer: LiveRenderer,
    event_queue: "queue.Queue[Dict[str, Any]]",
    use_color: bool,
    poll_seconds: float = EVENT_POLL_SECONDS,
) -> None:
    """
    Consume events and repaint the live region until the model is exiting.

    Quit keys are injected into the model as quit events. The terminal size
    is polled each iteration and applied as a resize event.
    """
    while not model.exiting:
        key = read_key()
        if is_quit_key(key):
            model.update({"type": "quit", "reason": "key"})
            break
        size = get_terminal_size(fallback=(80, 24))
        changed = model.update({"type": "resize", "width": size.columns, "lines": size.lines})
        changed = _drain_events(model, event_queue, poll_seconds) or changed
        if model.exiting:
            break
        if changed:
            renderer.draw(
                build_frame_lines(model.visible_records(), model.width, use_color, model.max_frame_lines)
            )


def run(args: argparse.Namespace) -> int:
    """
    Run the htping monitor with parsed arguments.

    Returns:
        Process exit code
    """
    _configure_logging(getattr(args, "log_level", "WARNING"), getattr(args, "log_file", None))
    client = build_client(insecure=args.insecure, timeout=args.timeout)
    try:
        request = build_probe_request(client, args.method, args.url)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        client.close()
        return 1

    method = request.method
    target = str(request.url)
    use_color = _use_color(args)
    print(format_banner(method, target, args.interval))
    print()

    def probe_fn(probe_id: int) -> Dict[str, Any]:
        return probe_url(client, method, target, probe_id, args.json)

    event_queue: "queue.Queue[Dict[str, Any]]" = queue.Queue()
    stop_event = threading.Event()
    ticker = Ticker(args.interval)
    size = get_terminal_size(fallback=(80, 24))
    model = DisplayModel(window_size=args.pager, width=size.columns, height=size.lines)
    renderer = LiveRenderer()
    logger.info("Probing %s %s every %dms (limit=%s)", method, target, args.interval, args.limit or "unlimited")
    dispatcher = start_dispatcher(ticker, probe_fn, event_queue, args.limit, stop_event)

    cbreak = terminal_cbreak_mode() if sys.stdin.isatty() else contextlib.nullcontext()
    try:
        with cbreak:
            run_ui_loop(model, renderer, event_queue, use_color)
    except KeyboardInterrupt:
        model.update({"type": "quit", "reason": "key"})
    finally:
        stop_event.set()
        ticker.stop()
        renderer.clear()
        sys.stdout.write(render_final(model.history.records(), use_color))
        sys.stdout.flush()
        if model.quit_reason == "end":
            dispatcher.join(timeout=1.0)
            client.close()
        # On a user quit, probes still in flight keep the client until the process exits.

    logger.info(
        "Finished after %d probe(s), %d still pending (%s)",
        len(model.history),
        model.history.pending_count(),
        model.quit_reason,
    )
    return 0


def main() -> None:
    """Main entrypoint for the CLI - parses arguments and runs the application."""
    args = handle_options()
    sys.exit(run(args))
