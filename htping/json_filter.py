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
jq filtering of JSON response bodies for htping.

The filter output is a short display string attached to a successful probe.
Problems with the body or the expression raise JsonFilterError so that the
caller can show them inline without treating the probe as failed.
"""

import json
import logging
from functools import lru_cache
from typing import Any, Union

import jq

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
PAYLOAD_PREFIX = "=> "


class JsonFilterError(ValueError):
    """Raised when a response body cannot be filtered."""


@lru_cache(maxsize=16)
def _compile(expression: str) -> Any:
    try:
        return jq.compile(expression)
    except ValueError as exc:
        raise JsonFilterError(str(exc)) from exc


def is_json_content_type(content_type: str) -> bool:
    """Check whether a Content-Type header value denotes JSON."""
    return content_type.strip().lower().startswith(JSON_CONTENT_TYPE)


def filter_json(body: Union[bytes, str], expression: str) -> str:
    """
    Evaluate a jq expression against a JSON document.

    Args:
        body: Raw response body
        expression: jq filter expression (e.g. ".data.items[0].name")

    Returns:
        ``"=> <json>"`` for the first non-null result, or an empty string
        when the filter yields nothing (``empty``, ``halt``, only nulls)

    Raises:
        JsonFilterError: On malformed JSON or filter compile/runtime errors
    """
    program = _compile(expression)
    try:
        document = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise JsonFilterError(f"Invalid JSON body: {exc}") from exc

    try:
        for value in program.input_value(document):
            if value is None:
                continue
            return PAYLOAD_PREFIX + json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except ValueError as exc:
        raise JsonFilterError(str(exc)) from exc
    logger.debug("Filter %r produced no value", expression)
    return ""
