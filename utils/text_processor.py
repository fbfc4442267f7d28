"""
Text Processing Utilities

Sanitisation and payload helpers for outgoing webhook bodies and for values
written to storage.

Functions:
    - sanitize_input: Escape quotes/backslashes/whitespace and strip control characters
    - escape_for_json: Escape text for embedding inside a JSON string literal
    - build_webhook_body: Render the POST body for a matched message
    - clean_field: Strip control characters from a stored field and trim it
"""

import json
import re
from typing import Any, Optional

CONTENT_PLACEHOLDER = "$content$"

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
_FIELD_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_SURROGATES = re.compile(r"[\ud800-\udfff]")


def _escape_surrogates(text: str) -> str:
    # Lone surrogates cannot be encoded as UTF-8
    return _SURROGATES.sub(lambda m: "\\u%04x" % ord(m.group()), text)


def sanitize_input(text: Any) -> str:
    """
    Escape characters that could break out of a webhook payload.

    Backslashes are escaped first so the later escapes are not doubled.
    Quotes, newlines, carriage returns and tabs become backslash sequences,
    then null bytes and every remaining control character are dropped.

    Args:
        text: Raw message content

    Returns:
        str: Sanitised text, or "" when text is not a string
    """
    if not isinstance(text, str):
        return ""

    text = text.replace("\\", "\\\\")
    text = text.replace('"', '\\"')
    text = text.replace("'", "\\'")
    text = text.replace("\n", "\\n")
    text = text.replace("\r", "\\r")
    text = text.replace("\t", "\\t")
    text = text.replace("\0", "")
    return _CONTROL_CHARS.sub("", text)


def escape_for_json(text: Any) -> str:
    """
    Escape text so it can be placed between the quotes of a JSON string.

    Non-ASCII characters are kept as-is; lone surrogates become \\uXXXX escapes.

    Args:
        text: Text to escape

    Returns:
        str: JSON-escaped text without surrounding quotes, "" for non-strings
    """
    if not isinstance(text, str):
        return ""
    return _escape_surrogates(json.dumps(text, ensure_ascii=False)[1:-1])


def build_webhook_body(content: str, data_template: Optional[str] = None) -> str:
    """
    Render the body sent to a webhook for a matched message.

    With a template, every literal ``$content$`` is replaced by the
    sanitised, JSON-escaped content and the rest of the template is kept
    verbatim. Without one, the body is ``{"content": <sanitised content>}``.

    Args:
        content: Raw message content
        data_template: Optional body template from the webhook target

    Returns:
        str: Request body
    """
    sanitized = sanitize_input(content)
    if data_template:
        return data_template.replace(CONTENT_PLACEHOLDER, escape_for_json(sanitized))
    return _escape_surrogates(
        json.dumps({"content": sanitized}, ensure_ascii=False, separators=(",", ":")))


def clean_field(value: Any) -> str:
    """
    Clean a user supplied field before it is validated and stored.

    Null bytes and control characters other than newline and tab are removed
    and surrounding whitespace is trimmed.
    """
    if not isinstance(value, str):
        return ""
    return _FIELD_CONTROL_CHARS.sub("", value.replace("\0", "")).strip()
