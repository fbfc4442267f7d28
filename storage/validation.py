"""
Input validation for values written to storage.

Every validator cleans its input, raises ValidationError with a message fit
for showing to a Discord user, and returns the cleaned value.
"""

import re
from typing import Iterable, List, Optional, Union
from urllib.parse import urlparse

from storage.base import ValidationError
from storage.models import ALL_USERS, ServerStatus
from utils.regex_engine import CompiledPattern, InvalidSyntaxError, PatternError, compile_pattern, split_wrapped
from utils.text_processor import clean_field

MAX_WEBHOOK_NAME_LENGTH = 100
VALID_WRAPPED_FLAGS = re.compile(r"^[gimsuy]*$")
SNOWFLAKE = re.compile(r"^\d+$")


def validate_regex_pattern(value: str, default_flags: str = "") -> CompiledPattern:
    """
    Validate and compile a pattern before it is stored.

    Wrapped patterns may only use the flags g, i, m, s, u and y.

    Returns:
        CompiledPattern: The compiled pattern

    Raises:
        ValidationError: Empty pattern, bad flags, failed complexity check or bad syntax
    """
    if not isinstance(value, str):
        raise ValidationError("Regex pattern must be a string")
    if len(value) == 0:
        raise ValidationError("Regex pattern cannot be empty")

    wrapped = value.startswith("/") and value.rfind("/") > 0
    _, flags = split_wrapped(value, default_flags)
    if wrapped and not VALID_WRAPPED_FLAGS.match(flags):
        raise ValidationError(
            f'Invalid regex flags: "{flags}". Valid flags are: g, i, m, s, u, y')

    try:
        return compile_pattern(value, default_flags)
    except InvalidSyntaxError as e:
        raise ValidationError(f"Invalid regex syntax: {e}") from e
    except PatternError as e:
        raise ValidationError(str(e)) from e


def validate_webhook_url(url: str, enforce_https: bool = False) -> str:
    """
    Validate a webhook URL.

    Args:
        url: URL to check
        enforce_https: Reject plain http:// URLs

    Returns:
        str: The URL
    """
    if not isinstance(url, str):
        raise ValidationError("Webhook URL must be a string")
    url = url.strip()
    if not url:
        raise ValidationError("Webhook URL cannot be empty")

    if not url.startswith(("http://", "https://")):
        raise ValidationError("Webhook URL must start with http:// or https://")
    if enforce_https and not url.startswith("https://"):
        raise ValidationError("Webhook URL must use HTTPS protocol in production environments")

    try:
        parsed = urlparse(url)
        parsed.port  # raises on a malformed port
    except ValueError as e:
        raise ValidationError(f"Invalid URL format: {e}") from e
    if not parsed.hostname:
        raise ValidationError("Invalid URL format: missing host")

    return url


def validate_server_status(status: str) -> str:
    """Ensure status is "active" or "disabled"."""
    if not isinstance(status, str):
        raise ValidationError("Server status must be a string")
    if status not in ServerStatus.ALL:
        raise ValidationError('Server status must be either "active" or "disabled"')
    return status


def validate_server_id(server_id: Union[str, int]) -> str:
    """Ensure a server id is a numeric Discord snowflake."""
    cleaned = clean_field(str(server_id) if isinstance(server_id, int) else server_id)
    if not cleaned:
        raise ValidationError("Server ID is required")
    if not SNOWFLAKE.match(cleaned):
        raise ValidationError("Invalid server ID format")
    return cleaned


def validate_webhook_name(name: str) -> str:
    """Ensure a webhook name is present and at most 100 characters."""
    cleaned = clean_field(name)
    if not cleaned:
        raise ValidationError("Webhook name is required")
    if len(cleaned) > MAX_WEBHOOK_NAME_LENGTH:
        raise ValidationError(
            f"Webhook name must be {MAX_WEBHOOK_NAME_LENGTH} characters or less")
    return cleaned


def validate_user_ids(user_ids: Optional[Iterable[Union[str, int]]]) -> List[str]:
    """
    Normalise a user filter.

    Missing or empty filters become ["All"]; anything containing "All"
    collapses to ["All"]; other entries must be numeric snowflakes.
    """
    cleaned = [clean_field(str(user_id)) for user_id in (user_ids or [])]
    cleaned = [user_id for user_id in cleaned if user_id]

    if not cleaned or any(user_id.lower() == ALL_USERS.lower() for user_id in cleaned):
        return [ALL_USERS]

    for user_id in cleaned:
        if not SNOWFLAKE.match(user_id):
            raise ValidationError(f"Invalid user ID: {user_id}")

    # Keep the given order, drop duplicates
    return list(dict.fromkeys(cleaned))


def parse_user_ids(raw: Optional[str]) -> List[str]:
    """Split a comma or whitespace separated list (e.g. a slash command option)."""
    if not raw:
        return [ALL_USERS]
    parts = re.split(r"[,\s]+", raw)
    # Accept mentions like <@123> or <@!123>
    parts = [re.sub(r"^<@!?(\d+)>$", r"\1", part) for part in parts]
    return validate_user_ids(parts)
