"""
Input validation and sanitization functions.

This module ensures that query parameters are safe and conform to expected
formats before any network or database access happens. It handles
sanitization of the region name, clamping of pagination parameters and
parsing of boolean flags.
"""

from typing import NamedTuple, Optional, Tuple

from config.settings import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from utils.constants import (
    ERROR_LIMIT_NOT_INTEGER,
    ERROR_OFFSET_NOT_INTEGER,
    ERROR_REGION_REQUIRED,
    TRUTHY_QUERY_VALUES,
)


class RegionQuery(NamedTuple):
    """Validated parameters of a regional pokedex page request."""

    region: str
    limit: int
    offset: int
    reset: bool


def sanitize_input(text: Optional[str]) -> str:
    """
    Sanitize user input by removing potentially harmful characters.

    Allowed characters are: alphanumeric, hyphens and underscores. Region
    names end up in upstream URL paths, so anything else is dropped.

    Args:
        text: Raw user input string.

    Returns:
        Sanitized string with special characters removed.
    """
    if not text:
        return ""

    # Remove leading/trailing whitespace
    text = text.strip()

    return "".join(c for c in text if c.isalnum() or c in "-_")


def parse_int(raw: Optional[str], default: int) -> Optional[int]:
    """
    Parse an integer query value.

    Returns:
        ``default`` for a missing/blank value, the parsed integer, or None
        when the value is not an integer.
    """
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return None


def clamp_limit(limit: int) -> int:
    """Clamp a page size to [1, MAX_PAGE_LIMIT]."""
    return max(1, min(limit, MAX_PAGE_LIMIT))


def clamp_offset(offset: int) -> int:
    return max(0, offset)


def parse_bool_flag(raw: Optional[str]) -> bool:
    """True for "1" or "true" (case-insensitive), False otherwise."""
    return (raw or "").strip().lower() in TRUTHY_QUERY_VALUES


def validate_region_query(
    region: Optional[str],
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    reset: Optional[str] = None,
) -> Tuple[bool, Optional[str], Optional[RegionQuery]]:
    """
    Validate and normalize the query of a regional pokedex request.

    Args:
        region: Region name (required).
        limit: Page size; defaults to DEFAULT_PAGE_LIMIT, clamped to [1, MAX_PAGE_LIMIT].
        offset: Rows to skip; defaults to 0, clamped to >= 0.
        reset: Boolean flag, "1"/"true" (case-insensitive) means true.

    Returns:
        Tuple containing (is_valid, error_message, query).
        Example success: (True, None, RegionQuery('kanto', 40, 0, False)).
    """
    region_name = sanitize_input(region).lower()
    if not region_name:
        return False, ERROR_REGION_REQUIRED, None

    parsed_limit = parse_int(limit, DEFAULT_PAGE_LIMIT)
    if parsed_limit is None:
        return False, ERROR_LIMIT_NOT_INTEGER, None

    parsed_offset = parse_int(offset, 0)
    if parsed_offset is None:
        return False, ERROR_OFFSET_NOT_INTEGER, None

    query = RegionQuery(
        region=region_name,
        limit=clamp_limit(parsed_limit),
        offset=clamp_offset(parsed_offset),
        reset=parse_bool_flag(reset),
    )
    return True, None, query
