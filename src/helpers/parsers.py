"""Parsing utilities for common data transformations."""

from datetime import UTC, datetime
from decimal import Decimal

from typing import Any


def parse_int_amount(value: Any) -> int:
    """Parse an integer base-unit amount.

    Accepts ints and decimal-integer strings (surrounding whitespace, a
    leading sign and ``_`` separators are tolerated). Fractional values are
    rejected rather than truncated.

    Args:
        value: Raw cell or RPC value

    Returns:
        int: Parsed amount

    Raises:
        ValueError: If the value is empty, fractional or not numeric

    Example:
        >>> parse_int_amount(" 1_000 ")
        1000
        >>> parse_int_amount("-5")
        -5
    """
    if isinstance(value, bool):
        msg = f"Invalid amount: {value!r}"
        raise ValueError(msg)
    if isinstance(value, int):
        return value
    text = str(value).strip() if value is not None else ""
    if not text:
        msg = "Invalid amount: empty value"
        raise ValueError(msg)
    try:
        return int(text)
    except ValueError:
        msg = f"Invalid amount: {text!r} is not an integer"
        raise ValueError(msg) from None


def format_token_amount(raw: int | None, decimals: int = 7) -> str | None:
    """Render a base-unit amount as a decimal token string.

    Args:
        raw: Amount in base units (stroops), or None
        decimals: Token decimal places

    Returns:
        str | None: Human-readable amount, or None if input was None

    Example:
        >>> format_token_amount(25_000_000_000, 7)
        '2500.0000000'
        >>> format_token_amount(None)
        None
    """
    if raw is None:
        return None
    scaled = Decimal(raw).scaleb(-decimals)
    return f"{scaled:.{decimals}f}"


def shorten_address(address: str, length: int = 12) -> str:
    """Truncate a long address for console display.

    Example:
        >>> shorten_address("GABCDEFGHIJKLMNOPQRSTUVWXYZ", 8)
        'GABCDEFG...'
    """
    if len(address) <= length:
        return address
    return f"{address[:length]}..."


def utc_timestamp_slug(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp safe for use in file names.

    Example:
        >>> utc_timestamp_slug(datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC))
        '2025-01-02T03-04-05-000Z'
    """
    moment = moment or datetime.now(UTC)
    iso = moment.astimezone(UTC).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "format_token_amount",
    "parse_int_amount",
    "shorten_address",
    "utc_now_iso",
    "utc_timestamp_slug",
]
