"""
Tolerant conversions for scraped and third-party values.

Each helper falls back to a default instead of raising, so one bad field
never discards a whole record.
"""
from typing import Any


def safe_str(value: Any, default: str = "") -> str:
    """str(value), or `default` for None."""
    return default if value is None else str(value)


def safe_strip(value: Any) -> str:
    """Whitespace-trimmed text; None becomes ''."""
    return safe_str(value).strip()


def safe_int(value: Any, default: int = 0) -> int:
    """
    Integer conversion for counters and positions.

    Accepts ints, numeric strings and floats (truncated). Booleans, None
    and anything unparseable give `default`.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_count(value: Any, default: int = 0) -> int:
    """
    Displayed counter such as "1,234,567" or " 42 " to an int.

    Thousands separators and surrounding whitespace are ignored.
    """
    text = safe_strip(value).replace(",", "")
    return safe_int(text, default) if text else default
