import re
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from trifle.core import serialization

logger = logging.getLogger("Trifle.mcp.utils")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_WINDOW = timedelta(hours=24)
FALLBACK_GRANULARITY = "1h"
PREFERRED_GRANULARITIES = ("1h", "1d")

GRANULARITY_PATTERN = re.compile(r"^\d+(s|m|h|d|w|mo|q|y)\Z", re.ASCII)
_RFC3339_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})\Z", re.ASCII
)


def get_string_arg(args: Dict[str, Any], key: str) -> str:
    """Read an argument as text; missing and null entries read as ""."""
    value = args.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        # JSONNumber renders as the literal it was decoded from.
        return str(value)
    if isinstance(value, (dict, list)):
        return serialization.dumps(value)
    return str(value)


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Strict RFC3339 parse (fractional seconds and numeric offsets allowed)."""
    match = _RFC3339_PATTERN.match(value)
    if not match:
        raise ValueError(f"not an RFC3339 timestamp: {value!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micros = int((fraction[1:] + "000000")[:6]) if fraction else 0
    if offset == "Z":
        tz = timezone.utc
    else:
        sign = 1 if offset[0] == "+" else -1
        off_hours, off_minutes = int(offset[1:3]), int(offset[4:6])
        if off_hours > 23 or off_minutes > 59:
            raise ValueError(f"invalid UTC offset in {value!r}")
        tz = timezone(sign * timedelta(hours=off_hours, minutes=off_minutes))
    return datetime(
        int(year), int(month), int(day),
        int(hour), int(minute), int(second), micros,
        tzinfo=tz,
    )


def validate_timestamp(label: str, value: str) -> None:
    try:
        parse_timestamp(value)
    except ValueError:
        raise ValueError(
            f"{label} must be RFC3339 (e.g. 2024-01-02T15:04:05Z or 2024-01-02T15:04:05+00:00)"
        ) from None


def resolve_time_range(from_value: str, to_value: str, now: Optional[datetime] = None) -> Tuple[str, str]:
    """
    Resolve a query window.

    Both bounds blank means the last 24 hours. Giving only one bound is a usage
    error. Explicit bounds are validated but passed through unchanged.
    """
    from_value = (from_value or "").strip()
    to_value = (to_value or "").strip()

    if not from_value and not to_value:
        end = now or utc_now()
        return format_timestamp(end - DEFAULT_WINDOW), format_timestamp(end)

    if not from_value or not to_value:
        raise ValueError("from and to are required together (RFC3339, e.g. 2024-01-02T15:04:05Z)")

    validate_timestamp("from", from_value)
    validate_timestamp("to", to_value)
    return from_value, to_value


def validate_granularity(value: str) -> str:
    normalized = (value or "").strip().lower()
    if not normalized:
        raise ValueError("granularity is required")
    if not GRANULARITY_PATTERN.match(normalized):
        raise ValueError(
            "granularity must be <number><unit> using s, m, h, d, w, mo, q, y (e.g. 1h, 15m, 1d)"
        )
    return normalized


def default_granularity(source: Any) -> str:
    """Pick a granularity from a source configuration response."""
    data = source.get("data") if isinstance(source, dict) else None
    if not isinstance(data, dict):
        data = {}

    configured = data.get("default_granularity")
    if isinstance(configured, str) and configured:
        return configured

    available = [item for item in (data.get("available_granularities") or []) if isinstance(item, str)]
    for candidate in PREFERRED_GRANULARITIES:
        if candidate in available:
            return candidate
    if available:
        return available[0]
    return FALLBACK_GRANULARITY


def resolve_granularity(client: Any, explicit: str = "") -> str:
    """Validate an explicit granularity or fall back to the source defaults."""
    explicit = (explicit or "").strip()
    if explicit:
        return validate_granularity(explicit)
    resolved = default_granularity(client.get_source())
    logger.debug("Resolved granularity from source defaults: %s", resolved)
    return resolved


def to_int(value: Any) -> int:
    """Observation counts as integers; fractional counts truncate, non-numbers count 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, serialization.JSONNumber):
        value = value.to_decimal()
    if isinstance(value, (float, Decimal)):
        try:
            return int(value)
        except (ValueError, OverflowError, ArithmeticError):
            return 0
    return 0


def summarize_keys(values: Any) -> List[Dict[str, Any]]:
    """Sum observation counts per key across every slice's ``keys`` mapping."""
    counts: Dict[str, int] = {}
    for row in values or []:
        if not isinstance(row, dict):
            continue
        keys = row.get("keys")
        if not isinstance(keys, dict):
            continue
        for key, count in keys.items():
            counts[key] = counts.get(key, 0) + to_int(count)

    return [{"metric_key": key, "observations": counts[key]} for key in sorted(counts)]
