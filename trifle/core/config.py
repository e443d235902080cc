"""
Trifle Configuration
--------------------
Client and logging settings, loaded from environment variables and
overridden by command-line flags.
"""

import math
import os
import re
import logging
from typing import Optional
from pydantic import BaseModel, Field

logger = logging.getLogger("Trifle.Config")

DEFAULT_TIMEOUT_SECONDS = 30.0
SUPPORTED_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(raw: str) -> float:
    """
    Parse a duration into seconds.

    Accepts bare seconds ("30", "2.5") or unit-suffixed segments
    ("30s", "500ms", "1m30s", "2h").
    """
    value = (raw or "").strip().lower()
    if not value:
        raise ValueError("duration is required")
    try:
        seconds = float(value)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(value):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(value):
            raise ValueError(f"invalid duration {raw!r} (e.g. 30s, 500ms, 1m30s)")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive: {raw!r}")
    return seconds


def _timeout_from_env(name: str) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return DEFAULT_TIMEOUT_SECONDS
    try:
        return parse_duration(raw)
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected a duration such as 30s. Using %.0fs.",
            name,
            raw,
            DEFAULT_TIMEOUT_SECONDS,
        )
        return DEFAULT_TIMEOUT_SECONDS


class ClientConfig(BaseModel):
    """Backend connection settings."""
    base_url: str = ""
    token: Optional[str] = None
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            base_url=os.environ.get("TRIFLE_URL", "").strip(),
            token=os.environ.get("TRIFLE_TOKEN") or None,
            timeout=_timeout_from_env("TRIFLE_TIMEOUT"),
        )


class LoggingConfig(BaseModel):
    """Diagnostic logging settings (logs go to stderr)."""
    level: str = "warning"

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        level = os.environ.get("TRIFLE_LOG_LEVEL", "warning").strip().lower()
        if level not in SUPPORTED_LOG_LEVELS:
            logger.warning(
                "Unsupported TRIFLE_LOG_LEVEL '%s'; expected one of %s. Falling back to 'warning'.",
                level,
                SUPPORTED_LOG_LEVELS,
            )
            level = "warning"
        return cls(level=level)

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.level.upper(), logging.WARNING)
