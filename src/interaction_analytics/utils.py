"""Identifier, time-bucket and cost helpers."""

import time
from datetime import datetime, timezone

from ulid import ULID

HOUR_SECONDS = 3600
HOUR_MS = HOUR_SECONDS * 1000

PERIODS_MS = {
    "1h": HOUR_MS,
    "24h": 24 * HOUR_MS,
    "7d": 7 * 24 * HOUR_MS,
    "30d": 30 * 24 * HOUR_MS,
}
DEFAULT_PERIOD = "24h"

# Rough cost estimates per 1M tokens (prompt, completion)
COST_PER_MILLION: dict[str, tuple[float, float]] = {
    "gemini-2.5-flash": (0.10, 0.30),
    "gemini-2.5-flash-lite-preview-06-17": (0.05, 0.15),
    "gemini-flash-thinking": (0.10, 0.30),
    "gpt-4": (30.0, 60.0),
    "gpt-3.5-turbo": (0.5, 1.5),
}
DEFAULT_COST_PER_MILLION = (0.1, 0.3)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_ulid() -> str:
    """Generate a time-ordered unique id.

    Ids from one process are monotonic, also within the same millisecond.
    """
    return str(ULID())


def get_hour_bucket(timestamp_ms: int) -> int:
    """Floor an epoch-ms timestamp to the hour, returned in epoch seconds."""
    return (timestamp_ms // HOUR_MS) * HOUR_SECONDS


def ms_to_iso(timestamp_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string with millisecond precision."""
    seconds, millis = divmod(timestamp_ms, 1000)
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis:03d}Z"


def parse_since(value: str | int | None, default_ms: int) -> int:
    """Parse an epoch-ms integer or an ISO date into epoch milliseconds.

    Naive dates are read as UTC.

    Raises:
        ValueError: If the value is neither
    """
    if value is None or value == "":
        return default_ms
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_period(period: str | None, now: int | None = None) -> tuple[int, int]:
    """Resolve a period name (1h, 24h, 7d, 30d) to an epoch-ms window.

    Unknown periods fall back to 24h.
    """
    end = now_ms() if now is None else now
    duration = PERIODS_MS.get(period or DEFAULT_PERIOD, PERIODS_MS[DEFAULT_PERIOD])
    return end - duration, end


def calculate_cost(model: str, tokens_prompt: int, tokens_completion: int) -> float:
    """Estimate the USD cost of a model call from token counts."""
    prompt_rate, completion_rate = COST_PER_MILLION.get(model, DEFAULT_COST_PER_MILLION)
    return (tokens_prompt * prompt_rate + tokens_completion * completion_rate) / 1_000_000
