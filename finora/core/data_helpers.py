"""
Centralized Data Conversion Helpers.

Safe conversion utilities shared by the normalizer, the market movers service
and the LLM response coercion. Provider payloads carry numbers as strings with
sentinels like "None" and "-", so every helper here returns None instead of
raising.

Usage:
    from finora.core.data_helpers import safe_float, safe_int, utc_now
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# Provider sentinels that mean "no value"
MISSING_MARKERS = frozenset({"", "none", "-", "n/a", "nan", "null"})


def safe_float(value: Any, default: float | None = None) -> float | None:
    """
    Safely convert value to float.

    Handles None, provider sentinels ("None", "-"), trailing percent signs,
    NaN, Inf and conversion errors.

    Args:
        value: Any value to convert
        default: Default to return if conversion fails

    Returns:
        Float value or default if conversion fails
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if text.endswith("%"):
            text = text[:-1].strip()
        if text.lower() in MISSING_MARKERS:
            return default
        value = text
    try:
        f = float(value)
    except (ValueError, TypeError):
        return default
    if math.isnan(f) or math.isinf(f):
        return default
    return f


def safe_int(value: Any, default: int | None = None) -> int | None:
    """Safely convert value to int (accepts float strings like "123.0")."""
    f = safe_float(value)
    if f is None:
        return default
    return int(f)


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def run_in_executor(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking function in the default thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
