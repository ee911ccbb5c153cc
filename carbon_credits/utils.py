# -*- coding: utf-8 -*-
"""Shared numeric and timestamp helpers for the carbon credit engine."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from carbon_credits.config import get_config

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def round_half_up(value: float, places: Optional[int] = None) -> float:
    """Round ``value`` to ``places`` decimals using ROUND_HALF_UP.

    Uses the configured decimal precision when ``places`` is None.

    Example:
        >>> round_half_up(2.00005, 4)
        2.0001
    """
    if places is None:
        places = get_config().decimal_precision
    quantizer = Decimal(1).scaleb(-places)
    try:
        return float(
            Decimal(str(value)).quantize(quantizer, rounding=ROUND_HALF_UP)
        )
    except InvalidOperation:
        logger.warning("Failed to quantize value: %s", value)
        return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 string (or pass through a datetime).

    Naive values are taken to be UTC. Returns None for anything that is
    not a parsable timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
