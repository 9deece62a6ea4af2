# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base record model and shared field coercion.
"""

import math
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict


def coerce_id(value: Any) -> Optional[str]:
    """Backend ids arrive as ints or strings; keep them opaque strings."""
    if value is None or value == "":
        return None
    return str(value)


def coerce_number(value: Any) -> Optional[float]:
    """
    Parse a numeric field, treating malformed input as absent.

    Booleans and non-finite values are rejected rather than read as numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip().replace(",", ""))
        except ValueError:
            return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def coerce_count(value: Any) -> Optional[int]:
    """Parse a non-negative integer count; anything else is absent."""
    number = coerce_number(value)
    if number is None or number < 0 or number != int(number):
        return None
    return int(number)


def coerce_age(value: Any) -> Optional[int]:
    """Parse an age in whole years, flooring fractional values."""
    number = coerce_number(value)
    if number is None or number < 0:
        return None
    return math.floor(number)


def coerce_flag(value: Any) -> bool:
    """Read the boolean flags the backend sends as 0/1, "true" or booleans."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "on")
    return False


class BaseRecord(BaseModel):
    """Base for records mirrored from the PDAO backend."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Backend payloads carry many fields the station does not use
        extra="ignore"
    )
