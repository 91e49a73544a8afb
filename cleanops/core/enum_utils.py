"""
Enum Utilities for VARCHAR-based Status Fields

Status-like columns are stored as VARCHAR(50), not database ENUMs.
Pydantic schemas use the Python Enum for input validation; values read
from the database are plain strings and are returned as-is.

    status: Mapped[str] = mapped_column(String(50), default=OrderStatus.RECEIVED.value)

Services accept either form and normalise with get_enum_value before
comparing against the transition tables.
"""

from enum import Enum
from typing import Any, Optional


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(OrderStatus.WASHING)
        'washing'
        >>> get_enum_value("washing")
        'washing'
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)
