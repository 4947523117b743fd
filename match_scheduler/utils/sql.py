"""
SQL utilities for consistent handling of query results.

SQLModel/SQLAlchemy may return MAX/COUNT results as int, None, or a 1-tuple/Row.
Use scalar_int() to coerce them to int everywhere.
"""
from typing import Any


def scalar_int(x: Any, default: int = 0) -> int:
    """Convert an aggregate result to int. Handles int, None or 1-tuple/Row."""
    if x is None:
        return default
    try:
        value = x[0]
    except (TypeError, IndexError, KeyError):
        value = x
    return default if value is None else int(value)
