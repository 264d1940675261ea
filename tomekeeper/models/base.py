"""
Shared base model and coercion helpers for the canonical save shape.

Persisted JSON uses camelCase keys (inkDrops, dateAdded, ...). Models use
snake_case attributes with camelCase aliases, and always dump by alias.

The coercion helpers never raise. They are used from `mode="before"` field
validators so that a wrong-typed value collapses to the field's default
instead of failing the whole record. Only required identity fields raise.
"""

import math
from typing import Any, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Number = Union[int, float]


class CanonicalModel(BaseModel):
    """Base for every persisted record."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


def is_number(value: Any) -> bool:
    """True for finite ints/floats. Booleans are not numbers here, and neither
    are ints too large to represent as a float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def as_optional_str(value: Any) -> Optional[str]:
    """Non-empty strings pass; numbers are stringified; anything else is None."""
    if isinstance(value, str):
        return value if value.strip() else None
    if is_number(value):
        return str(int(value)) if float(value).is_integer() else str(value)
    return None


def as_non_negative(value: Any, default: Number = 0) -> Number:
    if not is_number(value):
        return default
    return max(0, value)


def as_non_negative_int(value: Any, default: int = 0) -> int:
    if not is_number(value):
        return default
    return max(0, math.floor(value))


def as_optional_non_negative_int(value: Any) -> Optional[int]:
    if not is_number(value):
        return None
    return max(0, math.floor(value))


def as_optional_non_negative(value: Any) -> Optional[Number]:
    if not is_number(value):
        return None
    return max(0, value)


def as_bool(value: Any, default: bool = False) -> bool:
    return value if isinstance(value, bool) else default


def as_optional_bool(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def as_unique_str_list(value: Any) -> List[str]:
    """Trimmed, non-empty, first-occurrence order preserved."""
    seen: List[str] = []
    for v in as_str_list(value):
        trimmed = v.strip()
        if trimmed and trimmed not in seen:
            seen.append(trimmed)
    return seen


def as_choice(value: Any, choices: Iterable[str], default: str) -> str:
    if isinstance(value, str) and value.strip().lower() in choices:
        return value.strip().lower()
    return default


def require_text(value: Any, field: str) -> str:
    """Identity fields: a non-empty string (ints are accepted as ids)."""
    if is_number(value) and float(value).is_integer():
        return str(int(value))
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()
