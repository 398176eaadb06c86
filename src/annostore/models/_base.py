"""Base model for annostore records and events.

Every model inherits from :class:`AnnostoreBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase wire keys
  (``updatedAt``, ``clientId``) map to snake_case fields.
* Frozen instances, so records handed to callers can never be mutated
  back into store state.
* A ``model_validator(mode="before")`` that renames legacy keys listed
  in a subclass's ``_KEY_ALIASES``.
"""

from __future__ import annotations

import math
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def check_coordinates(value: Any) -> Any:
    """Reject coordinate lists holding anything but finite numbers.

    Pydantic would coerce ``True`` or ``"1.5"`` into floats; positions
    must be real numbers on the wire, so those are refused up front.
    Length is checked by the field constraint.
    """
    if not isinstance(value, (list, tuple)):
        raise ValueError("position must be an array of numbers")
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ValueError("position must contain only numbers")
        try:
            finite = math.isfinite(item)
        except OverflowError:
            # Ints beyond float range cannot be stored as coordinates.
            finite = False
        if not finite:
            raise ValueError("position must contain only finite numbers")
    return list(value)


class AnnostoreBaseModel(BaseModel):
    """Base for annostore models."""

    _KEY_ALIASES: ClassVar[dict[str, str]] = {}
    """Legacy key → current key, applied when the current key is absent."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _apply_key_aliases(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        aliases: dict[str, str] = getattr(cls, "_KEY_ALIASES", {})
        if not aliases:
            return values
        working = dict(values)
        for old_key, new_key in aliases.items():
            if old_key in working and new_key not in working:
                working[new_key] = working.pop(old_key)
        return working
