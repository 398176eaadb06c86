"""Annotation record and operation result models."""

from __future__ import annotations

import json
from typing import Annotated, Any, ClassVar

from pydantic import BeforeValidator, Field, field_validator

from annostore.models._base import AnnostoreBaseModel, check_coordinates

Position = Annotated[list[float], BeforeValidator(check_coordinates), Field(min_length=2)]
"""Two or more finite coordinates: longitude, latitude, then optional extras."""


class Annotation(AnnostoreBaseModel):
    """A point annotation as stored and returned by the store."""

    # Legacy payloads use ``lngLat``.
    _KEY_ALIASES: ClassVar[dict[str, str]] = {"lngLat": "position"}

    id: str
    position: Position
    updated_at: int = Field(ge=0, description="Last write time, epoch milliseconds")
    client_id: str | None = Field(default=None, description="Opaque writer identifier")

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("id must be non-empty")
        return value

    @field_validator("client_id", mode="before")
    @classmethod
    def _empty_client_id_is_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @classmethod
    def from_stored(cls, annotation_id: str, raw: str) -> Annotation:
        """Rebuild a record from its hash field and stored JSON value.

        Raises ``ValueError`` (or pydantic's ``ValidationError``, which
        subclasses it) when *raw* is not a valid stored payload.
        """
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("stored payload is not a JSON object")
        # The hash field is authoritative for the id.
        return cls.model_validate({**payload, "id": annotation_id})

    def to_stored(self) -> str:
        """Serialize the persisted part of the record (everything but ``id``)."""
        return self.model_dump_json(by_alias=True, exclude={"id"})

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class UpdateResult(AnnostoreBaseModel):
    """Outcome of an update: the stored record and whether it replaced one."""

    annotation: Annotation
    existed: bool

    def to_dict(self) -> dict[str, Any]:
        return {**self.annotation.to_dict(), "existed": self.existed}


class DeleteResult(AnnostoreBaseModel):
    """Outcome of a delete. ``removed`` is false when the id was unknown."""

    id: str
    removed: bool

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
