"""Change events relayed to the broadcast channel."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from annostore.models._base import AnnostoreBaseModel
from annostore.models.annotation import Annotation


class BroadcastEventKind(StrEnum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class BroadcastEvent(AnnostoreBaseModel):
    """A store change, emitted after the backend write succeeded."""

    kind: BroadcastEventKind
    id: str
    position: list[float] | None = None
    client_id: str | None = None

    @classmethod
    def for_write(cls, kind: BroadcastEventKind, annotation: Annotation) -> BroadcastEvent:
        return cls(
            kind=kind,
            id=annotation.id,
            position=list(annotation.position),
            client_id=annotation.client_id,
        )

    @classmethod
    def removed(cls, annotation_id: str) -> BroadcastEvent:
        return cls(kind=BroadcastEventKind.REMOVE, id=annotation_id)

    def to_wire(self) -> dict[str, Any]:
        """Wire shape; ``position`` is left out of removals, ``clientId`` never is."""
        exclude = {"position"} if self.position is None else None
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)
