"""Annotation records, operation results and broadcast events."""

from annostore.models.annotation import Annotation, DeleteResult, Position, UpdateResult
from annostore.models.events import BroadcastEvent, BroadcastEventKind

__all__ = [
    "Annotation",
    "BroadcastEvent",
    "BroadcastEventKind",
    "DeleteResult",
    "Position",
    "UpdateResult",
]
