"""Annotation store with last-write-wins upsert semantics.

The backend is the single source of truth: there is no cache, every
operation round-trips to it. After a successful write the store hands
a :class:`BroadcastEvent` to its sink; whatever the sink does with it
cannot change the result of the operation.

Concurrent writes to the same id are not serialized. Whichever backend
write lands last wins.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from annostore._backend import KeyValueBackend
from annostore.broadcast import EventSink, NullSink
from annostore.exceptions import BackendError, InternalError, InvalidArgumentError
from annostore.models.annotation import Annotation, DeleteResult, UpdateResult
from annostore.models.events import BroadcastEvent, BroadcastEventKind

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def _invalid_argument(exc: ValidationError) -> InvalidArgumentError:
    error = exc.errors()[0]
    loc = error.get("loc") or ("payload",)
    field = str(loc[0])
    model_field = Annotation.model_fields.get(field)
    if model_field is not None and model_field.alias:
        field = model_field.alias
    return InvalidArgumentError(f"invalid payload, bad {field}: {error.get('msg', 'invalid value')}", field=field)


class AnnotationStore:
    """CRUD/upsert operations over a :class:`KeyValueBackend`."""

    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        sink: EventSink | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._backend = backend
        self._sink: EventSink = sink or NullSink()
        self._clock = clock

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    async def list_annotations(self) -> list[Annotation]:
        """Return every readable record. Entries that fail to parse are skipped."""
        try:
            raw_entries = await self._backend.get_all()
        except BackendError as exc:
            raise self._internal("list", exc) from exc

        annotations: list[Annotation] = []
        for annotation_id, raw in raw_entries.items():
            try:
                annotations.append(Annotation.from_stored(annotation_id, raw))
            except ValueError:
                _logger.debug("Skipping malformed stored annotation id=%s", annotation_id, exc_info=True)
        return annotations

    async def create_or_replace(
        self,
        annotation_id: Any,
        position: Any,
        client_id: Any = None,
    ) -> Annotation:
        """Store a record under *annotation_id*, overwriting whatever was there."""
        annotation = self._build(annotation_id, position, client_id)
        try:
            await self._backend.set(annotation.id, annotation.to_stored())
        except BackendError as exc:
            raise self._internal("create", exc) from exc

        _logger.debug("Stored annotation id=%s", annotation.id)
        await self._emit(BroadcastEvent.for_write(BroadcastEventKind.ADD, annotation))
        return annotation

    async def update(
        self,
        annotation_id: Any,
        position: Any,
        client_id: Any = None,
    ) -> UpdateResult:
        """Upsert *annotation_id*, reporting whether a record was already there.

        The existence check is informational only; the write happens either way.
        """
        annotation = self._build(annotation_id, position, client_id)
        try:
            existing = await self._backend.get(annotation.id)
            await self._backend.set(annotation.id, annotation.to_stored())
        except BackendError as exc:
            raise self._internal("update", exc) from exc

        existed = existing is not None
        _logger.debug("Updated annotation id=%s existed=%s", annotation.id, existed)
        await self._emit(BroadcastEvent.for_write(BroadcastEventKind.UPDATE, annotation))
        return UpdateResult(annotation=annotation, existed=existed)

    async def delete(self, annotation_id: str) -> DeleteResult:
        """Remove *annotation_id*. Deleting an unknown id is not an error.

        A removal event is emitted whether or not anything was removed.
        """
        try:
            removed = await self._backend.delete(annotation_id)
        except BackendError as exc:
            raise self._internal("delete", exc) from exc

        _logger.debug("Deleted annotation id=%s removed=%s", annotation_id, removed)
        await self._emit(BroadcastEvent.removed(annotation_id))
        return DeleteResult(id=annotation_id, removed=removed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build(self, annotation_id: Any, position: Any, client_id: Any) -> Annotation:
        if not isinstance(annotation_id, str) or not annotation_id:
            raise InvalidArgumentError("invalid payload, need id", field="id")
        if not isinstance(position, Sequence) or isinstance(position, (str, bytes)):
            raise InvalidArgumentError("invalid payload, need position", field="position")
        try:
            # Validate by wire keys so error locations name what clients send.
            return Annotation.model_validate(
                {
                    "id": annotation_id,
                    "position": list(position),
                    "updatedAt": self._clock(),
                    "clientId": client_id,
                }
            )
        except ValidationError as exc:
            raise _invalid_argument(exc) from exc

    async def _emit(self, event: BroadcastEvent) -> None:
        try:
            await self._sink.notify(event)
        except Exception:
            _logger.warning("Event sink failed for kind=%s id=%s", event.kind, event.id, exc_info=True)

    @staticmethod
    def _internal(operation: str, exc: BackendError) -> InternalError:
        _logger.error("Annotation %s failed: %s", operation, exc, exc_info=exc)
        return InternalError(operation=operation)
