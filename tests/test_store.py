from __future__ import annotations

import json

import pytest

from annostore.exceptions import BackendError, InternalError, InvalidArgumentError
from annostore.models.events import BroadcastEvent, BroadcastEventKind
from annostore.store import AnnotationStore
from tests.fakes import FakeHashBackend, RecordingSink


class ExplodingSink:
    async def notify(self, event: BroadcastEvent) -> None:
        raise RuntimeError("broadcast channel down")


class StepClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 5
        return self.now


@pytest.fixture
def backend() -> FakeHashBackend:
    return FakeHashBackend()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def store(backend: FakeHashBackend, sink: RecordingSink) -> AnnotationStore:
    return AnnotationStore(backend, sink=sink, clock=StepClock())


@pytest.mark.asyncio
async def test_create_then_list_contains_record(store: AnnotationStore) -> None:
    created = await store.create_or_replace("a1", [10.0, 20.0])

    assert created.id == "a1"
    assert created.position == [10.0, 20.0]
    assert created.client_id is None

    listed = await store.list_annotations()
    assert [a.id for a in listed] == ["a1"]
    assert listed[0].position == [10.0, 20.0]
    assert listed[0].updated_at == created.updated_at


@pytest.mark.asyncio
async def test_persisted_layout(store: AnnotationStore, backend: FakeHashBackend) -> None:
    created = await store.create_or_replace("a1", [10, 20, 3.5], client_id="tab-1")

    stored = json.loads(backend.data["a1"])
    assert stored == {"position": [10.0, 20.0, 3.5], "updatedAt": created.updated_at, "clientId": "tab-1"}


@pytest.mark.asyncio
async def test_create_overwrites_without_conflict_check(store: AnnotationStore, backend: FakeHashBackend) -> None:
    await store.create_or_replace("a1", [1.0, 2.0], client_id="first")
    second = await store.create_or_replace("a1", [3.0, 4.0], client_id="second")

    listed = await store.list_annotations()
    assert len(listed) == 1
    assert listed[0] == second
    assert "HGET" not in backend.calls


@pytest.mark.asyncio
async def test_update_is_last_write_wins(store: AnnotationStore) -> None:
    first = await store.update("a1", [1.0, 2.0])
    second = await store.update("a1", [5.0, 6.0])

    assert first.existed is False
    assert second.existed is True
    assert second.annotation.updated_at >= first.annotation.updated_at

    listed = await store.list_annotations()
    assert len(listed) == 1
    assert listed[0].position == [5.0, 6.0]


@pytest.mark.asyncio
async def test_update_never_preserves_client_id_or_timestamp(store: AnnotationStore) -> None:
    created = await store.create_or_replace("a1", [1.0, 2.0], client_id="tab-1")
    result = await store.update("a1", [1.0, 2.0])

    assert result.annotation.client_id is None
    assert result.annotation.updated_at > created.updated_at


@pytest.mark.asyncio
async def test_delete_existing_and_missing(store: AnnotationStore) -> None:
    await store.create_or_replace("a1", [1.0, 2.0])

    removed = await store.delete("a1")
    assert removed.id == "a1"
    assert removed.removed is True
    assert await store.list_annotations() == []

    again = await store.delete("a1")
    assert again.removed is False


@pytest.mark.asyncio
async def test_list_skips_malformed_payloads(store: AnnotationStore, backend: FakeHashBackend) -> None:
    await store.create_or_replace("good", [1.0, 2.0])
    backend.data["not-json"] = "{oops"
    backend.data["not-object"] = "[1, 2]"
    backend.data["short"] = json.dumps({"position": [1.0], "updatedAt": 1, "clientId": None})
    backend.data["no-timestamp"] = json.dumps({"position": [1.0, 2.0]})

    listed = await store.list_annotations()
    assert [a.id for a in listed] == ["good"]


@pytest.mark.asyncio
async def test_list_reads_legacy_lnglat_payloads(store: AnnotationStore, backend: FakeHashBackend) -> None:
    backend.data["legacy"] = json.dumps({"lngLat": [116.4, 39.9], "updatedAt": 1700000000000, "clientId": None})

    listed = await store.list_annotations()
    assert listed[0].id == "legacy"
    assert listed[0].position == [116.4, 39.9]


@pytest.mark.asyncio
@pytest.mark.parametrize("position", [[], [1.0], "1,2", None, [1.0, "2"], [True, 2.0], [float("nan"), 1.0]])
async def test_bad_position_rejected_on_both_paths(
    store: AnnotationStore,
    backend: FakeHashBackend,
    sink: RecordingSink,
    position: object,
) -> None:
    with pytest.raises(InvalidArgumentError) as create_err:
        await store.create_or_replace("a1", position)
    with pytest.raises(InvalidArgumentError) as update_err:
        await store.update("a1", position)

    assert create_err.value.field == "position"
    assert update_err.value.field == "position"
    assert backend.calls == {}
    assert backend.data == {}
    assert sink.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize("annotation_id", ["", "   ", None, 42])
async def test_bad_id_rejected(store: AnnotationStore, backend: FakeHashBackend, annotation_id: object) -> None:
    with pytest.raises(InvalidArgumentError) as err:
        await store.create_or_replace(annotation_id, [1.0, 2.0])

    assert err.value.field == "id"
    assert backend.calls == {}


@pytest.mark.asyncio
async def test_bad_client_id_rejected(store: AnnotationStore) -> None:
    with pytest.raises(InvalidArgumentError) as err:
        await store.create_or_replace("a1", [1.0, 2.0], client_id=["nope"])

    assert err.value.field == "clientId"
    assert "clientId" in str(err.value)

    with pytest.raises(InvalidArgumentError) as update_err:
        await store.update("a1", [1.0, 2.0], client_id=7)

    assert update_err.value.field == "clientId"


@pytest.mark.asyncio
async def test_coordinate_beyond_float_range_rejected(
    store: AnnotationStore,
    backend: FakeHashBackend,
    sink: RecordingSink,
) -> None:
    with pytest.raises(InvalidArgumentError) as create_err:
        await store.create_or_replace("a1", [10**400, 2.0])
    with pytest.raises(InvalidArgumentError) as update_err:
        await store.update("a1", [1.0, -(10**400)])

    assert create_err.value.field == "position"
    assert update_err.value.field == "position"
    assert backend.data == {}
    assert sink.events == []


@pytest.mark.asyncio
async def test_list_skips_payload_with_coordinate_beyond_float_range(
    store: AnnotationStore,
    backend: FakeHashBackend,
) -> None:
    await store.create_or_replace("good", [1.0, 2.0])
    backend.data["huge"] = '{"position": [1' + "0" * 400 + ', 2], "updatedAt": 1, "clientId": null}'

    listed = await store.list_annotations()
    assert [a.id for a in listed] == ["good"]


@pytest.mark.asyncio
async def test_events_emitted_after_writes(store: AnnotationStore, sink: RecordingSink) -> None:
    await store.create_or_replace("a1", [1.0, 2.0], client_id="tab-1")
    await store.update("a1", [3.0, 4.0], client_id="tab-2")
    await store.delete("a1")
    await store.delete("never-existed")

    assert [(e.kind, e.id) for e in sink.events] == [
        (BroadcastEventKind.ADD, "a1"),
        (BroadcastEventKind.UPDATE, "a1"),
        (BroadcastEventKind.REMOVE, "a1"),
        (BroadcastEventKind.REMOVE, "never-existed"),
    ]
    assert sink.events[0].to_wire() == {"kind": "add", "id": "a1", "position": [1.0, 2.0], "clientId": "tab-1"}
    assert sink.events[2].to_wire() == {"kind": "remove", "id": "a1", "clientId": None}


@pytest.mark.asyncio
async def test_failing_sink_does_not_fail_operations(backend: FakeHashBackend) -> None:
    store = AnnotationStore(backend, sink=ExplodingSink())

    created = await store.create_or_replace("a1", [1.0, 2.0])
    result = await store.update("a1", [2.0, 3.0])
    removed = await store.delete("a1")

    assert created.id == "a1"
    assert result.existed is True
    assert removed.removed is True


@pytest.mark.asyncio
async def test_default_sink_is_inert(backend: FakeHashBackend) -> None:
    store = AnnotationStore(backend)

    created = await store.create_or_replace("a1", [1.0, 2.0])

    assert created.updated_at > 0
    assert "a1" in backend.data


@pytest.mark.asyncio
async def test_backend_failure_maps_to_internal_error(
    store: AnnotationStore,
    backend: FakeHashBackend,
    sink: RecordingSink,
) -> None:
    backend.fail = True

    with pytest.raises(InternalError) as list_err:
        await store.list_annotations()
    with pytest.raises(InternalError) as create_err:
        await store.create_or_replace("a1", [1.0, 2.0])
    with pytest.raises(InternalError) as update_err:
        await store.update("a1", [1.0, 2.0])
    with pytest.raises(InternalError) as delete_err:
        await store.delete("a1")

    assert list_err.value.operation == "list"
    assert create_err.value.operation == "create"
    assert update_err.value.operation == "update"
    assert delete_err.value.operation == "delete"
    assert isinstance(create_err.value.__cause__, BackendError)
    assert sink.events == []


@pytest.mark.asyncio
async def test_example_scenario(store: AnnotationStore) -> None:
    created = await store.create_or_replace("a1", [10.0, 20.0])
    assert created.to_dict() == {
        "id": "a1",
        "position": [10.0, 20.0],
        "updatedAt": created.updated_at,
        "clientId": None,
    }

    updated = await store.update("a1", [11.0, 21.0])
    body = updated.to_dict()
    assert body["existed"] is True
    assert body["position"] == [11.0, 21.0]
    assert body["updatedAt"] >= created.updated_at

    assert (await store.delete("a1")).to_dict() == {"id": "a1", "removed": True}
    assert await store.list_annotations() == []
