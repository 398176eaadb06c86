"""annostore - Async point annotation store with realtime broadcast."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("annostore")
except PackageNotFoundError:
    __version__ = "0+local"
from annostore._backend import KeyValueBackend, RedisHashBackend
from annostore.broadcast import BroadcastForwarder, EventSink, ForwarderState, NullSink
from annostore.config import AnnostoreConfig
from annostore.exceptions import (
    AnnostoreError,
    BackendError,
    ConfigError,
    InternalError,
    InvalidArgumentError,
)
from annostore.models import (
    Annotation,
    BroadcastEvent,
    BroadcastEventKind,
    DeleteResult,
    UpdateResult,
)
from annostore.store import AnnotationStore

__all__ = [
    "__version__",
    "Annotation",
    "AnnotationStore",
    "AnnostoreConfig",
    "AnnostoreError",
    "BackendError",
    "BroadcastEvent",
    "BroadcastEventKind",
    "BroadcastForwarder",
    "ConfigError",
    "DeleteResult",
    "EventSink",
    "ForwarderState",
    "InternalError",
    "InvalidArgumentError",
    "KeyValueBackend",
    "NullSink",
    "RedisHashBackend",
    "UpdateResult",
]
