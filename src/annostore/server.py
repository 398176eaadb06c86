"""HTTP gateway exposing the annotation store over JSON.

The gateway only translates requests into store calls and store results
into responses. The store and forwarder are built once per application
and reached through application keys.
"""

from __future__ import annotations

import hmac
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from aiohttp import web

from annostore._backend import RedisHashBackend
from annostore._redact import redact_for_log
from annostore.broadcast import BroadcastForwarder
from annostore.config import AnnostoreConfig
from annostore.exceptions import BackendError, InternalError, InvalidArgumentError
from annostore.store import AnnotationStore

_logger = logging.getLogger(__name__)

STORE_KEY = web.AppKey("annostore_store", AnnotationStore)
FORWARDER_KEY = web.AppKey("annostore_forwarder", BroadcastForwarder)
API_KEY_KEY = web.AppKey("annostore_api_key", str)
CORS_ORIGIN_KEY = web.AppKey("annostore_cors_origin", str)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_CORS_METHODS = "GET,POST,PUT,DELETE,OPTIONS"
_CORS_HEADERS = "Content-Type,x-api-key"


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def _read_body(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidArgumentError("invalid JSON body", field="body") from exc
    if not isinstance(body, dict):
        raise InvalidArgumentError("invalid payload, expected an object", field="body")
    return body


def _position(body: dict[str, Any]) -> Any:
    # Legacy clients send ``lngLat``.
    return body["position"] if "position" in body else body.get("lngLat")


# ----------------------------------------------------------------------
# Middlewares
# ----------------------------------------------------------------------


@web.middleware
async def cors_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    origin = request.app.get(CORS_ORIGIN_KEY, "*")
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
        response.headers["Access-Control-Allow-Methods"] = _CORS_METHODS
        response.headers["Access-Control-Allow-Headers"] = _CORS_HEADERS
    else:
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers["Access-Control-Allow-Origin"] = origin
            raise
    response.headers["Access-Control-Allow-Origin"] = origin
    return response


@web.middleware
async def api_key_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    """Require the shared secret on annotation routes when one is configured."""
    expected = request.app.get(API_KEY_KEY)
    if not expected or not request.path.startswith("/annotations"):
        return await handler(request)
    supplied = request.headers.get("x-api-key") or request.query.get("api_key")
    if not supplied or not hmac.compare_digest(supplied.encode(), expected.encode()):
        _logger.debug("Rejected %s %s: bad or missing api key", request.method, request.path)
        return _error(401, "Unauthorized")
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except InvalidArgumentError as exc:
        return _error(400, str(exc))
    except InternalError as exc:
        _logger.error("%s %s failed in %s", request.method, request.path, exc.operation or "store")
        return _error(500, "internal")


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------


async def list_annotations(request: web.Request) -> web.Response:
    annotations = await request.app[STORE_KEY].list_annotations()
    return web.json_response([a.to_dict() for a in annotations])


async def create_annotation(request: web.Request) -> web.Response:
    body = await _read_body(request)
    annotation = await request.app[STORE_KEY].create_or_replace(
        body.get("id"),
        _position(body),
        body.get("clientId"),
    )
    return web.json_response(annotation.to_dict(), status=201)


async def update_annotation(request: web.Request) -> web.Response:
    body = await _read_body(request)
    result = await request.app[STORE_KEY].update(
        request.match_info["id"],
        _position(body),
        body.get("clientId"),
    )
    return web.json_response(result.to_dict())


async def delete_annotation(request: web.Request) -> web.Response:
    result = await request.app[STORE_KEY].delete(request.match_info["id"])
    return web.json_response(result.to_dict())


async def health(request: web.Request) -> web.Response:
    forwarder = request.app.get(FORWARDER_KEY)
    broadcast = forwarder.state.value if forwarder is not None and forwarder.enabled else "disabled"
    return web.json_response({"ok": True, "broadcast": broadcast})


# ----------------------------------------------------------------------
# Application factories
# ----------------------------------------------------------------------


def create_app(
    store: AnnotationStore | None = None,
    *,
    api_key: str | None = None,
    cors_origin: str = "*",
    forwarder: BroadcastForwarder | None = None,
    client_max_size: int = 64 * 1024,
) -> web.Application:
    """Build the gateway around an existing store.

    *store* may be omitted when a cleanup context installs it at startup
    (see :func:`build_app`).
    """
    app = web.Application(
        middlewares=[cors_middleware, api_key_middleware, error_middleware],
        client_max_size=client_max_size,
    )
    if store is not None:
        app[STORE_KEY] = store
    if forwarder is not None:
        app[FORWARDER_KEY] = forwarder
    if api_key:
        app[API_KEY_KEY] = api_key
    app[CORS_ORIGIN_KEY] = cors_origin

    app.router.add_get("/annotations", list_annotations)
    app.router.add_post("/annotations", create_annotation)
    app.router.add_put("/annotations/{id}", update_annotation)
    app.router.add_delete("/annotations/{id}", delete_annotation)
    app.router.add_get("/health", health)
    return app


def build_app(config: AnnostoreConfig) -> web.Application:
    """Build the production gateway: Redis backend plus websocket forwarder."""
    app = create_app(
        api_key=config.api_key,
        cors_origin=config.cors_origin,
        client_max_size=config.max_body_bytes,
    )

    async def _resources(app: web.Application) -> AsyncIterator[None]:
        _logger.info("Starting annostore with %s", redact_for_log(_config_summary(config)))
        backend = RedisHashBackend.from_url(config.redis_url, config.annotations_key)
        forwarder = BroadcastForwarder(
            config.broadcast_url,
            reconnect_delay=config.reconnect_delay,
            send_timeout=config.send_timeout,
        )
        try:
            await backend.ping()
        except BackendError:
            await backend.close()
            raise
        _logger.info("Connected to Redis, annotations in hash %s", config.annotations_key)
        await forwarder.start()
        app[FORWARDER_KEY] = forwarder
        app[STORE_KEY] = AnnotationStore(backend, sink=forwarder)
        try:
            yield
        finally:
            await forwarder.stop()
            await backend.close()

    app.cleanup_ctx.append(_resources)
    return app


def _config_summary(config: AnnostoreConfig) -> dict[str, Any]:
    return {
        "redis_url": config.redis_url,
        "broadcast_url": config.broadcast_url,
        "api_key": config.api_key,
        "cors_origin": config.cors_origin,
    }
