"""Command-line entry point: run the annotation gateway."""

from __future__ import annotations

import argparse
import logging
import sys

from aiohttp import web

from annostore import __version__
from annostore.config import AnnostoreConfig
from annostore.exceptions import ConfigError
from annostore.server import build_app

_ACCESS_LOG_FORMAT = '%a "%r" %s %b - %Tfs'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="annostore",
        description="Point annotation store with Redis persistence and websocket broadcast.",
    )
    parser.add_argument("--host", help="Bind address (env HOST, default 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Listen port (env PORT, default 3000)")
    parser.add_argument("--redis-url", help="Redis URL (env REDIS_URL)")
    parser.add_argument("--annotations-key", help="Redis hash name (env REDIS_ANNOTATIONS_KEY)")
    parser.add_argument("--broadcast-url", help="Websocket endpoint for change events (env LIGHTCABLE_WS_URL)")
    parser.add_argument("--cors-origin", help="Allowed CORS origin (env CORS_ORIGIN, default *)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(argv: list[str] | None = None) -> tuple[AnnostoreConfig, argparse.Namespace]:
    args = build_parser().parse_args(argv)
    config = AnnostoreConfig.from_env(
        host=args.host,
        port=args.port,
        redis_url=args.redis_url,
        annotations_key=args.annotations_key,
        broadcast_url=args.broadcast_url,
        cors_origin=args.cors_origin,
    )
    return config, args


def main(argv: list[str] | None = None) -> None:
    try:
        config, args = load_config(argv)
    except ConfigError as exc:
        print(f"annostore: {exc}", file=sys.stderr)
        sys.exit(2)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    web.run_app(
        build_app(config),
        host=config.host,
        port=config.port,
        access_log_format=_ACCESS_LOG_FORMAT,
    )


if __name__ == "__main__":
    main()
