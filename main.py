"""Command-line interface for the QuickTalk chat service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from quicktalk.config import Settings, load_settings
from quicktalk.database import Database

logger = logging.getLogger("quicktalk.main")


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (defaults to QUICKTALK_CONFIG when set)",
    )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="QuickTalk chat service utilities")
    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init-db", help="Initialise the chat database")
    _add_config_argument(init_parser)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP/WebSocket service")
    _add_config_argument(serve_parser)
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the service")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP service (default: 8080)",
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change (development only)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser().resolve(strict=False) if config else None
    return load_settings(config_path)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Using database at %s", settings.database_path)
    return database


def _serve(settings: Settings, *, host: str, port: int, reload: bool) -> None:
    import uvicorn

    from quicktalk.service import create_app

    if reload:
        logger.warning("Auto-reload ignores --config; settings are re-read from the environment.")
        uvicorn.run(
            "quicktalk.service:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            proxy_headers=True,
        )
        return

    database = _initialise_database(settings)
    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=host, port=port, proxy_headers=True)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port, reload=args.reload)
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
