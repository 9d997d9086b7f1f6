#!/usr/bin/env python3
"""
Taskboard -- multi-tenant project management backend.

Usage:
  python main.py init-db                 create missing tables and seed built-in roles
  python main.py purge-tokens            delete expired refresh tokens
  python main.py serve                   run the API with uvicorn
  python main.py serve --host 0.0.0.0 --port 8080 --reload

Environment variables (or a .env file) configure everything else; see
core/config.py. DATABASE_URL, SECRET_KEY and REFRESH_SECRET_KEY are required
unless DEBUG=true.
"""

import argparse
import logging
import sys

from api.container import build_services
from core.config import get_settings
from core.db import create_db_engine


def _services():
    settings = get_settings()
    return build_services(create_db_engine(settings.database_url), settings)


def cmd_init_db(args: argparse.Namespace) -> int:
    """build_services() already creates the schema and seeds; report what exists."""
    services = _services()
    roles = services.catalog.list_roles()
    print(f"  Database ready: {get_settings().database_url}")
    print(f"  Roles: {', '.join(role.name for role in roles)}")
    services.engine.dispose()
    return 0


def cmd_purge_tokens(args: argparse.Namespace) -> int:
    services = _services()
    purged = services.tokens.purge_expired()
    print(f"  Purged {purged} expired refresh token(s).")
    services.engine.dispose()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskboard",
        description="Taskboard -- multi-tenant project management backend.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and seed built-in roles").set_defaults(func=cmd_init_db)
    sub.add_parser("purge-tokens", help="Delete expired refresh tokens").set_defaults(func=cmd_purge_tokens)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development only)")
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
