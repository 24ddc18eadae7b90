"""
Command line entry point.

Loads settings, configures logging, and runs one session operation against the
configured identity provider and database, printing the result as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from .core.config import Settings, get_settings
from .core.database import create_engine, create_session_factory, init_db, session_scope
from .schemas.auth import SignUpData
from .services import profiles
from .services.identity import FileSessionStorage, GoTrueClient
from .services.session import SessionBootstrap

DEFAULT_SESSION_FILE = Path.home() / ".social_chair" / "session.json"


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Route structlog to stderr; stdout is reserved for command output."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if fmt == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _init_db(settings: Settings) -> None:
    engine = create_engine()
    await init_db(engine)
    factory = create_session_factory(engine)
    async with session_scope(factory) as session:
        created = await profiles.seed_roles(settings.seed_role_names, session)
    await engine.dispose()
    _print({"tables": "ok", "roles_created": [r.name for r in created]})


async def _run_session_command(args: argparse.Namespace, settings: Settings) -> int:
    session_file = args.session_file or settings.session_file or DEFAULT_SESSION_FILE
    provider = GoTrueClient(
        auth_url=settings.auth_url,
        api_key=settings.auth_api_key,
        request_timeout=settings.request_timeout_seconds,
        storage=FileSessionStorage(session_file),
    )
    engine = create_engine()
    bootstrap = SessionBootstrap(provider, create_session_factory(engine), settings)

    await provider.open()
    exit_code = 0
    try:
        await bootstrap.start()

        if args.command == "sign-up":
            result = await bootstrap.sign_up(
                SignUpData(
                    first_name=args.first_name,
                    last_name=args.last_name,
                    email=args.email,
                    password=args.password,
                    school_name=args.school,
                    organization_name=args.organization,
                    chapter_code=args.chapter_code,
                    role_name=args.role or settings.default_role_name,
                )
            )
            _print(result.model_dump(exclude_none=True))
            exit_code = 1 if result.error else 0
        elif args.command == "sign-in":
            result = await bootstrap.sign_in(args.email, args.password)
            _print(result.model_dump(exclude_none=True))
            exit_code = 1 if result.error else 0
        elif args.command == "sign-out":
            await bootstrap.sign_out()

        _print(bootstrap.state.as_dict())
    finally:
        bootstrap.close()
        await provider.close()
        await engine.dispose()
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Social Chair session tools")
    parser.add_argument("--session-file", help="Where the signed-in session is kept")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and seed the role set")
    sub.add_parser("whoami", help="Resolve the current user from the stored session")
    sub.add_parser("sign-out", help="Sign out and clear the stored session")

    sign_in = sub.add_parser("sign-in", help="Sign in with email and password")
    sign_in.add_argument("--email", required=True)
    sign_in.add_argument("--password", required=True)

    sign_up = sub.add_parser("sign-up", help="Register and provision a chapter profile")
    sign_up.add_argument("--email", required=True)
    sign_up.add_argument("--password", required=True)
    sign_up.add_argument("--first-name", required=True)
    sign_up.add_argument("--last-name", required=True)
    sign_up.add_argument("--school", required=True)
    sign_up.add_argument("--organization", required=True)
    sign_up.add_argument("--chapter-code", required=True)
    sign_up.add_argument("--role", help="Role name (defaults to the configured default role)")
    return parser


def run(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_format)
    structlog.contextvars.bind_contextvars(command=args.command)
    log = structlog.get_logger()
    log.info("cli.started")

    try:
        if args.command == "init-db":
            asyncio.run(_init_db(settings))
            exit_code = 0
        else:
            exit_code = asyncio.run(_run_session_command(args, settings))
    except ValidationError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        exit_code = 2
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
