"""
payrelay command line.

    payrelay init-db
    payrelay scan --threshold-minutes 15
    payrelay purge
    payrelay serve --simulate --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from datetime import timedelta

import structlog
import uvicorn
from kungfu import Ok, Error

from payrelay.api import app_from_settings
from payrelay.config import Settings
from payrelay.logs import setup_logging
from payrelay.reconcile import ReconciliationScanner
from payrelay.runtime import load_gateway
from payrelay.store import SQLAlchemyStore, create_database

logger = structlog.get_logger(__name__)


async def _init_db(settings: Settings) -> int:
    _, engine = await create_database(settings.database_url)
    await engine.dispose()
    logger.info("schema_ready", database=engine.url.render_as_string(hide_password=True))
    return 0


async def _scan(settings: Settings, threshold: timedelta) -> int:
    session_factory, engine = await create_database(settings.database_url)
    try:
        scanner = ReconciliationScanner(SQLAlchemyStore(session_factory), threshold=threshold)
        match await scanner.scan():
            case Ok(report):
                print(json.dumps(report.to_dict(), indent=2))
                return 0 if report.empty else 2
            case Error(err):
                logger.error("reconciliation_scan_failed", error=err.message)
                return 1
    finally:
        await engine.dispose()


async def _purge(settings: Settings) -> int:
    session_factory, engine = await create_database(settings.database_url)
    try:
        match await SQLAlchemyStore(session_factory).purge_expired():
            case Ok(count):
                logger.info("records_purged", count=count)
                return 0
            case Error(err):
                logger.error("purge_failed", error=err.message)
                return 1
    finally:
        await engine.dispose()


def _serve(settings: Settings, args: argparse.Namespace) -> int:
    spec = "simulated" if args.simulate else (args.gateway or settings.gateway)
    if spec is None:
        logger.error("gateway_missing", hint="pass --simulate or --gateway module:factory")
        return 1

    app = app_from_settings(settings, load_gateway(spec))
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="payrelay", description="Idempotent payment relay")
    parser.add_argument("--database-url", help="Override PAYRELAY_DATABASE_URL")
    parser.add_argument("--log-level", help="Override PAYRELAY_LOG_LEVEL")
    parser.add_argument("--json-logs", action="store_true", help="Render logs as JSON")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create the orders table")

    scan = commands.add_parser("scan", help="Print abandoned in-flight orders as JSON")
    scan.add_argument(
        "--threshold-minutes",
        type=float,
        default=None,
        help="Idle time before an order counts as abandoned",
    )

    commands.add_parser("purge", help="Delete expired records (never CHARGING ones)")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    source = serve.add_mutually_exclusive_group()
    source.add_argument("--simulate", action="store_true", help="Use the in-process simulated processor")
    source.add_argument("--gateway", help="Gateway factory as module:factory")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides: dict[str, object] = {}
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.json_logs:
        overrides["json_logs"] = True
    settings = Settings(**overrides)  # type: ignore[arg-type]

    setup_logging(settings.log_level, json=settings.json_logs)

    match args.command:
        case "init-db":
            return asyncio.run(_init_db(settings))
        case "scan":
            threshold = (
                timedelta(minutes=args.threshold_minutes)
                if args.threshold_minutes is not None
                else settings.abandonment_threshold()
            )
            return asyncio.run(_scan(settings, threshold))
        case "purge":
            return asyncio.run(_purge(settings))
        case "serve":
            return _serve(settings, args)
        case _:
            return 2


if __name__ == "__main__":
    sys.exit(main())
