"""
cloudledger command line.

    python -m cloudledger init-db
    python -m cloudledger run-once [--provider digitalocean] [--provider gcp]
    python -m cloudledger serve
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog
from prometheus_client import start_http_server

from cloudledger.modules.inventory.orchestration.scheduler import InventoryScheduler
from cloudledger.runtime import PROVIDERS, build_runtime
from cloudledger.shared.core.config import get_settings
from cloudledger.shared.core.exceptions import CloudLedgerException
from cloudledger.shared.core.logging import setup_logging
from cloudledger.shared.db.session import dispose_engine, init_models

logger = structlog.get_logger()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cloudledger",
        description="Cloud inventory snapshots with SCD2 history.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init-db", help="Create snapshot and history tables.")
    run_once = sub.add_parser("run-once", help="Run one inventory sweep and exit.")
    run_once.add_argument(
        "--provider",
        action="append",
        choices=PROVIDERS,
        help="Restrict the sweep to a provider (repeatable). Defaults to every configured provider.",
    )
    sub.add_parser("serve", help="Run inventory sweeps on a schedule.")
    return parser.parse_args(argv)


async def _init_db() -> int:
    try:
        await init_models()
    finally:
        await dispose_engine()
    return 0


async def _run_once(providers: list[str] | None) -> int:
    settings = get_settings()
    runtime = build_runtime(settings)
    try:
        await init_models()
        results = await runtime.run_once(providers)
    finally:
        await dispose_engine()
    for result in results:
        logger.info(
            "inventory_run_summary",
            workflow=result.workflow,
            succeeded=sorted(result.succeeded),
            failed=result.failed,
            skipped=result.skipped,
        )
    return 0 if all(result.ok for result in results) else 1


async def _serve() -> int:
    settings = get_settings()
    runtime = build_runtime(settings)
    # Fail fast on missing provider config instead of at the first tick.
    runtime.workflows()
    await init_models()

    if settings.METRICS_PORT:
        start_http_server(settings.METRICS_PORT)
        logger.info("metrics_server_started", port=settings.METRICS_PORT)

    scheduler = InventoryScheduler(
        runtime.run_once,
        interval_minutes=settings.INVENTORY_SYNC_INTERVAL_MINUTES,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    scheduler.start()
    try:
        await stop.wait()
    finally:
        await scheduler.stop()
        await dispose_engine()
    return 0


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = _parse_args(argv)
    try:
        if args.command == "init-db":
            return asyncio.run(_init_db())
        if args.command == "run-once":
            return asyncio.run(_run_once(args.provider))
        return asyncio.run(_serve())
    except CloudLedgerException as exc:
        logger.error("cloudledger_command_failed", command=args.command, error=exc.message, code=exc.code)
        return 2


if __name__ == "__main__":
    sys.exit(main())
