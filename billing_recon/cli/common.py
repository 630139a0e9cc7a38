"""Helpers shared by the CLI entry points."""

import argparse
import logging
import os
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from typing import AsyncIterator

from billing_recon.config.recon_config import ReconConfig
from billing_recon.services.billing_store import BillingStore
from billing_recon.services.config import DEFAULT_RECON_CONFIG_PATH, ENVIRONMENTS, RuntimeConfig, load_config
from billing_recon.services.db import create_engine_for, create_session_factory
from billing_recon.services.memory_store import InMemoryBillingStore
from billing_recon.services.sql_store import SqlBillingStore


def decimal_argument(value: str) -> Decimal:
    """argparse type for monetary amounts."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}")


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--env",
        choices=ENVIRONMENTS,
        default="dev",
        help="Target environment (selects DATABASE_URL_DEV or DATABASE_URL_PROD)",
    )
    parser.add_argument(
        "--snapshot",
        metavar="PATH",
        help="Read from a JSON snapshot instead of the database (writes stay in memory)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Reconciliation rules JSON (default: RECON_CONFIG_PATH or billing_recon/config/recon.json)",
    )


def load_settings(args) -> tuple[RuntimeConfig | None, ReconConfig]:
    """Load runtime settings (unless reading a snapshot) and reconciliation rules.

    Raises:
        ConfigError: If either configuration is missing or invalid
    """
    runtime = None if args.snapshot else load_config(args.env)
    if args.config:
        rules_path = args.config
    elif runtime is not None:
        rules_path = runtime.recon_config_path
    else:
        rules_path = os.getenv("RECON_CONFIG_PATH", DEFAULT_RECON_CONFIG_PATH)
    return runtime, ReconConfig.load(rules_path)


@asynccontextmanager
async def open_store(
    runtime: RuntimeConfig | None,
    snapshot: str | None,
    logger: logging.Logger,
) -> AsyncIterator[BillingStore]:
    """Yield a ready billing store and release its connections afterwards.

    Raises:
        StoreUnavailableError: If the snapshot or database cannot be reached
    """
    if snapshot:
        logger.info("Using billing snapshot %s", snapshot)
        yield InMemoryBillingStore.from_json_file(snapshot)
        return

    engine = create_engine_for(runtime.database_url)
    try:
        store = SqlBillingStore(create_session_factory(engine))
        await store.ping()
        logger.info("Connected to %s billing store", runtime.environment)
        yield store
    finally:
        await engine.dispose()
