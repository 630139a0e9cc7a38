"""CLI entry point for reconciling unit bills against meter readings.

Usage:
    python -m billing_recon.cli.reconcile UNIT_ID [--env dev|prod] [--period ID ...] [--dry-run]
    python -m billing_recon.cli.reconcile --all [--env dev|prod] [--dry-run]
    python -m billing_recon.cli.reconcile --all --snapshot export.json --dry-run

Exit Codes:
    0 - Run completed (per-unit failures are reported in the summary)
    1 - Setup failure: configuration invalid or billing store unreachable
    2 - Invalid arguments

Logging:
    INFO level logs to both stdout and logs/reconcile.log (LOG_FILE)
"""

import argparse
import asyncio
import os
import sys

from billing_recon.cli.common import add_common_arguments, load_settings, open_store
from billing_recon.services.config import DEFAULT_LOG_FILE
from billing_recon.services.errors import ReconciliationError
from billing_recon.services.logging import setup_logging
from billing_recon.services.reconciliation_service import ReconciliationService
from billing_recon.services.reports import format_paid_discrepancy_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m billing_recon.cli.reconcile",
        description="Verify unit bills against meter readings and repair misallocated breakdowns.",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("unit_id", nargs="?", help="Unit to reconcile")
    target.add_argument("--all", action="store_true", help="Reconcile every unit")
    parser.add_argument(
        "--period",
        action="append",
        dest="periods",
        metavar="ID",
        help="Billing period id to process (repeatable; default: all periods)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the corrections that would be written without writing them",
    )
    add_common_arguments(parser)
    return parser


async def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the reconciliation CLI.

    Returns:
        Exit code: 0 when the run completed, 1 on setup failure
    """
    args = build_parser().parse_args(argv)
    logger = setup_logging(os.getenv("LOG_FILE", DEFAULT_LOG_FILE))

    try:
        runtime, rules = load_settings(args)
        if runtime is not None and runtime.is_production and not args.dry_run:
            logger.warning("Running against PRODUCTION - corrections will be written")

        async with open_store(runtime, args.snapshot, logger) as store:
            service = ReconciliationService(store, rules, dry_run=args.dry_run, logger=logger)
            unit_ids = None if args.all else [args.unit_id]
            run = await service.reconcile(unit_ids=unit_ids, period_ids=args.periods)

        logger.info("\n" + run.get_summary_report())
        if run.paid_discrepancies:
            logger.info("\n" + format_paid_discrepancy_report(run.paid_discrepancies))
        return 0

    except KeyboardInterrupt:
        logger.warning("Reconciliation interrupted by user")
        return 1
    except ReconciliationError as e:
        logger.error(f"Reconciliation failed: {e}")
        return 1


def run() -> None:
    exit_code = asyncio.run(main())
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
