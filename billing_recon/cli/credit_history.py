"""CLI entry point for comparing derived credit events with the stored credit history.

Usage:
    python -m billing_recon.cli.credit_history UNIT_ID [--env dev|prod] [--window-days N]
    python -m billing_recon.cli.credit_history --all [--env dev|prod]

Read-only: nothing is written to the billing store.

Exit Codes:
    0 - Comparison completed (differences and per-unit failures under --all are reported)
    1 - Setup failure, or the selected unit has no statement
    2 - Invalid arguments
"""

import argparse
import asyncio
import os
import sys

from billing_recon.cli.common import add_common_arguments, decimal_argument, load_settings, open_store
from billing_recon.services.config import DEFAULT_LOG_FILE
from billing_recon.services.credit_history_service import (
    CreditHistoryComparator,
    compare_all_credit_histories,
    compare_unit_credit_history,
)
from billing_recon.services.errors import ReconciliationError
from billing_recon.services.logging import setup_logging
from billing_recon.services.reports import format_comparison_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m billing_recon.cli.credit_history",
        description="Derive credit events from a unit's running balance and diff them against its credit history.",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("unit_id", nargs="?", help="Unit to compare")
    target.add_argument("--all", action="store_true", help="Compare every unit that has a statement")
    parser.add_argument(
        "--window-days",
        type=int,
        help="Maximum days between a derived event and its stored entry (default from config)",
    )
    parser.add_argument(
        "--amount-tolerance",
        type=decimal_argument,
        help="Maximum amount difference for a match (default from config)",
    )
    add_common_arguments(parser)
    return parser


async def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the credit history comparison CLI.

    Returns:
        Exit code: 0 when the comparison completed, 1 on failure
    """
    args = build_parser().parse_args(argv)
    logger = setup_logging(os.getenv("LOG_FILE", DEFAULT_LOG_FILE))

    try:
        runtime, rules = load_settings(args)
        comparator = CreditHistoryComparator(
            window_days=args.window_days if args.window_days is not None else rules.credit_match_window_days,
            amount_tolerance=(
                args.amount_tolerance if args.amount_tolerance is not None else rules.credit_amount_tolerance
            ),
        )

        async with open_store(runtime, args.snapshot, logger) as store:
            if not args.all:
                comparison = await compare_unit_credit_history(store, args.unit_id, comparator)
                logger.info("\n" + format_comparison_report(comparison))
                return 0

            history_run = await compare_all_credit_histories(store, comparator)

        for comparison in history_run.comparisons:
            logger.info("\n" + format_comparison_report(comparison))
        logger.info(
            "Compared %d unit(s): %d with differences, %d failed",
            len(history_run.comparisons),
            len(history_run.inconsistent),
            len(history_run.failures),
        )
        return 0

    except KeyboardInterrupt:
        logger.warning("Comparison interrupted by user")
        return 1
    except ReconciliationError as e:
        logger.error(f"Credit history comparison failed: {e}")
        return 1


def run() -> None:
    exit_code = asyncio.run(main())
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
