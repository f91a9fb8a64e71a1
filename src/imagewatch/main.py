#!/usr/bin/env python3

# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from imagewatch import __version__
from imagewatch.app import reconcile_registries
from imagewatch.common.logging import configure_logging
from imagewatch.config.errors import ConfigurationError
from imagewatch.config.reconciler import get_reconciler_config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from imagewatch.domain.model import PassReport


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="imagewatch",
        description="Notify a CI orchestrator about new container images in watched registries",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subcommands = parser.add_subparsers(dest="command", required=True)

    reconcile = subcommands.add_parser("reconcile", help="Run one reconciliation pass")
    reconcile.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    reconcile.add_argument(
        "--max-tags",
        type=int,
        help="Number of listed tags to consider per repository (overrides IMAGE_COUNT_FROM_REPO)",
    )
    reconcile.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the notifications instead of calling the webhook",
    )
    return parser.parse_args(list(argv))


def _print_report(report: PassReport) -> None:
    for outcome in report.outcomes:
        source = outcome.source
        line = (
            f"[{outcome.state}] {source.registry_url}/{source.repository} "
            f"(correlation_id={source.correlation_id}): candidates={outcome.candidates}, "
            f"notified={len(outcome.notified)}"
        )
        if outcome.refused:
            line += f", refused={len(outcome.refused)}"
        if outcome.notification_failures:
            line += f", notification_failures={len(outcome.notification_failures)}"
        if outcome.error is not None:
            line += f", error={outcome.error}"
        print(line)
    print(
        f"Pass finished: {len(report.succeeded)} succeeded, {len(report.failed)} failed, "
        f"{report.notified} notified"
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args = _parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        config = get_reconciler_config()
        if parsed_args.max_tags is not None:
            config = replace(config, max_tags=parsed_args.max_tags)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        report = reconcile_registries(config=config, dry_run=parsed_args.dry_run)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:  # noqa: BLE001
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    _print_report(report)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    print("\nClosed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
