"""Command line maintenance tools."""

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from synth_collect.app_logging import configure_logging
from synth_collect.config import Settings
from synth_collect.containers import build_container

_logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="synth-collect", description="SynthCollect maintenance commands"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    repair = subparsers.add_parser(
        "repair-paths",
        help="Copy image files to their canonical location and fix stored paths",
    )
    repair.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help="Data directory (defaults to the DATA_ROOT setting)",
    )
    repair.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without touching files or records",
    )
    return parser


def run_repair_paths(args: argparse.Namespace) -> int:
    overrides = {"data_root": args.data_root} if args.data_root else {}
    settings = Settings(**overrides)
    container = build_container(settings)
    report = container.repair_service.repair(dry_run=args.dry_run)
    print(report.summary())
    for label in report.missing:
        print(f"missing: {label}")
    for label in report.failed:
        print(f"failed: {label}")
    return 1 if report.failed else 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line interface."""
    configure_logging()
    args = build_parser().parse_args(argv)
    if args.command == "repair-paths":
        return run_repair_paths(args)
    _logger.error("Unknown command: %s", args.command)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
