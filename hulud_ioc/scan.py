#!/usr/bin/env python3
"""Shai-Hulud indicator-of-compromise scanner for Node.js projects.

Point it at a ``package.json`` / ``package-lock.json`` to check that single
file against the malicious-package dataset, or at a directory to walk the
whole project: manifests, lockfiles, workflow files, payload hashes and
suspicious script content.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from hulud_ioc.scan_core.config import DEFAULT_DIR_EXCLUSIONS, ENV_DATASET_PATH, ENV_DATASET_URL
from hulud_ioc.scan_core.dataset import DatasetIndex, build_dataset, resolve_dataset
from hulud_ioc.scan_core.models import DatasetMeta, ScanReport
from hulud_ioc.scan_core.reporting.formatters import configure_output
from hulud_ioc.scan_core.reporting.json_output import print_json_output
from hulud_ioc.scan_core.reporting.structured import print_structured_report
from hulud_ioc.scan_core.scanner import ProjectScanOptions, scan_project
from hulud_ioc.scan_core.single_file import scan_file
from hulud_ioc.scan_core.utils import LOGGER, setup_logging


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hulud-ioc-scan",
        description="Scan a project or a single manifest for Shai-Hulud compromise indicators.",
    )
    parser.add_argument(
        "target",
        nargs="?",
        default=".",
        help="Directory to walk, or a package.json / package-lock.json to check (default: current directory).",
    )
    parser.add_argument(
        "--data",
        help=(
            "Dataset path or http(s) URL. Defaults to $%s, then $%s, then the bundled snapshot."
            % (ENV_DATASET_URL, ENV_DATASET_PATH)
        ),
    )
    parser.add_argument(
        "--format",
        choices=["structured", "json"],
        default="structured",
        help="Output format (default: structured).",
    )
    parser.add_argument("--json", action="store_const", const="json", dest="format", help="Shorthand for --format json.")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only log errors to the console; dataset fetch failures are logged at debug level.",
    )
    parser.add_argument(
        "--include-node-modules",
        action="store_true",
        help="Descend into node_modules directories (skipped by default).",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="NAME",
        help="Additional directory name to skip while walking. Repeatable.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of threads used for per-file detection (default: 1).",
    )
    parser.add_argument(
        "--log-dir",
        default="logs",
        help="Directory where timestamped scan logs are written (default: logs).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console/log verbosity (default: INFO).",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")
    parser.add_argument("--no-emoji", action="store_true", help="Disable emoji in output.")
    return parser.parse_args(argv)


def load_index(data_arg: Optional[str], quiet: bool) -> Tuple[DatasetIndex, DatasetMeta]:
    """Resolve the dataset and index it, recording malformed records on the meta."""
    source = resolve_dataset(data_arg, quiet=quiet)
    index = build_dataset(source.entries)
    source.meta.malformed = len(index.malformed)
    if index.malformed:
        LOGGER.warning(
            "Skipped %s malformed dataset record(s) from %s.",
            len(index.malformed),
            source.identifier,
        )
    LOGGER.info(
        "Indexed %s packages covering %s compromised versions (%s).",
        len(index),
        index.version_count(),
        source.meta.source,
    )
    return index, source.meta


def exit_code_for(report: ScanReport, single_file: bool) -> int:
    """Single files fail on any finding; projects fail hard on high and soft on medium."""
    if single_file:
        return 1 if report.findings else 0
    if report.counts.get("high", 0):
        return 1
    if report.counts.get("medium", 0):
        return 2
    return 0


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_output(no_color=args.no_color, no_emoji=args.no_emoji)

    log_dir = Path(args.log_dir).expanduser().resolve()
    log_path = setup_logging(log_dir, args.log_level, quiet=args.quiet)
    LOGGER.info("Detailed execution log: %s", log_path)

    if args.workers < 1:
        LOGGER.error("--workers must be at least 1 (got %s).", args.workers)
        return 2

    target = Path(args.target).expanduser()
    if not target.exists():
        LOGGER.error("Target does not exist: %s", target)
        return 2

    try:
        index, meta = load_index(args.data, args.quiet)
    except (ValueError, OSError) as exc:
        LOGGER.error("Unable to load dataset: %s", exc)
        return 2

    single_file = target.is_file()
    LOGGER.info("Scanning %s", target.resolve())
    try:
        if single_file:
            report = scan_file(target, index)
        else:
            options = ProjectScanOptions(
                include_node_modules=args.include_node_modules,
                additional_excludes=frozenset(args.exclude),
                workers=args.workers,
            )
            report = scan_project(target, index, options=options, exclusions=DEFAULT_DIR_EXCLUSIONS)
    except (ValueError, OSError) as exc:
        LOGGER.error("%s", exc)
        return 2
    report.dataset = meta

    LOGGER.info(
        "Summary: %s manifest(s), %s file(s) hashed, %s content check(s); %s high, %s medium, %s low.",
        report.stats.manifests_scanned,
        report.stats.files_hashed,
        report.stats.content_scanned,
        report.counts.get("high", 0),
        report.counts.get("medium", 0),
        report.counts.get("low", 0),
    )

    if args.format == "json":
        print_json_output(report)
    else:
        print_structured_report(report)

    code = exit_code_for(report, single_file)
    if report.findings:
        LOGGER.warning("Findings recorded in %s", log_path)
    else:
        LOGGER.info("Scan completed successfully. Log retained at %s", log_path)
    return code


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
