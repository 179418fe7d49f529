#!/usr/bin/env python3
"""Refresh the bundled malicious-package dataset from a URL or a local file."""
from __future__ import annotations

import argparse
import json
import os
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from hulud_ioc.scan_core.config import DEFAULT_DATASET_FILE, DEFAULT_FETCH_TIMEOUT, ENV_DATASET_URL
from hulud_ioc.scan_core.dataset import fetch_dataset_from_url, is_http_url, normalize_entries
from hulud_ioc.scan_core.utils import LOGGER, setup_logging


def read_source(source: str, timeout: int = DEFAULT_FETCH_TIMEOUT) -> List[object]:
    """Return raw records from a URL or a local JSON / colon-delimited file."""
    if is_http_url(source):
        LOGGER.info("Fetching dataset from %s", source)
        return fetch_dataset_from_url(source, timeout=timeout)
    path = Path(source).expanduser().resolve()
    LOGGER.info("Reading dataset from %s", path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Unable to locate dataset source at {path}") from exc
    return normalize_entries(raw, str(path))


def consolidate(entries: Iterable[object]) -> List[Dict[str, object]]:
    """Merge records sharing a name and sort names and versions.

    Records without a name or a versions list are dropped; blank versions
    are discarded.
    """
    aggregate: Dict[str, Set[str]] = defaultdict(set)
    skipped = 0
    for entry in entries:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        name = entry.get("name")
        versions = entry.get("versions")
        if not isinstance(name, str) or not name.strip() or not isinstance(versions, list):
            skipped += 1
            continue
        bucket = aggregate[name.strip()]
        for version in versions:
            if isinstance(version, str) and version.strip():
                bucket.add(version.strip())
    if skipped:
        LOGGER.warning("Dropped %s record(s) without a name or versions list.", skipped)
    return [{"name": name, "versions": sorted(aggregate[name])} for name in sorted(aggregate)]


def write_output(items: List[Dict[str, object]], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(items, indent=4, ensure_ascii=False) + "\n", encoding="utf-8")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh the Shai-Hulud malicious-package dataset.")
    parser.add_argument(
        "source",
        nargs="?",
        help="Dataset URL or file (JSON array or 'name: v1, v2' lines). Defaults to $%s." % ENV_DATASET_URL,
    )
    parser.add_argument(
        "--output",
        default=str(DEFAULT_DATASET_FILE),
        help="Output JSON path (default: the bundled dataset file)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_FETCH_TIMEOUT,
        help="HTTP request timeout in seconds (default: %s)" % DEFAULT_FETCH_TIMEOUT,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        default="logs/fetch",
        help="Directory where fetch logs are written (default: logs/fetch)",
    )
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    log_path = setup_logging(Path(args.log_dir).expanduser().resolve(), args.log_level, prefix="hulud_ioc_fetch")
    LOGGER.debug("Logging configured at %s", log_path)

    source = args.source or os.environ.get(ENV_DATASET_URL)
    if not source:
        LOGGER.error("No dataset source given. Pass a URL or file, or set %s.", ENV_DATASET_URL)
        return 2

    try:
        entries = read_source(source, timeout=args.timeout)
    except (ValueError, OSError) as exc:
        LOGGER.error("Unable to read dataset from %s: %s", source, exc)
        return 1

    items = consolidate(entries)
    output_path = Path(args.output).expanduser().resolve()
    write_output(items, output_path)
    total_versions = sum(len(item["versions"]) for item in items)
    LOGGER.info("Wrote %s packages / %s versions to %s", len(items), total_versions, output_path)
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
