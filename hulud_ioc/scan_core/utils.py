"""Utility functions shared by the scanner and the command-line tools."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from hulud_ioc.scan_core.reporting.formatters import ConsoleFormatter

LOGGER = logging.getLogger("hulud-ioc")


def setup_logging(log_dir: Path, level: str, prefix: str = "hulud_ioc_scan", quiet: bool = False) -> Path:
    """Initialise console and file logging for the current execution."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    LOGGER.handlers.clear()
    LOGGER.setLevel(numeric_level)
    LOGGER.propagate = False

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    LOGGER.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(max(numeric_level, logging.ERROR) if quiet else numeric_level)
    console_handler.setFormatter(ConsoleFormatter("%(levelname)s: %(message)s"))
    LOGGER.addHandler(console_handler)

    return log_path


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_json_file(path: Path, label: str = "file") -> object:
    """Read and parse a JSON document, raising with a readable message."""
    absolute = Path(path).expanduser().resolve()
    try:
        raw = absolute.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Unable to locate {label} at {absolute}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse JSON in {absolute}: {exc}") from exc
