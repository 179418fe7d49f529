"""Severity-aware terminal styling shared by the report printers and console logging."""
from __future__ import annotations

import logging
import os
import sys
from typing import Dict, Mapping

from hulud_ioc.scan_core.models import FindingKind

SEVERITY_ORDER = ("high", "medium", "low")


class Colors:
    """ANSI styles keyed by finding severity.

    Styling is process-wide: once disabled (``--no-color``, ``NO_COLOR`` or a
    non-TTY stdout) every ``paint`` call returns the text untouched.
    """

    RESET = "\033[0m"
    BOLD = "\033[1m"
    CLEAN = "\033[32m"
    ACCENT = "\033[33m"
    SEVERITY: Dict[str, str] = {
        "high": "\033[1m\033[31m",
        "medium": "\033[1m\033[33m",
        "low": "\033[34m",
    }

    _enabled = True

    @classmethod
    def disable(cls) -> None:
        cls._enabled = False

    @classmethod
    def paint(cls, text: str, style: str) -> str:
        if not cls._enabled or not style:
            return text
        return f"{style}{text}{cls.RESET}"

    @classmethod
    def for_severity(cls, severity: str) -> str:
        return cls.SEVERITY.get(severity, "")

    @classmethod
    def terminal_allows(cls) -> bool:
        # https://no-color.org/
        if os.environ.get("NO_COLOR"):
            return False
        return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class Icons:
    """Glyphs for report headings, per-severity verdicts and finding kinds."""

    REPORT = "📊"
    SCOPE = "🔍"
    DETAILS = "⚠️"
    ADVICE = "ℹ️"
    CLEAN = "✅"
    VERDICT: Dict[str, str] = {
        "high": "🚨",
        "medium": "⚠️",
        "low": "ℹ️",
    }
    KIND: Dict[FindingKind, str] = {
        FindingKind.MANIFEST_EXACT: "📦",
        FindingKind.MANIFEST_RANGE: "📦",
        FindingKind.MANIFEST_NAME_ONLY: "📦",
        FindingKind.LOCK_INSTALLED: "📦",
        FindingKind.MALICIOUS_HASH: "🔴",
        FindingKind.WORKFLOW: "🔴",
        FindingKind.POSTINSTALL: "🔴",
        FindingKind.SUSPICIOUS_CONTENT: "🔍",
        FindingKind.TRUFFLEHOG: "🔍",
        FindingKind.MANIFEST_ERROR: "📄",
    }

    _enabled = True

    @classmethod
    def disable(cls) -> None:
        cls._enabled = False

    @classmethod
    def show(cls, glyph: str) -> str:
        return glyph if cls._enabled else ""

    @classmethod
    def for_kind(cls, kind: FindingKind) -> str:
        return cls.show(cls.KIND.get(kind, cls.ADVICE))

    @classmethod
    def for_counts(cls, counts: Mapping[str, int]) -> str:
        """Verdict glyph for the most severe non-empty bucket, or the clean mark."""
        for severity in SEVERITY_ORDER:
            if counts.get(severity, 0):
                return cls.show(cls.VERDICT[severity])
        return cls.show(cls.CLEAN)

    @classmethod
    def terminal_allows(cls) -> bool:
        if os.environ.get("TERM", "") == "dumb":
            return False
        return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class ConsoleFormatter(logging.Formatter):
    """Colors the level name with the style of the matching finding severity."""

    LEVEL_SEVERITY = {
        logging.WARNING: "medium",
        logging.ERROR: "high",
        logging.CRITICAL: "high",
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        severity = self.LEVEL_SEVERITY.get(record.levelno)
        if severity:
            record.levelname = Colors.paint(levelname, Colors.for_severity(severity))
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def configure_output(no_color: bool = False, no_emoji: bool = False) -> None:
    """Disable colors or glyphs when asked to or when the terminal lacks support."""
    if no_color or not Colors.terminal_allows():
        Colors.disable()
    if no_emoji or not Icons.terminal_allows():
        Icons.disable()
