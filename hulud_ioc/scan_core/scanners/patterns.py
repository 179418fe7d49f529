"""Suspicious content and credential-scanner signature detection."""
from __future__ import annotations

from pathlib import Path
from typing import List

from hulud_ioc.scan_core.config import MAX_TEXT_BYTES, SUSPICIOUS_CONTENT_PATTERNS, TRUFFLEHOG_PATTERNS
from hulud_ioc.scan_core.models import Finding, FindingKind


def read_file_limited(file_path: Path, limit: int = MAX_TEXT_BYTES) -> str:
    """Read at most ``limit`` bytes of a file as text."""
    with file_path.open("rb") as handle:
        data = handle.read(limit)
    return data.decode("utf-8", errors="ignore")


def scan_content(content: str, relative_path: str) -> List[Finding]:
    """Test the labelled indicators, then the trufflehog signatures, against file content."""
    findings: List[Finding] = []
    if not content:
        return findings

    for label, severity, pattern in SUSPICIOUS_CONTENT_PATTERNS:
        if pattern.search(content):
            findings.append(
                Finding(
                    kind=FindingKind.SUSPICIOUS_CONTENT,
                    severity=severity,
                    path=relative_path,
                    message=label,
                    pattern=pattern.pattern,
                )
            )

    for pattern in TRUFFLEHOG_PATTERNS:
        if pattern.search(content):
            findings.append(
                Finding(
                    kind=FindingKind.TRUFFLEHOG,
                    severity="medium",
                    path=relative_path,
                    message="Potential trufflehog credential scanning activity detected.",
                    pattern=pattern.pattern,
                )
            )
            break  # Only report once per file

    return findings
