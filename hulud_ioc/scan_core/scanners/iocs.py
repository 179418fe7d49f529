"""File hash and workflow filename IoC detection."""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import FrozenSet, Optional

from hulud_ioc.scan_core import config
from hulud_ioc.scan_core.models import Finding, FindingKind
from hulud_ioc.scan_core.utils import LOGGER


def compute_file_hash(file_path: Path) -> Optional[str]:
    """Compute SHA-256 hash of a file."""
    try:
        sha256_hash = hashlib.sha256()
        with file_path.open("rb") as f:
            for chunk in iter(lambda: f.read(8192), b""):
                sha256_hash.update(chunk)
        return sha256_hash.hexdigest()
    except OSError as exc:
        LOGGER.debug("Unable to hash file %s: %s", file_path, exc)
        return None


def check_file_hash(file_hash: str, relative_path: str, known: Optional[FrozenSet[str]] = None) -> Optional[Finding]:
    """Return a finding if the digest matches a known payload."""
    known_hashes = config.MALICIOUS_SHA256 if known is None else known
    if file_hash not in known_hashes:
        return None
    return Finding(
        kind=FindingKind.MALICIOUS_HASH,
        severity="high",
        path=relative_path,
        message=f"File hash matches known Shai-Hulud payload ({file_hash}).",
        subject=file_hash,
        details={"hash": file_hash},
    )


def detect_workflow_filename(filename: str, relative_path: str) -> Optional[Finding]:
    """Flag workflow files named like the ones the worm commits."""
    if filename not in config.SUSPICIOUS_WORKFLOW_FILENAMES:
        return None
    return Finding(
        kind=FindingKind.WORKFLOW,
        severity="high",
        path=relative_path,
        message="Known malicious workflow filename detected.",
        subject=filename,
    )
