"""Scan one package.json or package-lock.json."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from hulud_ioc.scan_core.aggregator import DependencyMatch, FindingAggregator, dedupe_matches, finding_from_match
from hulud_ioc.scan_core.dataset import DatasetIndex
from hulud_ioc.scan_core.models import ScanReport, ScanStats
from hulud_ioc.scan_core.scanners.lockfiles import analyze_lockfile
from hulud_ioc.scan_core.scanners.manifest import analyze_manifest
from hulud_ioc.scan_core.utils import load_json_file, utc_timestamp

MANIFEST_TYPE = "package"
LOCKFILE_TYPE = "package-lock"


def detect_file_type(parsed: object) -> str:
    """Tell a lockfile from a manifest by its shape."""
    if not isinstance(parsed, dict):
        return "unknown"
    if (
        parsed.get("lockfileVersion")
        or parsed.get("packages")
        or (parsed.get("dependencies") and not parsed.get("name") and not parsed.get("version"))
    ):
        return LOCKFILE_TYPE
    return MANIFEST_TYPE


def scan_parsed_json(parsed: object, index: DatasetIndex) -> Tuple[str, List[DependencyMatch]]:
    """Route parsed JSON to the matching analyzer and dedupe its matches."""
    file_type = detect_file_type(parsed)
    if file_type == MANIFEST_TYPE:
        matches: List[DependencyMatch] = list(analyze_manifest(parsed, index))
    elif file_type == LOCKFILE_TYPE:
        matches = list(analyze_lockfile(parsed, index))
    else:
        matches = []
    return file_type, dedupe_matches(matches)


def scan_file(target: Path, index: DatasetIndex, display_path: Optional[str] = None) -> ScanReport:
    """Scan a single manifest or lockfile; unreadable or invalid JSON raises."""
    absolute = Path(target).expanduser().resolve()
    parsed = load_json_file(absolute, "target file")
    file_type, matches = scan_parsed_json(parsed, index)

    aggregator = FindingAggregator()
    location = display_path or absolute.name
    for match in matches:
        aggregator.add(finding_from_match(match, location))

    stats = ScanStats(manifests_scanned=1)
    return ScanReport(
        scanned_at=utc_timestamp(),
        target_path=str(absolute),
        counts=aggregator.counts,
        findings=aggregator.findings,
        stats=stats,
        file_type=file_type,
    )
