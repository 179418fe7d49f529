"""Project scanner: bounded directory walk plus per-file detectors."""
from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from hulud_ioc.scan_core.aggregator import FindingAggregator, dedupe_matches, finding_from_match
from hulud_ioc.scan_core.config import (
    DEFAULT_DIR_EXCLUSIONS,
    HASHABLE_EXTENSIONS,
    LOCKFILE_FILENAMES,
    MANIFEST_FILENAME,
    MAX_TEXT_BYTES,
    NODE_MODULES_DIR,
    SELF_CONTENT_ALLOWLIST,
    SUSPICIOUS_WORKFLOW_FILENAMES,
    TEXT_FILE_EXTENSIONS,
)
from hulud_ioc.scan_core.dataset import DatasetIndex
from hulud_ioc.scan_core.models import Finding, FindingKind, LockMatch, ScanReport, ScanStats
from hulud_ioc.scan_core.scanners.iocs import check_file_hash, compute_file_hash, detect_workflow_filename
from hulud_ioc.scan_core.scanners.lockfiles import analyze_lockfile, is_installed_version
from hulud_ioc.scan_core.scanners.manifest import analyze_manifest, detect_postinstall_keyword
from hulud_ioc.scan_core.scanners.patterns import read_file_limited, scan_content
from hulud_ioc.scan_core.utils import LOGGER, load_json_file, utc_timestamp


@dataclass(frozen=True)
class ProjectScanOptions:
    include_node_modules: bool = False
    additional_excludes: FrozenSet[str] = field(default_factory=frozenset)
    follow_symlinks: bool = False
    max_text_bytes: int = MAX_TEXT_BYTES
    workers: int = 1


def build_exclusions(options: ProjectScanOptions, base: Iterable[str] = DEFAULT_DIR_EXCLUSIONS) -> FrozenSet[str]:
    excluded = set(base)
    if options.include_node_modules:
        excluded.discard(NODE_MODULES_DIR)
    excluded.update(options.additional_excludes)
    return frozenset(excluded)


def walk_directory(root: Path, exclude_dirs: FrozenSet[str], follow_symlinks: bool = False) -> Iterator[Path]:
    """Yield regular files below ``root`` using an explicit stack.

    Directories named in ``exclude_dirs`` are never entered. Unreadable
    directories and entries that vanish mid-scan are skipped.
    """
    stack: List[Path] = [root]
    visited: Set[Tuple[int, int]] = set()
    while stack:
        current = stack.pop()
        if follow_symlinks:
            try:
                stat = current.stat()
            except OSError as exc:
                LOGGER.debug("Unable to stat directory %s: %s", current, exc)
                continue
            identity = (stat.st_dev, stat.st_ino)
            if identity in visited:
                continue
            visited.add(identity)

        files: List[Path] = []
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_symlink() and not follow_symlinks:
                            continue
                        if entry.is_dir(follow_symlinks=follow_symlinks):
                            if entry.name not in exclude_dirs:
                                stack.append(Path(entry.path))
                            continue
                        if entry.is_file(follow_symlinks=follow_symlinks):
                            files.append(Path(entry.path))
                    except OSError as exc:
                        LOGGER.debug("Skipping entry %s: %s", entry.path, exc)
        except OSError as exc:
            LOGGER.debug("Unable to access directory %s: %s", current, exc)
            continue
        yield from files


def _relative(file_path: Path, root: Path) -> str:
    try:
        return file_path.relative_to(root).as_posix()
    except ValueError:
        return file_path.name


def is_allowlisted_content(relative_path: str) -> bool:
    """True for the indicator table module, wherever the scan root sits above it."""
    return any(
        relative_path == entry or relative_path.endswith("/" + entry)
        for entry in SELF_CONTENT_ALLOWLIST
    )


def _manifest_error(relative_path: str, filename: str, exc: Exception) -> Finding:
    return Finding(
        kind=FindingKind.MANIFEST_ERROR,
        severity="low",
        path=relative_path,
        message=f"Unable to parse {filename} ({exc}).",
        subject=filename,
    )


def _installed_package_finding(manifest: object, relative_path: str, index: DatasetIndex) -> Optional[Finding]:
    """Check a node_modules package.json by its own name and version."""
    if not isinstance(manifest, dict):
        return None
    name = manifest.get("name")
    version = manifest.get("version")
    if not (isinstance(name, str) and isinstance(version, str)):
        return None
    if not is_installed_version(index, name, version):
        return None
    location = relative_path.rsplit("/", 1)[0] if "/" in relative_path else relative_path
    match = LockMatch(kind=FindingKind.LOCK_INSTALLED, name=name, version=version, location=location)
    return finding_from_match(match, relative_path)


def scan_single_path(
    file_path: Path,
    root: Path,
    index: Optional[DatasetIndex],
    options: ProjectScanOptions,
) -> Tuple[List[Finding], ScanStats]:
    """Run every detector over one file; detector order is fixed."""
    findings: List[Finding] = []
    stats = ScanStats()
    relative_path = _relative(file_path, root)
    filename = file_path.name
    ext = file_path.suffix.lower()

    workflow = detect_workflow_filename(filename, relative_path)
    if workflow:
        findings.append(workflow)

    if ext in HASHABLE_EXTENSIONS:
        file_hash = compute_file_hash(file_path)
        if file_hash:
            stats.files_hashed += 1
            hash_finding = check_file_hash(file_hash, relative_path)
            if hash_finding:
                findings.append(hash_finding)

    wants_content = ext in TEXT_FILE_EXTENSIONS or filename in SUSPICIOUS_WORKFLOW_FILENAMES
    if wants_content and not is_allowlisted_content(relative_path):
        try:
            content = read_file_limited(file_path, options.max_text_bytes)
        except OSError as exc:
            LOGGER.debug("Unable to read file %s: %s", file_path, exc)
        else:
            stats.content_scanned += 1
            findings.extend(scan_content(content, relative_path))

    if filename == MANIFEST_FILENAME or filename in LOCKFILE_FILENAMES:
        try:
            parsed = load_json_file(file_path, filename)
        except (OSError, ValueError) as exc:
            findings.append(_manifest_error(relative_path, filename, exc))
            return findings, stats

        stats.manifests_scanned += 1
        seen = set()

        def add_unique(finding: Finding) -> None:
            key = finding.dedupe_key()
            if key not in seen:
                seen.add(key)
                findings.append(finding)

        if filename == MANIFEST_FILENAME:
            postinstall = detect_postinstall_keyword(parsed)
            if postinstall:
                script, keyword = postinstall
                findings.append(
                    Finding(
                        kind=FindingKind.POSTINSTALL,
                        severity="high",
                        path=relative_path,
                        message=f'Suspicious postinstall script: "{script}"',
                        subject="postinstall",
                        pattern=keyword,
                    )
                )
            if index is not None:
                for match in dedupe_matches(analyze_manifest(parsed, index)):
                    add_unique(finding_from_match(match, relative_path))
                if NODE_MODULES_DIR in relative_path.split("/"):
                    installed = _installed_package_finding(parsed, relative_path, index)
                    if installed:
                        add_unique(installed)
        elif index is not None:
            for match in dedupe_matches(analyze_lockfile(parsed, index)):
                add_unique(finding_from_match(match, relative_path))

    return findings, stats


def scan_project(
    root: Path,
    index: Optional[DatasetIndex] = None,
    options: Optional[ProjectScanOptions] = None,
    exclusions: Iterable[str] = DEFAULT_DIR_EXCLUSIONS,
) -> ScanReport:
    """Walk ``root`` and aggregate findings from every detector.

    Without an index only filename, hash, content and postinstall
    detection run.
    """
    options = options or ProjectScanOptions()
    absolute_root = Path(root).expanduser().resolve()
    exclude_dirs = build_exclusions(options, exclusions)
    aggregator = FindingAggregator()
    stats = ScanStats()

    files = walk_directory(absolute_root, exclude_dirs, follow_symlinks=options.follow_symlinks)

    def scan_one(file_path: Path) -> Tuple[List[Finding], ScanStats]:
        return scan_single_path(file_path, absolute_root, index, options)

    if options.workers > 1:
        with ThreadPoolExecutor(max_workers=options.workers) as executor:
            results = list(executor.map(scan_one, files))
    else:
        results = map(scan_one, files)

    for file_findings, file_stats in results:
        aggregator.extend(file_findings)
        stats.merge(file_stats)

    LOGGER.debug(
        "Scanned %s: %s manifest(s), %s hashed, %s content checks",
        absolute_root,
        stats.manifests_scanned,
        stats.files_hashed,
        stats.content_scanned,
    )
    return ScanReport(
        scanned_at=utc_timestamp(),
        target_path=str(absolute_root),
        counts=aggregator.counts,
        findings=aggregator.findings,
        stats=stats,
    )
