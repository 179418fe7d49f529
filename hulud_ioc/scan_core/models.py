"""Data models for scan findings, match payloads and reports."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

SEVERITY_LEVELS = ("high", "medium", "low")


class FindingKind(str, Enum):
    """Discriminant for every finding the scanner can emit."""

    MANIFEST_EXACT = "manifest-exact"
    MANIFEST_RANGE = "manifest-range"
    MANIFEST_NAME_ONLY = "manifest-name-only"
    LOCK_INSTALLED = "lock-installed"
    WORKFLOW = "workflow"
    MALICIOUS_HASH = "malicious-hash"
    SUSPICIOUS_CONTENT = "suspicious-content"
    TRUFFLEHOG = "trufflehog"
    POSTINSTALL = "postinstall"
    MANIFEST_ERROR = "manifest-error"


@dataclass(frozen=True)
class ManifestMatch:
    """A manifest dependency overlapping the malicious dataset."""

    kind: FindingKind
    dependency: str
    section: str
    selector: Optional[str]
    target: str
    matches: Tuple[str, ...]
    alias_of: Optional[str] = None
    pattern: Optional[str] = None

    def dedupe_key(self) -> Tuple[str, str, Optional[str], str, str]:
        return (self.kind.value, self.dependency, self.selector, self.section, self.pattern or "")

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "dependency": self.dependency,
            "section": self.section,
            "selector": self.selector,
            "target": self.target,
            "aliasOf": self.alias_of,
            "matches": list(self.matches),
            "pattern": self.pattern,
        }


@dataclass(frozen=True)
class LockMatch:
    """An installed lockfile entry whose exact version is malicious."""

    kind: FindingKind
    name: str
    version: str
    location: str

    def dedupe_key(self) -> Tuple[str, str, Optional[str], str, str]:
        return (self.kind.value, self.name, self.version, self.location, "")

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "version": self.version,
            "location": self.location,
        }


@dataclass
class Finding:
    """Represents a classified security finding from the scan."""

    kind: FindingKind
    severity: str  # high, medium, low
    path: str
    message: str
    subject: Optional[str] = None
    selector: Optional[str] = None
    location: Optional[str] = None
    pattern: Optional[str] = None
    details: Dict[str, object] = field(default_factory=dict)

    def dedupe_key(self) -> Tuple[object, ...]:
        return (self.kind.value, self.subject, self.selector, self.location, self.pattern, self.path)

    def to_dict(self) -> Dict[str, object]:
        """Convert finding to dictionary format."""
        payload = asdict(self)
        payload["kind"] = self.kind.value
        return payload


@dataclass
class ScanStats:
    """Coverage statistics collected during a scan operation."""

    manifests_scanned: int = 0
    files_hashed: int = 0
    content_scanned: int = 0

    def merge(self, other: "ScanStats") -> None:
        """Merge statistics from another scan."""
        self.manifests_scanned += other.manifests_scanned
        self.files_hashed += other.files_hashed
        self.content_scanned += other.content_scanned

    def to_dict(self) -> Dict[str, int]:
        return {
            "manifestsScanned": self.manifests_scanned,
            "filesHashed": self.files_hashed,
            "contentScanned": self.content_scanned,
        }


@dataclass
class DatasetMeta:
    """Provenance of the dataset used for a scan."""

    source: str  # local, remote-default, remote-custom, local-fallback
    url: Optional[str] = None
    path: Optional[str] = None
    fallback_from: Optional[str] = None
    last_error: Optional[str] = None
    identifier: Optional[str] = None
    entries: int = 0
    malformed: int = 0

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "source": self.source,
            "url": self.url,
            "path": self.path,
            "fallbackFrom": self.fallback_from,
            "lastError": self.last_error,
            "identifier": self.identifier,
            "entries": self.entries,
            "malformed": self.malformed,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass
class ScanReport:
    """Result of one scan invocation; read-only once produced."""

    scanned_at: str
    target_path: str
    counts: Dict[str, int]
    findings: List[Finding]
    stats: ScanStats
    dataset: Optional[DatasetMeta] = None
    file_type: Optional[str] = None  # single-file mode only

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "scannedAt": self.scanned_at,
            "targetPath": self.target_path,
            "dataset": self.dataset.to_dict() if self.dataset else None,
            "counts": dict(self.counts),
            "findings": [finding.to_dict() for finding in self.findings],
            "stats": self.stats.to_dict(),
        }
        if self.file_type is not None:
            payload["fileType"] = self.file_type
        return payload
