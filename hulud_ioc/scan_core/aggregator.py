"""Finding classification, message formatting and deduplication."""
from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable, List, Sequence, TypeVar, Union

from hulud_ioc.scan_core.models import SEVERITY_LEVELS, Finding, FindingKind, LockMatch, ManifestMatch

DependencyMatch = Union[ManifestMatch, LockMatch]
Dedupable = TypeVar("Dedupable", ManifestMatch, LockMatch, Finding)

SEVERITY_BY_KIND: Dict[FindingKind, str] = {
    FindingKind.MANIFEST_EXACT: "high",
    FindingKind.LOCK_INSTALLED: "high",
    FindingKind.WORKFLOW: "high",
    FindingKind.MALICIOUS_HASH: "high",
    FindingKind.POSTINSTALL: "high",
    FindingKind.MANIFEST_RANGE: "medium",
    FindingKind.MANIFEST_NAME_ONLY: "medium",
    FindingKind.TRUFFLEHOG: "medium",
    FindingKind.SUSPICIOUS_CONTENT: "medium",
    FindingKind.MANIFEST_ERROR: "low",
}


def determine_severity(kind: object) -> str:
    """Map a finding kind to its severity; unknown kinds are medium."""
    try:
        return SEVERITY_BY_KIND.get(FindingKind(kind), "medium")
    except ValueError:
        return "medium"


def _alias_note(match: ManifestMatch) -> str:
    return f" (alias of {match.alias_of})" if match.alias_of else ""


def _pattern_note(match: ManifestMatch) -> str:
    return f" [pattern: {match.pattern}]" if match.pattern else ""


def format_match_message(match: DependencyMatch) -> str:
    """Human-readable sentence for a dependency match."""
    if isinstance(match, LockMatch):
        return f"Lockfile installs {match.name}@{match.version} at {match.location}."
    if match.kind is FindingKind.MANIFEST_EXACT:
        return (
            f"Dependency {match.dependency} pins {match.target}@{match.selector}"
            f"{_alias_note(match)}{_pattern_note(match)} which is confirmed compromised."
        )
    if match.kind is FindingKind.MANIFEST_RANGE:
        return (
            f"Dependency {match.dependency} allows {match.target}@{match.selector}"
            f"{_alias_note(match)}{_pattern_note(match)}; overlaps malicious versions: {', '.join(match.matches)}."
        )
    if match.kind is FindingKind.MANIFEST_NAME_ONLY:
        return (
            f"Dependency {match.dependency} references {match.target}"
            f"{_alias_note(match)}{_pattern_note(match)}; review installed versions manually."
        )
    raise ValueError(f"Unhandled manifest match kind: {match.kind}")


def finding_from_match(match: DependencyMatch, path: str) -> Finding:
    """Classify a dependency match into a finding located at ``path``."""
    if isinstance(match, LockMatch):
        subject, selector, location, pattern = match.name, match.version, match.location, None
    else:
        subject, selector, location, pattern = match.dependency, match.selector, match.section, match.pattern
    return Finding(
        kind=match.kind,
        severity=determine_severity(match.kind),
        path=path,
        message=format_match_message(match),
        subject=subject,
        selector=selector,
        location=location,
        pattern=pattern,
        details=match.to_dict(),
    )


def dedupe(items: Iterable[Dedupable]) -> List[Dedupable]:
    """Keep the first item for each dedupe key, preserving order."""
    seen = set()
    unique: List[Dedupable] = []
    for item in items:
        key = item.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


dedupe_matches = dedupe
dedupe_findings = dedupe


class FindingAggregator:
    """Insertion-ordered findings with running per-severity counts."""

    def __init__(self) -> None:
        self._findings: List[Finding] = []
        self._counts: Dict[str, int] = {level: 0 for level in SEVERITY_LEVELS}
        self._lock = Lock()

    def add(self, finding: Finding) -> None:
        with self._lock:
            self._counts[finding.severity] = self._counts.get(finding.severity, 0) + 1
            self._findings.append(finding)

    def extend(self, findings: Sequence[Finding]) -> None:
        for finding in findings:
            self.add(finding)

    @property
    def findings(self) -> List[Finding]:
        return list(self._findings)

    @property
    def counts(self) -> Dict[str, int]:
        return dict(self._counts)

    def dedupe(self) -> None:
        """Collapse duplicate findings in place and recompute counts."""
        with self._lock:
            self._findings = dedupe_findings(self._findings)
            self._counts = {level: 0 for level in SEVERITY_LEVELS}
            for finding in self._findings:
                self._counts[finding.severity] = self._counts.get(finding.severity, 0) + 1
