"""Structured multi-section summary report."""
from __future__ import annotations

from typing import Dict, List, Optional

from hulud_ioc.scan_core.models import DatasetMeta, Finding, ScanReport, ScanStats
from hulud_ioc.scan_core.reporting.formatters import SEVERITY_ORDER, Colors, Icons

SEPARATOR = "=" * 70
SUBSEPARATOR = "-" * 70

SEVERITY_LABELS = {
    "high": "HIGH RISK",
    "medium": "MEDIUM RISK",
    "low": "LOW RISK",
}


def print_header(title: str) -> None:
    """Print report header."""
    print(f"\n{SEPARATOR}")
    print(Colors.paint(f"{Icons.show(Icons.REPORT)} {title}", Colors.BOLD))
    print(SEPARATOR)


def print_scan_scope(report: ScanReport) -> None:
    print(f"\n{Icons.show(Icons.SCOPE)} SCAN SCOPE")
    print(SUBSEPARATOR)
    print(f"   Target:   {report.target_path}")
    if report.file_type:
        print(f"   Type:     {report.file_type}")
    print(f"   Scanned:  {report.scanned_at}")
    print(f"   Dataset:  {describe_dataset(report.dataset)}")


def describe_dataset(meta: Optional[DatasetMeta]) -> str:
    """One-line provenance summary for the dataset in use."""
    if meta is None:
        return "none (dependency checks skipped)"
    location = meta.url or meta.path or meta.identifier or "unknown"
    description = f"{meta.source} {location} ({meta.entries} entries"
    if meta.malformed:
        description += f", {meta.malformed} malformed"
    description += ")"
    if meta.fallback_from:
        description += f" after failing to fetch {meta.fallback_from}"
    return description


def print_coverage(stats: ScanStats) -> None:
    """Print coverage statistics section."""
    print(f"\n{Icons.show(Icons.REPORT)} COVERAGE")
    print(SUBSEPARATOR)
    print(f"   Manifests scanned:     {stats.manifests_scanned}")
    print(f"   Files hashed:          {stats.files_hashed}")
    print(f"   Content checks:        {stats.content_scanned}")


def print_findings_summary(report: ScanReport) -> None:
    print(f"\n{Icons.show(Icons.SCOPE)} FINDINGS")
    print(SUBSEPARATOR)

    if not report.findings:
        clean_msg = f"   {Icons.show(Icons.CLEAN)} No compromised packages or IOCs detected"
        print(Colors.paint(clean_msg, Colors.CLEAN))
        return

    total_line = f"   {Icons.for_counts(report.counts)} Total Issues:        {len(report.findings)}"
    print(Colors.paint(total_line, Colors.BOLD))
    for severity in SEVERITY_ORDER:
        count = report.counts.get(severity, 0)
        line = f"      • {SEVERITY_LABELS[severity].title() + ':':<19}{count}"
        print(Colors.paint(line, Colors.for_severity(severity) if count else ""))


def print_finding(finding: Finding) -> None:
    kind = Colors.paint(finding.kind.value, Colors.ACCENT)
    print(f"   {Icons.for_kind(finding.kind)} [{kind}] {finding.message}")
    print(f"      Location: {finding.path}")
    if finding.location and finding.location != finding.path:
        print(f"      Where:    {finding.location}")
    if finding.pattern:
        print(f"      Pattern:  {finding.pattern}")


def print_findings_by_severity(findings: List[Finding]) -> None:
    """Print detailed findings grouped under high, medium and low headings."""
    print(f"\n{Icons.show(Icons.DETAILS)} DETAILED FINDINGS")
    print(SUBSEPARATOR)
    printed_section = False
    for severity in SEVERITY_ORDER:
        bucket = [finding for finding in findings if finding.severity == severity]
        if not bucket:
            continue
        if printed_section:
            print()
        print(Colors.paint(f"   {SEVERITY_LABELS[severity]} ({len(bucket)}):", Colors.for_severity(severity)))
        for finding in bucket:
            print_finding(finding)
        printed_section = True


def print_recommendations(counts: Dict[str, int]) -> None:
    """Print remediation recommendations."""
    print(f"\n{Icons.show(Icons.ADVICE)} RECOMMENDATIONS")
    print(SUBSEPARATOR)
    if counts.get("high", 0):
        print("   1. Treat HIGH RISK findings as a potential compromise")
        print("   2. Rotate npm, GitHub and cloud credentials used on this machine")
        print("   3. Remove or pin compromised packages and reinstall from a clean lockfile")
        print("   4. Re-scan after remediation")
    else:
        print("   1. Review detailed findings above")
        print("   2. Pin dependency ranges away from the listed malicious versions")
        print("   3. Re-scan after remediation")


def print_structured_report(report: ScanReport, title: str = "SHAI-HULUD IOC SCAN REPORT") -> None:
    """Print a structured multi-section summary report."""
    print_header(title)
    print_scan_scope(report)
    print_coverage(report.stats)
    print_findings_summary(report)

    if not report.findings:
        print(f"\n{SEPARATOR}\n")
        return

    print_findings_by_severity(report.findings)
    print_recommendations(report.counts)
    print(f"\n{SEPARATOR}\n")
