"""JSON output formatting."""
from __future__ import annotations

import json

from hulud_ioc.scan_core.models import ScanReport


def render_json_report(report: ScanReport) -> str:
    return json.dumps(report.to_dict(), indent=2)


def print_json_output(report: ScanReport) -> None:
    """Print the scan report as JSON."""
    print(render_json_report(report))
