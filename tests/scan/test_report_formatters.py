import logging

from hulud_ioc.scan_core.models import FindingKind
from hulud_ioc.scan_core.reporting.formatters import Colors, ConsoleFormatter, Icons, configure_output


def test_paint_uses_severity_style_until_disabled(monkeypatch):
    monkeypatch.setattr(Colors, "_enabled", True)
    assert Colors.paint("x", Colors.for_severity("high")) == "\033[1m\033[31mx\033[0m"
    assert Colors.paint("x", Colors.for_severity("unknown")) == "x"

    Colors.disable()
    assert Colors.paint("x", Colors.for_severity("low")) == "x"


def test_icons_follow_kind_and_most_severe_bucket(monkeypatch):
    monkeypatch.setattr(Icons, "_enabled", True)
    assert Icons.for_kind(FindingKind.WORKFLOW) == Icons.KIND[FindingKind.MALICIOUS_HASH]
    assert Icons.for_counts({"high": 0, "medium": 2, "low": 5}) == Icons.VERDICT["medium"]
    assert Icons.for_counts({"high": 0, "medium": 0, "low": 0}) == Icons.CLEAN

    Icons.disable()
    assert Icons.for_kind(FindingKind.LOCK_INSTALLED) == ""


def test_every_finding_kind_has_an_icon():
    assert set(Icons.KIND) == set(FindingKind)


def test_configure_output_disables_styles_for_redirected_output(monkeypatch):
    monkeypatch.setattr(Colors, "_enabled", True)
    monkeypatch.setattr(Icons, "_enabled", True)
    monkeypatch.delenv("NO_COLOR", raising=False)

    # pytest captures stdout, so neither style survives
    configure_output()

    assert Colors.paint("x", Colors.BOLD) == "x"
    assert Icons.show(Icons.CLEAN) == ""


def test_console_formatter_restores_levelname(monkeypatch):
    monkeypatch.setattr(Colors, "_enabled", True)
    record = logging.LogRecord("hulud_ioc", logging.ERROR, __file__, 1, "boom", None, None)

    formatted = ConsoleFormatter("%(levelname)s: %(message)s").format(record)

    assert formatted == f"{Colors.SEVERITY['high']}ERROR{Colors.RESET}: boom"
    assert record.levelname == "ERROR"
