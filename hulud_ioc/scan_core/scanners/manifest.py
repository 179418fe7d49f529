"""package.json analysis: dependency sections, aliases, overrides and postinstall IoCs."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from hulud_ioc.scan_core.config import MANIFEST_SECTIONS, MAX_OVERRIDE_DEPTH, SUSPICIOUS_POSTINSTALL_KEYWORDS
from hulud_ioc.scan_core.dataset import DatasetIndex
from hulud_ioc.scan_core.models import FindingKind, ManifestMatch
from hulud_ioc.scan_core.utils import LOGGER
from hulud_ioc.scan_core.versions import classify_specifier, match_range, parse_npm_alias, sort_versions

OVERRIDE_SECTIONS = (
    (("overrides",), "override"),
    (("pnpm", "overrides"), "override"),
    (("resolutions",), "resolution"),
)

WILDCARD_SEGMENT = re.compile(r"\*\*?/")
WHITESPACE = re.compile(r"\s+")
TRAILING_PACKAGE = re.compile(r"(@[^/]+/[^/]+|[^/]+)$")


@dataclass(frozen=True)
class FlatOverride:
    """One leaf of an override/resolution map."""

    name: str
    spec: str
    trail: Tuple[str, ...]
    alt_targets: Tuple[str, ...] = ()

    @property
    def pattern(self) -> str:
        return " -> ".join(self.trail)


def iter_dependency_specs(block: object) -> Iterator[Tuple[str, object]]:
    """Yield (name, specifier) pairs from a dependency section."""
    if isinstance(block, dict):
        for name, spec in block.items():
            yield name, spec
    elif isinstance(block, list):
        # bundledDependencies is a list of names
        for name in block:
            if isinstance(name, str):
                yield name, None


def _evaluate_selector(
    versions: frozenset,
    selector: Optional[str],
) -> Optional[Tuple[FindingKind, Tuple[str, ...]]]:
    specifier_kind = classify_specifier(selector)
    if specifier_kind == "name-only":
        return FindingKind.MANIFEST_NAME_ONLY, tuple(sort_versions(versions))
    if selector in versions:
        return FindingKind.MANIFEST_EXACT, (selector,)
    if specifier_kind in ("exact", "range"):
        hits = match_range(selector, versions)
        if hits:
            return FindingKind.MANIFEST_RANGE, tuple(hits)
    return None


def evaluate_manifest_spec(
    dependency: str,
    section: str,
    spec: object,
    index: DatasetIndex,
    pattern: Optional[str] = None,
    alt_targets: Tuple[str, ...] = (),
) -> List[ManifestMatch]:
    """Compare one declared dependency against the dataset.

    The declared name, an ``npm:`` alias target and any override terminal
    names are each evaluated on their own, so one declaration can produce
    several matches.
    """
    matches: List[ManifestMatch] = []

    def record(target: str, selector: Optional[str], alias_of: Optional[str]) -> None:
        versions = index.get(target)
        if not versions:
            return
        outcome = _evaluate_selector(versions, selector)
        if outcome is None:
            return
        kind, hits = outcome
        matches.append(
            ManifestMatch(
                kind=kind,
                dependency=dependency,
                section=section,
                selector=selector,
                target=target,
                matches=hits,
                alias_of=alias_of,
                pattern=pattern,
            )
        )

    if spec is None or isinstance(spec, str):
        record(dependency, spec, None)

    alias = parse_npm_alias(spec)
    if alias:
        record(alias.name, alias.selector, dependency)

    for alt in alt_targets:
        if alt != dependency:
            record(alt, spec if isinstance(spec, str) else None, dependency)

    return matches


def normalize_resolution_key(key: str) -> str:
    """Reduce an override path key to the package it targets."""
    cleaned = key.strip()
    if cleaned.startswith("npm:"):
        cleaned = cleaned[len("npm:"):]
    cleaned = WILDCARD_SEGMENT.sub("", cleaned)
    cleaned = cleaned.replace(">", "/")
    cleaned = WHITESPACE.sub("", cleaned)
    match = TRAILING_PACKAGE.search(cleaned)
    return match.group(1) if match else cleaned


def flatten_resolution_entries(key: str, value: object, max_depth: int = MAX_OVERRIDE_DEPTH) -> List[FlatOverride]:
    """Flatten a (possibly nested) override value into leaf entries.

    Strings are leaves, arrays repeat the same key, objects descend one
    level with their key appended to the trail. An explicit stack keeps
    hostile nesting from exhausting the interpreter stack; branches deeper
    than ``max_depth`` are dropped.
    """
    bucket: List[FlatOverride] = []
    stack: List[Tuple[str, object, Tuple[str, ...]]] = [(key, value, ())]
    while stack:
        current_key, current, trail = stack.pop()
        if len(trail) > max_depth:
            LOGGER.debug("Override nesting deeper than %s under %s; skipping", max_depth, " -> ".join(trail[:3]))
            continue
        if isinstance(current, str):
            effective = trail[-1] if current_key == "." and trail else current_key
            target = normalize_resolution_key(effective)
            full_trail = trail + (current_key,)
            if target and target != effective:
                bucket.append(FlatOverride(effective, current, full_trail, (target,)))
                bucket.append(FlatOverride(target, current, full_trail))
            else:
                bucket.append(FlatOverride(effective, current, full_trail))
        elif isinstance(current, list):
            for item in reversed(current):
                stack.append((current_key, item, trail))
        elif isinstance(current, dict):
            for inner_key, inner_value in reversed(list(current.items())):
                stack.append((inner_key, inner_value, trail + (current_key,)))
    return bucket


def _lookup(manifest: Dict[str, object], path: Tuple[str, ...]) -> object:
    node: object = manifest
    for part in path:
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def analyze_manifest(manifest: object, index: DatasetIndex) -> List[ManifestMatch]:
    """Return every dataset overlap declared by a parsed package.json."""
    if not isinstance(manifest, dict):
        return []
    matches: List[ManifestMatch] = []

    for section, label in MANIFEST_SECTIONS:
        for name, spec in iter_dependency_specs(manifest.get(section)):
            matches.extend(evaluate_manifest_spec(name, label, spec, index))

    for path, label in OVERRIDE_SECTIONS:
        block = _lookup(manifest, path)
        if not isinstance(block, dict):
            continue
        for key, value in block.items():
            for entry in flatten_resolution_entries(key, value):
                matches.extend(
                    evaluate_manifest_spec(
                        entry.name,
                        label,
                        entry.spec,
                        index,
                        pattern=entry.pattern,
                        alt_targets=entry.alt_targets,
                    )
                )

    return matches


def detect_postinstall_keyword(manifest: object) -> Optional[Tuple[str, str]]:
    """Return (script, keyword) when scripts.postinstall invokes a shell, interpreter or downloader."""
    if not isinstance(manifest, dict):
        return None
    scripts = manifest.get("scripts")
    if not isinstance(scripts, dict):
        return None
    postinstall = scripts.get("postinstall")
    if not isinstance(postinstall, str):
        return None
    for keyword in SUSPICIOUS_POSTINSTALL_KEYWORDS:
        if keyword in postinstall:
            return postinstall.strip(), keyword
    return None
