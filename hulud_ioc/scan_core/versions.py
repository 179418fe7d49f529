"""npm semver range matching and alias specifier parsing."""
from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from semantic_version import NpmSpec, Version
from semantic_version import base as semver_base

ALIAS_PREFIX = "npm:"

OPERATOR_SPACING = re.compile(r"(<=|>=|<|>|=|~|\^)\s+")
HYPHEN_SEPARATOR = re.compile(r"\s+-\s+")
PRIMITIVE_COMPARATOR = re.compile(
    r"^(?P<op><=|>=|<|>|=)?v?(?P<version>\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$"
)
PRERELEASE_CARET_TILDE = re.compile(r"^(?P<op>\^|~)v?(?P<version>\d+\.\d+\.\d+-[0-9A-Za-z.-]+)$")

COMPARISONS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "=": operator.eq,
}

Comparator = Callable[[Version], bool]


@dataclass(frozen=True)
class NpmAlias:
    name: str
    selector: Optional[str]


@dataclass(frozen=True)
class NpmRange:
    """A parsed range: ``||`` alternatives, each a conjunction of comparators."""

    expression: str
    alternatives: Tuple[Tuple[Comparator, ...], ...]

    def match(self, version: Version) -> bool:
        return any(all(check(version) for check in group) for group in self.alternatives)


def _natural_policy(clause: semver_base.Clause) -> semver_base.Clause:
    """Rebuild an NpmSpec clause tree so pre-releases are compared by plain ordering.

    npm only lets a pre-release satisfy a comparator with the same
    ``major.minor.patch``; installs done with ``includePrerelease`` do not
    have that restriction. The natural policy keeps a desugared ``<2.0.0``
    excluding ``2.0.0-x`` the way npm's ``<2.0.0-0`` upper bound does.
    """
    if isinstance(clause, semver_base.Range):
        if clause.prerelease_policy != semver_base.Range.PRERELEASE_SAMEPATCH:
            return clause
        return semver_base.Range(
            clause.operator,
            clause.target,
            prerelease_policy=semver_base.Range.PRERELEASE_NATURAL,
            build_policy=clause.build_policy,
        )
    if isinstance(clause, (semver_base.AllOf, semver_base.AnyOf)):
        return type(clause)(*(_natural_policy(child) for child in clause.clauses))
    return clause


def _compile_comparator(block: str) -> Comparator:
    """Turn one whitespace-free range token into a predicate.

    Tokens naming a full version are compared directly, so a pre-release
    bound never widens to its release line. Caret, tilde, x-ranges and
    partial versions are desugared by NpmSpec. A caret or tilde on a
    pre-release keeps that pre-release as its floor.
    """
    primitive = PRIMITIVE_COMPARATOR.match(block)
    if primitive:
        compare = COMPARISONS[primitive.group("op") or "="]
        target = Version(primitive.group("version"))
        return lambda version: compare(version, target)

    caret_tilde = PRERELEASE_CARET_TILDE.match(block)
    if caret_tilde:
        floor = Version(caret_tilde.group("version"))
        ceiling = _natural_policy(NpmSpec(caret_tilde.group("op") + str(floor.truncate())).clause)
        return lambda version: version >= floor and ceiling.match(version.truncate())

    return _natural_policy(NpmSpec(block).clause).match


def _split_group(group: str) -> List[str]:
    if HYPHEN_SEPARATOR.search(group):
        low, high = HYPHEN_SEPARATOR.split(group, 1)
        return [">=" + low.strip(), "<=" + high.strip()]
    return group.split()


def normalize_range(spec: str) -> str:
    """Collapse the whitespace npm tolerates between an operator and its version."""
    return OPERATOR_SPACING.sub(r"\1", spec.strip())


def parse_range(spec: object) -> Optional[NpmRange]:
    """Return a matcher for an npm range expression, or None if it does not parse."""
    if not isinstance(spec, str):
        return None
    expression = normalize_range(spec)
    try:
        NpmSpec(expression)
        alternatives = tuple(
            tuple(_compile_comparator(block) for block in _split_group(group.strip()))
            for group in expression.split("||")
        )
    except (ValueError, TypeError):
        return None
    return NpmRange(expression=expression, alternatives=alternatives)


def parse_version(raw: object) -> Optional[Version]:
    if not isinstance(raw, str):
        return None
    try:
        return Version(raw.strip())
    except ValueError:
        return None


def is_valid_range(spec: object) -> bool:
    return parse_range(spec) is not None


def match_range(range_spec: object, versions: Iterable[str]) -> List[str]:
    """Return the candidate versions satisfying ``range_spec``, in semver order."""
    matcher = parse_range(range_spec)
    if matcher is None:
        return []
    hits = {}
    for candidate in versions:
        parsed = parse_version(candidate)
        if parsed is None:
            continue
        if matcher.match(parsed):
            hits[candidate] = parsed
    return sorted(hits, key=lambda item: hits[item])


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Sort versions ascending; strings that are not semver go last, alphabetically."""
    valid = []
    invalid = []
    for candidate in versions:
        parsed = parse_version(candidate)
        if parsed is None:
            invalid.append(candidate)
        else:
            valid.append((parsed, candidate))
    valid.sort(key=lambda pair: pair[0])
    return [candidate for _, candidate in valid] + sorted(invalid)


def parse_npm_alias(spec: object) -> Optional[NpmAlias]:
    """Split ``npm:<name>@<selector>`` on the last ``@`` so scoped names survive."""
    if not isinstance(spec, str) or not spec.startswith(ALIAS_PREFIX):
        return None
    remainder = spec[len(ALIAS_PREFIX):]
    at_index = remainder.rfind("@")
    if at_index > 0:
        return NpmAlias(name=remainder[:at_index], selector=remainder[at_index + 1:] or None)
    return NpmAlias(name=remainder, selector=None)


def classify_specifier(spec: object) -> str:
    """Classify a dependency specifier: exact, range, alias, name-only or unsupported."""
    if spec is None:
        return "name-only"
    if not isinstance(spec, str):
        return "unsupported"
    if spec.startswith(ALIAS_PREFIX):
        return "alias"
    if parse_version(spec) is not None:
        return "exact"
    if is_valid_range(spec):
        return "range"
    return "unsupported"
