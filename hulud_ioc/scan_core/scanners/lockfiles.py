"""package-lock.json / npm-shrinkwrap.json analysis."""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from hulud_ioc.scan_core.dataset import DatasetIndex
from hulud_ioc.scan_core.models import FindingKind, LockMatch

ROOT_LOCATION = "(root)"
TREE_SEPARATOR = " > "


def derive_name_from_path(pkg_path: str) -> Optional[str]:
    """Return the package name installed at a ``packages`` table path."""
    if not pkg_path:
        return None
    normalized = pkg_path.replace("\\", "/")
    segments = [segment for segment in normalized.split("node_modules/") if segment]
    if not segments:
        return None
    candidate = segments[-1].strip("/")
    parts = [part for part in candidate.split("/") if part]
    if not parts:
        return None
    if parts[0].startswith("@"):
        return "/".join(parts[:2])
    return parts[-1]


def is_installed_version(index: DatasetIndex, name: str, version: str) -> bool:
    versions = index.get(name)
    return bool(versions) and version in versions


def collect_matches_from_packages(packages: Dict[str, object], index: DatasetIndex) -> List[LockMatch]:
    """Check the flat ``packages`` table used by lockfileVersion 2 and 3."""
    matches: List[LockMatch] = []
    for pkg_path, meta in packages.items():
        if not isinstance(meta, dict):
            continue
        version = meta.get("version")
        if not isinstance(version, str) or not version:
            continue
        explicit = meta.get("name")
        name = explicit if isinstance(explicit, str) and explicit else derive_name_from_path(pkg_path)
        if not name:
            continue
        if is_installed_version(index, name, version):
            matches.append(
                LockMatch(
                    kind=FindingKind.LOCK_INSTALLED,
                    name=name,
                    version=version,
                    location=pkg_path or ROOT_LOCATION,
                )
            )
    return matches


def collect_matches_from_dependencies(tree: Dict[str, object], index: DatasetIndex) -> List[LockMatch]:
    """Walk the nested ``dependencies`` tree used by lockfileVersion 1 and 2."""
    matches: List[LockMatch] = []
    stack: List[Tuple[str, object, Tuple[str, ...]]] = [
        (name, info, ()) for name, info in reversed(list(tree.items()))
    ]
    while stack:
        name, info, ancestry = stack.pop()
        if not isinstance(info, dict):
            continue
        chain = ancestry + (name,)
        version = info.get("version")
        if isinstance(version, str) and is_installed_version(index, name, version):
            matches.append(
                LockMatch(
                    kind=FindingKind.LOCK_INSTALLED,
                    name=name,
                    version=version,
                    location=TREE_SEPARATOR.join(chain),
                )
            )
        nested = info.get("dependencies")
        if isinstance(nested, dict):
            for child_name, child_info in reversed(list(nested.items())):
                stack.append((child_name, child_info, chain))
    return matches


def analyze_lockfile(lock: object, index: DatasetIndex) -> List[LockMatch]:
    """Return installed entries whose exact version is in the dataset."""
    if not isinstance(lock, dict):
        return []
    matches: List[LockMatch] = []
    packages = lock.get("packages")
    if isinstance(packages, dict):
        matches.extend(collect_matches_from_packages(packages, index))
    dependencies = lock.get("dependencies")
    if isinstance(dependencies, dict):
        matches.extend(collect_matches_from_dependencies(dependencies, index))
    return matches
