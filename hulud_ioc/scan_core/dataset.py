"""Malicious-package dataset loading, indexing and source resolution.

The dataset is a list of ``{name, versions}`` records. It can come from a
local JSON file, a remote JSON document, or a plain-text feed with one
``name: v1, v2`` line per package. Records that cannot be indexed are kept
aside in ``DatasetIndex.malformed`` so callers can report them without
aborting the load.
"""
from __future__ import annotations

import json
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from hulud_ioc.scan_core.config import (
    DEFAULT_DATASET_FILE,
    DEFAULT_FETCH_TIMEOUT,
    ENV_DATASET_PATH,
    ENV_DATASET_URL,
)
from hulud_ioc.scan_core.models import DatasetMeta
from hulud_ioc.scan_core.utils import LOGGER, load_json_file

DATASET_HEADERS = {
    "Accept": "application/json, text/plain;q=0.9",
    "User-Agent": "hulud-ioc-scanner",
}

HTTP_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


@dataclass
class DatasetIndex:
    """Lookup from package name to its malicious version set."""

    packages: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    malformed: List[object] = field(default_factory=list)

    def get(self, name: str) -> Optional[FrozenSet[str]]:
        return self.packages.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)

    def version_count(self) -> int:
        return sum(len(versions) for versions in self.packages.values())


@dataclass
class DatasetSource:
    """Raw dataset entries plus where they came from."""

    entries: List[object]
    identifier: str
    meta: DatasetMeta


def is_http_url(value: object) -> bool:
    return isinstance(value, str) and bool(HTTP_URL_PATTERN.match(value))


def _clean_versions(versions: List[object]) -> FrozenSet[str]:
    cleaned = (version.strip() for version in versions if isinstance(version, str))
    return frozenset(version for version in cleaned if version)


def build_dataset(entries: Optional[List[object]]) -> DatasetIndex:
    """Index raw records, isolating the ones that cannot be used.

    A record is malformed when it is not a mapping, has no name, has a
    ``versions`` field that is not a list, or has no usable version left
    after trimming. Repeated names replace the earlier record.
    """
    index = DatasetIndex()
    for entry in entries or []:
        if not isinstance(entry, dict):
            index.malformed.append(entry)
            continue
        name = entry.get("name")
        versions = entry.get("versions")
        if not isinstance(name, str) or not name.strip() or not isinstance(versions, list):
            index.malformed.append(entry)
            continue
        cleaned = _clean_versions(versions)
        if not cleaned:
            index.malformed.append(entry)
            continue
        index.packages[name.strip()] = cleaned
    if index.malformed:
        LOGGER.debug("Dataset contained %s malformed record(s)", len(index.malformed))
    return index


def parse_colon_delimited(text: str) -> List[Dict[str, object]]:
    """Parse ``name: v1, v2`` lines into raw dataset records."""
    records: List[Dict[str, object]] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        name, sep, remainder = line.partition(":")
        if not sep:
            records.append({"name": name.strip()})
            continue
        versions = [version.strip() for version in remainder.split(",")]
        records.append({"name": name.strip(), "versions": [version for version in versions if version]})
    return records


def normalize_entries(raw: str, label: str) -> List[object]:
    """Accept a JSON array or a colon-delimited list and return raw records."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return parsed
    if parsed is not None:
        raise ValueError(f"Dataset from {label} must be a JSON array of {{name, versions}}.")
    entries = parse_colon_delimited(raw)
    if not entries:
        raise ValueError(f"Unable to parse dataset from {label}; expected JSON array or colon-delimited list.")
    return entries


def fetch_dataset_from_url(url: str, timeout: int = DEFAULT_FETCH_TIMEOUT) -> List[object]:
    """Fetch and normalise a remote dataset, raising on any failure."""
    request = urllib.request.Request(url, headers=DATASET_HEADERS)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            charset = response.headers.get_content_charset() or "utf-8"
            text = response.read().decode(charset, errors="replace")
    except urllib.error.HTTPError as exc:
        raise ValueError(f"HTTP {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise ValueError(f"URL error: {exc.reason}") from exc
    return normalize_entries(text, url)


def load_local_dataset(path: Path) -> List[object]:
    """Load a dataset file: JSON for ``.json`` files, colon-delimited text otherwise."""
    if path.suffix.lower() == ".json":
        payload = load_json_file(path, "dataset")
        if not isinstance(payload, list):
            raise ValueError("Dataset must be a JSON array of {name, versions}.")
        return payload
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Unable to locate dataset at {path}") from exc
    return normalize_entries(raw, str(path))


def default_local_dataset() -> Path:
    env_value = os.environ.get(ENV_DATASET_PATH)
    if env_value:
        return Path(env_value)
    return DEFAULT_DATASET_FILE


def resolve_dataset(
    data_arg: Optional[str] = None,
    quiet: bool = False,
    timeout: int = DEFAULT_FETCH_TIMEOUT,
) -> DatasetSource:
    """Pick the dataset for this run, falling back to the local copy on fetch failure."""
    candidates = []
    if data_arg and is_http_url(data_arg):
        candidates.append((data_arg, "remote-custom"))
    elif not data_arg and os.environ.get(ENV_DATASET_URL):
        candidates.append((os.environ[ENV_DATASET_URL], "remote-default"))

    last_error: Optional[str] = None
    for url, source in candidates:
        try:
            entries = fetch_dataset_from_url(url, timeout=timeout)
        except (ValueError, OSError) as exc:
            last_error = str(exc)
            log = LOGGER.debug if quiet else LOGGER.warning
            log("Failed to fetch dataset from %s: %s", url, exc)
            continue
        meta = DatasetMeta(source=source, url=url, identifier=url, entries=len(entries))
        return DatasetSource(entries=entries, identifier=url, meta=meta)

    if data_arg and not is_http_url(data_arg):
        local_path = Path(data_arg)
    else:
        local_path = default_local_dataset()
    absolute = local_path.expanduser().resolve()
    entries = load_local_dataset(absolute)

    if candidates and last_error:
        meta = DatasetMeta(
            source="local-fallback",
            path=str(absolute),
            fallback_from=candidates[0][0],
            last_error=last_error,
        )
    else:
        meta = DatasetMeta(source="local", path=str(absolute))
    meta.identifier = str(absolute)
    meta.entries = len(entries)
    LOGGER.debug("Using %s dataset at %s", meta.source, absolute)
    return DatasetSource(entries=entries, identifier=str(absolute), meta=meta)
