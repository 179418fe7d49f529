"""Configuration constants and indicator tables for Shai-Hulud IoC scanning."""
import re
from pathlib import Path
from typing import FrozenSet, Pattern, Tuple

# Project paths
PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_DATASET_FILE = PACKAGE_ROOT / "data" / "compromised-packages.json"
ENV_DATASET_PATH = "HULUD_IOC_DATASET"
ENV_DATASET_URL = "HULUD_IOC_DATASET_URL"

# Remote dataset fetch timeout in seconds
DEFAULT_FETCH_TIMEOUT = 30

# Dependency manifest sections and the label used in findings
MANIFEST_SECTIONS: Tuple[Tuple[str, str], ...] = (
    ("dependencies", "runtime"),
    ("devDependencies", "dev"),
    ("optionalDependencies", "optional"),
    ("peerDependencies", "peer"),
    ("bundledDependencies", "bundled"),
    ("bundleDependencies", "bundled"),
)

MANIFEST_FILENAME = "package.json"
LOCKFILE_FILENAMES: FrozenSet[str] = frozenset({"package-lock.json", "npm-shrinkwrap.json"})

# Nesting limit when flattening overrides/resolutions
MAX_OVERRIDE_DEPTH = 64

# Known malicious Shai-Hulud payload SHA-256 hashes
MALICIOUS_SHA256: FrozenSet[str] = frozenset({
    "de0e25a3e6c1e1e5998b306b7141b3dc4c0088da9d7bb47c1c00c91e6e4f85d6",
    "81d2a004a1bca6ef87a1caf7d0e0b355ad1764238e40ff6d1b1cb77ad4f595c3",
    "83a650ce44b2a9854802a7fb4c202877815274c129af49e6c2d1d5d5d55c501e",
    "4b2399646573bb737c4969563303d8ee2e9ddbd1b271f1ca9e35ea78062538db",
    "dc67467a39b70d1cd4c1f7f7a459b35058163592f4a9e8fb4dffcbba98ef210c",
    "46faab8ab153fae6e80e7cca38eab363075bb524edd79e42269217a083628f09",
    "b74caeaa75e077c99f7d44f46daaf9796a3be43ecf24f2a1fd381844669da777",
    "86532ed94c5804e1ca32fa67257e1bb9de628e3e48a1f56e67042dc055effb5b",
    "aba1fcbd15c6ba6d9b96e34cec287660fff4a31632bf76f2a766c499f55ca1ee",
})

# Known Shai-Hulud workflow file names
SUSPICIOUS_WORKFLOW_FILENAMES: FrozenSet[str] = frozenset({
    "shai-hulud-workflow.yml",
    "shai-hulud-workflow.yaml",
})

# Substrings that make a postinstall script suspicious
SUSPICIOUS_POSTINSTALL_KEYWORDS: Tuple[str, ...] = (
    "curl ",
    "wget ",
    "Invoke-WebRequest",
    "Invoke-RestMethod",
    "powershell",
    "PowerShell",
    "Start-Process",
    "node -e",
    "node -pe",
    "node -p",
    "npm exec",
    "npx ",
    "eval",
    "bash -c",
    "sh -c",
    "python -c",
    "perl -e",
    "fetch(",
    "certutil",
    "bitsadmin",
    "mshta",
    "msiexec",
    "ftp ",
    "tftp ",
)

# Ordered (label, severity, pattern) content indicators
SUSPICIOUS_CONTENT_PATTERNS: Tuple[Tuple[str, str, Pattern[str]], ...] = (
    ("webhook.site exfiltration endpoint", "medium", re.compile(r"webhook\.site", re.IGNORECASE)),
    ("Known Shai-Hulud webhook GUID", "high", re.compile(r"bb8ca5f6-4175-45d2-b042-fc9ebb8170b7", re.IGNORECASE)),
    ("Chalk/debug crypto theft helper", "high", re.compile(r"checkethereumw|runmask|newdlocal|_0x19ca67", re.IGNORECASE)),
    ("Shai-Hulud reference", "medium", re.compile(r"shai[-\s]?hulud", re.IGNORECASE)),
    ("Phishing helper domain", "medium", re.compile(r"npmjs\.help", re.IGNORECASE)),
)

# Credential-scanning tool signatures
TRUFFLEHOG_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"trufflehog", re.IGNORECASE),
    re.compile(r"github\.com/trufflesecurity/trufflehog", re.IGNORECASE),
)

# Directory names skipped during traversal
DEFAULT_DIR_EXCLUSIONS: FrozenSet[str] = frozenset({
    "node_modules",
    ".git",
    "dist",
    "build",
    "out",
    ".next",
    ".cache",
    ".tmp",
    "tmp",
    "logs",
    "coverage",
})
NODE_MODULES_DIR = "node_modules"

HASHABLE_EXTENSIONS: FrozenSet[str] = frozenset({".js", ".ts", ".cjs", ".mjs", ".jsx", ".tsx", ".json"})

TEXT_FILE_EXTENSIONS: FrozenSet[str] = frozenset({
    ".js",
    ".ts",
    ".cjs",
    ".mjs",
    ".jsx",
    ".tsx",
    ".json",
    ".yml",
    ".yaml",
    ".md",
    ".config",
    ".env",
    ".sh",
    ".py",
})

# Maximum bytes read for content scanning (512 KiB)
MAX_TEXT_BYTES = 512 * 1024

# This module carries the indicator strings itself. Entries are matched as
# path suffixes so a checkout nested under the scan root is also skipped.
SELF_CONTENT_ALLOWLIST: FrozenSet[str] = frozenset({
    "hulud_ioc/scan_core/config.py",
})
