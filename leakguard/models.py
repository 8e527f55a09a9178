"""
Data models for LeakGuard
"""

import os
import re
from enum import Enum
from functools import lru_cache
from typing import Dict, List, Literal, Optional, Tuple

import regex
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .patterns import find_nested_quantifier

CompiledPattern = regex.Pattern


class Severity(str, Enum):
    """Severity of a detection rule"""

    CRITICAL = "CRITICAL"  # Production keys, private keys
    HIGH = "HIGH"  # Provider API keys and tokens
    MEDIUM = "MEDIUM"  # Generic assignments
    LOW = "LOW"  # Test keys

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class SecretCategory(str, Enum):
    """Kinds of secrets a rule can detect"""

    API_KEY = "api_key"
    PRIVATE_KEY = "private_key"
    PASSWORD = "password"
    CONNECTION_STRING = "connection_string"
    GENERIC_SECRET = "generic_secret"


class SkipReason(str, Enum):
    """Why a file was looked at but not scanned"""

    TOO_LARGE = "too_large"
    BINARY = "binary"
    UNREADABLE = "unreadable"


@lru_cache(maxsize=None)
def _compile(pattern: str, ignore_case: bool) -> CompiledPattern:
    return regex.compile(pattern, regex.IGNORECASE if ignore_case else 0)


class Rule(BaseModel):
    """A named detection pattern plus its reporting metadata"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    label: str
    pattern: str = Field(min_length=1)
    severity: Severity
    category: SecretCategory
    redact: bool = True
    ignore_case: bool = False
    description: str = ""
    false_positive_hints: Tuple[str, ...] = ()

    @field_validator("id")
    @classmethod
    def _id_is_identifier(cls, value: str) -> str:
        if not re.fullmatch(r"[A-Za-z0-9_.\-]+", value):
            raise ValueError(f"rule id must be alphanumeric (with _ . -): {value!r}")
        return value

    @field_validator("pattern")
    @classmethod
    def _pattern_is_safe(cls, value: str) -> str:
        try:
            regex.compile(value)
        except regex.error as e:
            raise ValueError(f"pattern does not compile: {e}") from e

        nested = find_nested_quantifier(value)
        if nested is not None:
            raise ValueError(
                f"pattern repeats a group that already contains an unbounded quantifier: {nested}"
            )
        return value

    @property
    def regex(self) -> CompiledPattern:
        """Compiled pattern (cached per pattern/flags pair)"""
        return _compile(self.pattern, self.ignore_case)


class ScanTarget(BaseModel):
    """A regular, readable, text-like file selected by the walker"""

    model_config = ConfigDict(frozen=True)

    path: str
    relative_path: str
    size_bytes: int
    extension: str


class Finding(BaseModel):
    """A single located match of a rule against file content"""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    label: str
    category: SecretCategory
    severity: Severity
    file_path: str
    line_number: int = Field(ge=1)
    column_start: int = Field(ge=1)
    column_end: int = Field(ge=1)
    raw_match: str = Field(repr=False)
    redacted_snippet: str

    @property
    def dedup_key(self) -> Tuple[str, int, str]:
        return (self.file_path, self.line_number, self.rule_id)


class SkippedFile(BaseModel):
    """A file the scan could not look into"""

    model_config = ConfigDict(frozen=True)

    path: str
    reason: SkipReason
    detail: Optional[str] = None


DEFAULT_INCLUDE_EXTENSIONS = [
    # Source
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".mjs",
    ".cjs",
    ".py",
    ".rb",
    ".php",
    ".go",
    ".java",
    ".kt",
    ".cs",
    ".rs",
    ".swift",
    ".scala",
    ".sh",
    ".bash",
    ".ps1",
    ".sql",
    ".tf",
    # Config
    ".env",
    ".json",
    ".yml",
    ".yaml",
    ".toml",
    ".xml",
    ".ini",
    ".cfg",
    ".conf",
    ".properties",
    # Text
    ".txt",
    ".md",
]

# Dotenv variants (.env, .envrc, app.env.local, prod.env.example) have no fixed suffix
DEFAULT_INCLUDE_FILES = ["*.env*"]

DEFAULT_EXCLUDE_DIRS = [
    "node_modules",
    ".git",
    "vendor",
    "__pycache__",
    ".next",
    "dist",
    "build",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
]

DEFAULT_EXCLUDE_FILES = [
    "*.min.js",
    "*.min.css",
    "*.map",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Pipfile.lock",
    "composer.lock",
    "Cargo.lock",
    "go.sum",
]

MAX_FILE_SIZE = 1024 * 1024  # 1 MiB


class ScanConfig(BaseModel):
    """Configuration for scanning"""

    # Scan scope
    target_path: str
    include_extensions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_INCLUDE_EXTENSIONS)
    )
    include_files: List[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE_FILES))
    exclude_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS))
    exclude_files: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_FILES))
    max_file_size: int = Field(default=MAX_FILE_SIZE, ge=0)

    # Rule catalog
    rule_files: List[str] = []
    enable_rules: List[str] = []  # Restrict to these rule ids
    disable_rules: List[str] = []

    # Performance settings
    max_workers: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1)
    queue_size: int = Field(default=64, ge=1)
    timeout: Optional[float] = Field(default=None, gt=0)  # Wall-clock budget (seconds)

    # Output settings
    output_format: Literal["console", "json"] = "console"
    max_findings_per_rule: int = Field(default=10, ge=1)
    fail_on: Literal["CRITICAL", "HIGH", "MEDIUM", "LOW", "any"] = "any"
    color: bool = True
    verbose: bool = False

    @field_validator("include_extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = "." + ext
            if ext not in normalized:
                normalized.append(ext)
        return normalized


class ScanResult(BaseModel):
    """Complete, deduplicated scan results"""

    root: str
    findings: List[Finding]
    files_scanned: int
    rules_applied: int
    duration_ms: float
    exit_status: int
    skipped: List[SkippedFile] = []
    cancelled: bool = False

    def skip_counts(self) -> Dict[SkipReason, int]:
        counts = {reason: 0 for reason in SkipReason}
        for item in self.skipped:
            counts[item.reason] += 1
        return counts

    def by_severity(self) -> Dict[Severity, List[Finding]]:
        buckets: Dict[Severity, List[Finding]] = {severity: [] for severity in Severity}
        for finding in self.findings:
            buckets[finding.severity].append(finding)
        return buckets
