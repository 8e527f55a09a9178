"""
LeakGuard - Pattern-based Secrets Scanner

Walks a source tree, applies a catalog of credential patterns to every candidate
file, and reports redacted findings with file/line provenance.
"""

__version__ = "0.1.0"
__author__ = "LeakGuard Team"
__description__ = "Pattern-based secrets scanner"

from .errors import ConfigError, LeakGuardError, ReadError, ScanTimeoutError, WalkError
from .models import Finding, Rule, ScanConfig, ScanResult, Severity, SecretCategory
from .rules import DEFAULT_RULES, RuleCatalog
from .scanner import SecretScanner, scan_path

__all__ = [
    "ConfigError",
    "DEFAULT_RULES",
    "Finding",
    "LeakGuardError",
    "ReadError",
    "Rule",
    "RuleCatalog",
    "ScanConfig",
    "ScanResult",
    "ScanTimeoutError",
    "SecretCategory",
    "SecretScanner",
    "Severity",
    "WalkError",
    "scan_path",
]
