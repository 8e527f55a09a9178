"""
Exception taxonomy for LeakGuard

Fatal errors (configuration, scan root, time budget) abort a scan before or while it
runs. ``ReadError`` is local to a single file and is recorded as a skip instead.
"""


class LeakGuardError(Exception):
    """Base class for all LeakGuard errors"""


class ConfigError(LeakGuardError):
    """Invalid rule catalog, rule file or scan option"""


class WalkError(LeakGuardError):
    """Scan root is missing or unreadable"""


class ScanTimeoutError(LeakGuardError):
    """The scan exceeded its wall-clock budget"""


class ReadError(LeakGuardError):
    """A single file could not be read during matching"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class FileTooLargeError(ReadError):
    """A file grew past the size cap between walking and matching"""

    def __init__(self, path: str, limit: int):
        super().__init__(path, f"larger than {limit} bytes")
        self.limit = limit
