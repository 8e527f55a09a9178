"""
Deduplicator & Aggregator

Single point of truth for what a scan found. Workers hand over the findings of
each completed file; the aggregator drops repeats and builds the final result.
"""

import logging
import threading
from typing import Dict, Iterable, List, Set, Tuple

from .models import Finding, ScanResult, Severity, SkippedFile, SkipReason

logger = logging.getLogger(__name__)


def _finding_order(finding: Finding) -> Tuple[int, str, int, int, str]:
    return (
        -finding.severity.rank,
        finding.file_path,
        finding.line_number,
        finding.column_start,
        finding.rule_id,
    )


class FindingAggregator:
    """Thread-safe dedup set plus running counters"""

    def __init__(self, root: str = ""):
        self.root = root
        self._lock = threading.Lock()
        self._seen: Set[Tuple[str, int, str]] = set()
        self._findings: List[Finding] = []
        self._skipped: List[SkippedFile] = []
        self._files_scanned = 0
        self._duplicates = 0

    def add(self, findings: Iterable[Finding]) -> int:
        """
        Add findings, dropping exact repeats of (file, line, rule)

        Returns:
            Number of findings kept
        """
        kept = 0
        with self._lock:
            for finding in findings:
                key = finding.dedup_key
                if key in self._seen:
                    self._duplicates += 1
                    continue
                self._seen.add(key)
                self._findings.append(finding)
                kept += 1
        return kept

    def file_scanned(self) -> None:
        with self._lock:
            self._files_scanned += 1

    def record_skip(self, skipped: SkippedFile) -> None:
        with self._lock:
            self._skipped.append(skipped)

    @property
    def files_scanned(self) -> int:
        with self._lock:
            return self._files_scanned

    @property
    def findings_count(self) -> int:
        with self._lock:
            return len(self._findings)

    def skip_counts(self) -> Dict[SkipReason, int]:
        counts = {reason: 0 for reason in SkipReason}
        with self._lock:
            for item in self._skipped:
                counts[item.reason] += 1
        return counts

    def by_severity(self) -> Dict[Severity, List[Finding]]:
        buckets: Dict[Severity, List[Finding]] = {severity: [] for severity in Severity}
        with self._lock:
            for finding in sorted(self._findings, key=_finding_order):
                buckets[finding.severity].append(finding)
        return buckets

    def finalize(
        self, rules_applied: int, duration_ms: float, cancelled: bool = False
    ) -> ScanResult:
        """Freeze the collected state into an ordered ScanResult"""
        with self._lock:
            findings = sorted(self._findings, key=_finding_order)
            skipped = sorted(self._skipped, key=lambda item: (item.path, item.reason.value))
            files_scanned = self._files_scanned
            duplicates = self._duplicates

        if duplicates:
            logger.debug(f"Dropped {duplicates} duplicate findings")

        return ScanResult(
            root=self.root,
            findings=findings,
            files_scanned=files_scanned,
            rules_applied=rules_applied,
            duration_ms=duration_ms,
            exit_status=0 if not findings else 1,
            skipped=skipped,
            cancelled=cancelled,
        )
