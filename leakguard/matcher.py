"""
Matcher Engine

Applies every rule of the catalog to a file, one line at a time, and builds
redacted findings with exact line/column provenance.
"""

import logging
import threading
from typing import Iterable, List, Optional, Tuple

import regex

from .errors import FileTooLargeError, ReadError
from .models import Finding, Rule, ScanTarget
from .rules import RuleCatalog

logger = logging.getLogger(__name__)

MASK_CHAR = "*"
SNIPPET_WIDTH = 160
SECRET_GROUP = "secret"
MATCH_TIMEOUT = 1.0  # seconds per rule per line

Hit = Tuple[Rule, regex.Match]


def mask(value: str) -> str:
    """Keep up to 4 characters at each end of ``value`` and mask the rest"""
    visible = min(4, len(value) // 4)
    if visible == 0:
        return MASK_CHAR * len(value)
    return value[:visible] + MASK_CHAR * (len(value) - 2 * visible) + value[-visible:]


def read_text(target: ScanTarget, max_bytes: Optional[int] = None) -> str:
    """
    Read a target as UTF-8 text; undecodable bytes are replaced

    At most ``max_bytes + 1`` bytes are read when a cap is given.

    Raises:
        FileTooLargeError: if the file is now larger than ``max_bytes``
        ReadError: if the file cannot be read
    """
    try:
        with open(target.path, "rb") as f:
            data = f.read() if max_bytes is None else f.read(max_bytes + 1)
    except OSError as e:
        raise ReadError(target.relative_path, e.strerror or str(e)) from e

    if max_bytes is not None and len(data) > max_bytes:
        raise FileTooLargeError(target.relative_path, max_bytes)
    return data.decode("utf-8-sig", errors="replace")


def split_lines(content: str) -> List[str]:
    """Split on newlines only, dropping a trailing carriage return"""
    return [line[:-1] if line.endswith("\r") else line for line in content.split("\n")]


def match(
    target: ScanTarget,
    catalog: RuleCatalog,
    cancel_event: Optional[threading.Event] = None,
    max_bytes: Optional[int] = None,
) -> List[Finding]:
    """
    Find every rule match in a file

    Matching is line-scoped: a pattern never spans a line boundary. Every
    non-overlapping match of every rule yields its own Finding; duplicates are
    collapsed later by the aggregator. A rule that runs longer than
    ``MATCH_TIMEOUT`` on a line is abandoned for that line with a warning.

    Args:
        target: File selected by the walker
        catalog: Rules to apply
        cancel_event: If set while matching, the file is abandoned
        max_bytes: Size cap re-checked while reading

    Returns:
        Findings ordered by line, column and catalog order (empty if cancelled)

    Raises:
        FileTooLargeError: if the file grew past ``max_bytes``
        ReadError: if the file cannot be read
    """
    lines = split_lines(read_text(target, max_bytes))
    findings: List[Finding] = []

    for line_number, line in enumerate(lines, start=1):
        if cancel_event is not None and cancel_event.is_set():
            logger.debug(f"Abandoning {target.relative_path}")
            return []

        hits: List[Hit] = []
        for rule in catalog:
            try:
                rule_hits = [
                    (rule, m)
                    for m in rule.regex.finditer(line, timeout=MATCH_TIMEOUT)
                    if m.end() > m.start()
                ]
            except TimeoutError:
                logger.warning(
                    f"Rule {rule.id} timed out on {target.relative_path}:{line_number}"
                )
                continue
            hits.extend(rule_hits)
        if not hits:
            continue

        masked = redact_line(line, hits)
        # Stable sort keeps catalog order for matches starting at the same column
        for rule, m in sorted(hits, key=lambda hit: hit[1].start()):
            findings.append(
                Finding(
                    rule_id=rule.id,
                    label=rule.label,
                    category=rule.category,
                    severity=rule.severity,
                    file_path=target.relative_path,
                    line_number=line_number,
                    column_start=m.start() + 1,
                    column_end=m.end(),
                    raw_match=m.group(0),
                    redacted_snippet=snippet(masked, m.start(), m.end()),
                )
            )

    return findings


def _redact_span(rule: Rule, m: regex.Match) -> Tuple[int, int]:
    if SECRET_GROUP in rule.regex.groupindex and m.start(SECRET_GROUP) != -1:
        return m.span(SECRET_GROUP)
    return m.span()


def _merge_spans(spans: Iterable[Tuple[int, int]]) -> List[Tuple[int, int]]:
    merged: List[Tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def redact_line(line: str, hits: List[Hit]) -> str:
    """
    Mask every redactable match on a line

    All findings of a line share the result, so a secret cannot leak through the
    snippet of a neighbouring finding. Masks preserve length, keeping columns aligned.
    """
    chars = list(line)
    spans = [_redact_span(rule, m) for rule, m in hits if rule.redact]
    for start, end in _merge_spans(spans):
        chars[start:end] = mask(line[start:end])

    for rule, m in hits:
        raw = m.group(0)
        if not rule.redact or set(raw) == {MASK_CHAR}:
            continue
        text = "".join(chars)
        index = text.find(raw)
        while index != -1:
            chars[index : index + len(raw)] = MASK_CHAR * len(raw)
            text = "".join(chars)
            index = text.find(raw)

    return "".join(chars)


def snippet(line: str, start: int, end: int, width: int = SNIPPET_WIDTH) -> str:
    """Cut a window of ``width`` characters around [start, end) out of a line"""
    if len(line) <= width:
        return line.strip()

    lead = max((width - (end - start)) // 2, 0)
    low = max(0, start - lead)
    high = min(len(line), low + width)
    low = max(0, high - width)

    text = line[low:high].strip()
    if low > 0:
        text = "..." + text
    if high < len(line):
        text = text + "..."
    return text
