"""
Reporter

Renders a ScanResult for humans (rich console view) or machines (JSON), and
decides the process exit status.
"""

import io
import json
from collections import OrderedDict
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .models import Finding, ScanResult, Severity, SkipReason

FORMATS = ("console", "json")
FAIL_ON_CHOICES = ("CRITICAL", "HIGH", "MEDIUM", "LOW", "any")
CONSOLE_WIDTH = 160

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

REMEDIATION_STEPS = [
    "Remove the secrets from your code",
    "Use environment variables or a secret manager instead",
    "If already committed, rotate the credentials IMMEDIATELY",
    "Rewrite history (git filter-repo or BFG) to purge them",
]


def exit_status(result: ScanResult, fail_on: str = "any") -> int:
    """
    Exit status for a scan

    Returns 1 if any finding is at or above the ``fail_on`` severity, else 0. With
    the default ``any`` threshold every finding fails the scan, whatever its severity.
    """
    threshold = Severity.LOW if fail_on.lower() == "any" else Severity(fail_on.upper())
    failing = any(finding.severity.rank >= threshold.rank for finding in result.findings)
    return 1 if failing else 0


def render(
    result: ScanResult,
    fmt: str = "console",
    *,
    max_per_rule: int = 10,
    color: bool = False,
) -> str:
    """Render a scan result as text in the requested format"""
    if fmt == "json":
        return render_json(result)
    if fmt == "console":
        return render_console(result, max_per_rule=max_per_rule, color=color)
    raise ValueError(f"Unsupported report format: {fmt}")


def finding_record(finding: Finding) -> Dict[str, Any]:
    """Stable, machine-readable view of a finding (never includes the raw match)"""
    return {
        "ruleId": finding.rule_id,
        "label": finding.label,
        "severity": finding.severity.value,
        "category": finding.category.value,
        "path": finding.file_path,
        "line": finding.line_number,
        "column": finding.column_start,
        "columnEnd": finding.column_end,
        "redactedSnippet": finding.redacted_snippet,
    }


def render_json(result: ScanResult) -> str:
    buckets = result.by_severity()
    payload = {
        "findings": [finding_record(finding) for finding in result.findings],
        "summary": {
            "root": result.root,
            "filesScanned": result.files_scanned,
            "filesSkipped": {
                reason.value: count for reason, count in result.skip_counts().items()
            },
            "rulesApplied": result.rules_applied,
            "durationMs": result.duration_ms,
            "findingsBySeverity": {
                severity.value: len(buckets[severity]) for severity in Severity
            },
            "exitStatus": result.exit_status,
            "cancelled": result.cancelled,
        },
        "skipped": [
            {"path": item.path, "reason": item.reason.value} for item in result.skipped
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def skip_summary(result: ScanResult) -> str:
    counts = result.skip_counts()
    return (
        f"{len(result.skipped)} files skipped: "
        f"{counts[SkipReason.TOO_LARGE]} too large, "
        f"{counts[SkipReason.BINARY]} binary, "
        f"{counts[SkipReason.UNREADABLE]} unreadable"
    )


def _group_by_rule(findings: List[Finding]) -> "OrderedDict[str, List[Finding]]":
    groups: "OrderedDict[str, List[Finding]]" = OrderedDict()
    for finding in findings:
        groups.setdefault(finding.rule_id, []).append(finding)
    return groups


def render_console(result: ScanResult, max_per_rule: int = 10, color: bool = False) -> str:
    """
    Human-readable report

    Findings are grouped by severity, then by rule; at most ``max_per_rule`` findings
    of a rule are listed per severity group, followed by a truncation note.
    """
    buffer = io.StringIO()
    console = Console(
        file=buffer,
        width=CONSOLE_WIDTH,
        force_terminal=color,
        color_system="standard" if color else None,
        highlight=False,
        soft_wrap=True,
        emoji=False,
    )

    console.print(Text("🔍 LeakGuard Secrets Scanner", style="bold"))
    console.print(f"Scanning: {result.root}", markup=False)
    console.print()

    for severity, findings in result.by_severity().items():
        if not findings:
            continue

        style = SEVERITY_STYLES[severity]
        console.print(Text(f"⚠️  {severity.value} ({len(findings)})", style=style))
        for rule_findings in _group_by_rule(findings).values():
            for finding in rule_findings[:max_per_rule]:
                console.print(
                    Text.assemble(
                        (f"{finding.file_path}:{finding.line_number}: ", "cyan"),
                        (finding.label, style),
                        " — ",
                        finding.redacted_snippet,
                    )
                )
            hidden = len(rule_findings) - max_per_rule
            if hidden > 0:
                console.print(
                    Text(f"   ... {hidden} more {rule_findings[0].rule_id} truncated", style="dim")
                )
        console.print()

    summary = (
        f"Files scanned: {result.files_scanned}\n"
        f"Rules applied: {result.rules_applied}\n"
        f"Findings: {len(result.findings)}\n"
        f"Duration: {result.duration_ms / 1000:.2f}s\n"
        f"{skip_summary(result)}"
    )
    if result.cancelled:
        summary += "\nScan was cancelled; results are partial"
    console.print(Panel(Text(summary), title="Scan Summary", expand=False))

    if result.findings:
        console.print(Text("❌ SECRETS DETECTED", style="bold red"))
        console.print()
        console.print("Action required:")
        for i, step in enumerate(REMEDIATION_STEPS, 1):
            console.print(f"  {i}. {step}", markup=False)
    else:
        console.print(Text("✅ No obvious secrets detected", style="bold green"))
        console.print()
        console.print(
            "Note: This scan catches common patterns but isn't exhaustive.", markup=False
        )

    return buffer.getvalue()
