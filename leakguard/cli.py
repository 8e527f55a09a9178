"""
Command Line Interface for LeakGuard
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from . import __version__
from .errors import LeakGuardError
from .models import (
    DEFAULT_EXCLUDE_DIRS,
    DEFAULT_EXCLUDE_FILES,
    DEFAULT_INCLUDE_EXTENSIONS,
    MAX_FILE_SIZE,
)
from .reporter import FAIL_ON_CHOICES, FORMATS, exit_status, render
from .rules import RuleCatalog
from .scanner import SecretScanner, build_config

EXIT_FATAL = 2

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False):
    """Setup logging with rich formatting on stderr"""
    level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


def fail(error: Exception) -> NoReturn:
    """Report a fatal error and exit with the configuration/I-O error status"""
    err_console.print(Text(f"Error: {error}", style="red"))
    sys.exit(EXIT_FATAL)


@click.group()
@click.version_option(__version__, prog_name="leakguard")
@click.pass_context
def cli(ctx):
    """
    LeakGuard - Pattern-based secrets scanner

    Finds leaked credentials (API keys, private keys, connection strings,
    passwords) in a source tree and reports them with file/line provenance.

    Examples:

      # Scan the current directory
      leakguard scan .

      # Machine-readable output for CI
      leakguard scan ./my-repo --format json

      # Only fail the build on high-severity findings
      leakguard scan ./my-repo --fail-on HIGH
    """
    ctx.ensure_object(dict)


@cli.command()
@click.argument("target_path", type=click.Path(file_okay=True, dir_okay=True))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(list(FORMATS)),
    default="console",
    help="Report format: human console view or structured JSON.",
)
@click.option(
    "--max-file-size",
    type=click.IntRange(min=0),
    default=MAX_FILE_SIZE,
    show_default=True,
    help="Skip files larger than this many bytes (reported as too_large).",
)
@click.option(
    "--fail-on",
    type=click.Choice(list(FAIL_ON_CHOICES), case_sensitive=False),
    default="any",
    show_default=True,
    help="Lowest severity that makes the scan fail (exit status 1).",
)
@click.option(
    "--rules",
    "rule_files",
    multiple=True,
    type=click.Path(),
    help="Extra rule file (YAML or JSON). Can be repeated.",
)
@click.option("--enable-rule", multiple=True, help="Only apply these rule ids. Can be repeated.")
@click.option("--disable-rule", multiple=True, help="Do not apply this rule id. Can be repeated.")
@click.option(
    "--include-ext", multiple=True, help="Additional file extension to scan, e.g. .vue"
)
@click.option("--exclude-dir", multiple=True, help="Additional directory name to skip.")
@click.option("--exclude-file", multiple=True, help="Additional file glob to skip.")
@click.option(
    "--max-findings-per-rule",
    type=click.IntRange(min=1),
    default=10,
    show_default=True,
    help="Console view: findings shown per rule before truncating.",
)
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Matcher threads (default: number of CPUs).",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Abort the scan after this many seconds.",
)
@click.option("--output", "-o", type=click.Path(), help="Also write the report to this file.")
@click.option("--no-color", is_flag=True, help="Disable colored console output.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def scan(
    target_path: str,
    output_format: str,
    max_file_size: int,
    fail_on: str,
    rule_files: Tuple[str, ...],
    enable_rule: Tuple[str, ...],
    disable_rule: Tuple[str, ...],
    include_ext: Tuple[str, ...],
    exclude_dir: Tuple[str, ...],
    exclude_file: Tuple[str, ...],
    max_findings_per_rule: int,
    workers: Optional[int],
    timeout: Optional[float],
    output: Optional[str],
    no_color: bool,
    verbose: bool,
):
    """
    Scan a directory (or a single file) for leaked secrets.

    TARGET_PATH: Path to the directory or file to scan

    \b
    Exit status:
      0  no findings at or above --fail-on
      1  findings present
      2  configuration error, missing root or timeout
    """
    setup_logging(verbose)

    options = dict(
        target_path=target_path,
        include_extensions=DEFAULT_INCLUDE_EXTENSIONS + list(include_ext),
        exclude_dirs=DEFAULT_EXCLUDE_DIRS + list(exclude_dir),
        exclude_files=DEFAULT_EXCLUDE_FILES + list(exclude_file),
        max_file_size=max_file_size,
        rule_files=list(rule_files),
        enable_rules=list(enable_rule),
        disable_rules=list(disable_rule),
        timeout=timeout,
        output_format=output_format,
        max_findings_per_rule=max_findings_per_rule,
        fail_on="any" if fail_on.lower() == "any" else fail_on.upper(),
        color=not no_color,
        verbose=verbose,
    )
    if workers is not None:
        options["max_workers"] = workers

    try:
        config = build_config(**options)
        scanner = SecretScanner(config)
        result = asyncio.run(scanner.scan())
    except LeakGuardError as e:
        fail(e)

    report = render(
        result,
        config.output_format,
        max_per_rule=config.max_findings_per_rule,
        color=config.color,
    )
    click.echo(report.rstrip("\n"))

    if output:
        plain = render(
            result, config.output_format, max_per_rule=config.max_findings_per_rule
        )
        try:
            Path(output).write_text(plain, encoding="utf-8")
        except OSError as e:
            fail(e)
        err_console.print(Text(f"Report saved to {output}", style="green"))

    sys.exit(exit_status(result, config.fail_on))


@cli.command(name="rules")
@click.option(
    "--rules",
    "rule_files",
    multiple=True,
    type=click.Path(),
    help="Extra rule file (YAML or JSON) to include. Can be repeated.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(list(FORMATS)),
    default="console",
    help="Listing format.",
)
def list_rules(rule_files: Tuple[str, ...], output_format: str):
    """
    List the detection rules that a scan would apply.

    \b
    Examples:

      leakguard rules
      leakguard rules --rules company-rules.yml --format json
    """
    setup_logging(False)

    try:
        catalog = RuleCatalog.load(rule_files=rule_files)
    except LeakGuardError as e:
        fail(e)

    if output_format == "json":
        records = [
            {
                "id": rule.id,
                "label": rule.label,
                "severity": rule.severity.value,
                "category": rule.category.value,
                "redact": rule.redact,
                "ignoreCase": rule.ignore_case,
                "pattern": rule.pattern,
                "falsePositiveHints": list(rule.false_positive_hints),
            }
            for rule in catalog
        ]
        click.echo(json.dumps(records, indent=2))
        return

    table = Table(title=f"🔍 Detection Rules ({len(catalog)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Label")
    table.add_column("Severity", justify="center")
    table.add_column("Category", style="yellow")
    table.add_column("Redact", justify="center")

    for rule in catalog:
        table.add_row(
            rule.id,
            rule.label,
            rule.severity.value,
            rule.category.value,
            "yes" if rule.redact else "no",
        )

    console.print(table)


def main():
    """Console script entry point; options can also come from LEAKGUARD_* variables"""
    cli(auto_envvar_prefix="LEAKGUARD")


if __name__ == "__main__":
    main()
