"""pipelint CLI entry point."""

# pipelint:service=cli

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from pipelint import __version__

if TYPE_CHECKING:
    from pipelint.linter import LintResult


# pipelint:service=cli
@click.group()
@click.version_option(version=__version__, prog_name="pipelint")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """pipelint - policy linter for CI/CD pipeline definitions."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# pipelint:domain=engine
@main.command()
@click.argument(
    "pipelines",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Overlay file (default: .pipelint.yml in the current directory, if present).",
)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--disable",
    "disabled",
    multiple=True,
    metavar="RULE",
    help="Disable a rule for this run (repeatable).",
)
@click.option(
    "--fail-on-warn",
    is_flag=True,
    default=False,
    help="Exit 1 on warnings as well as errors.",
)
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Evaluate rules on N worker threads.",
)
def lint(
    *,
    pipelines: tuple[Path, ...],
    config_path: Path | None,
    fmt: str | None,
    disabled: tuple[str, ...],
    fail_on_warn: bool,
    jobs: int,
) -> None:
    """Check pipeline definitions against the built-in policy rules.

    Exit codes: 0 = no errors, 1 = error findings (or warnings with
    --fail-on-warn), 2 = unreadable or invalid pipeline or overlay.
    """
    from pipelint.engine.report import (
        format_json,
        format_json_files,
        format_porcelain,
        format_rich,
    )
    from pipelint.errors import OverlayError
    from pipelint.linter import LintError, resolve_overlay
    from pipelint.linter import lint as run_lint

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        overlay = resolve_overlay(config_path).with_disabled(disabled)
        result = run_lint(pipelines, overlay=overlay, max_workers=jobs)
    except (LintError, OverlayError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if fmt == "json" and len(result.files) > 1:
        click.echo(format_json_files((str(f.path), f.report) for f in result.files))
        _exit_for(result, fail_on_warn=fail_on_warn)
        return

    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    with_source = len(result.files) > 1
    outputs = [
        formatters[fmt](f.report, source=str(f.path) if with_source or fmt == "rich" else None)
        for f in result.files
    ]
    output = ("\n\n" if fmt == "rich" else "\n").join(o for o in outputs if o)
    if output:
        click.echo(output)

    _exit_for(result, fail_on_warn=fail_on_warn)


def _exit_for(result: LintResult, *, fail_on_warn: bool) -> None:
    """Exit 1 on error findings, or on warnings when *fail_on_warn* is set."""
    from pipelint.rules.base import Severity

    if result.count(Severity.ERROR) > 0:
        sys.exit(1)
    if fail_on_warn and result.count(Severity.WARNING) > 0:
        sys.exit(1)


# pipelint:domain=rules
@main.command("rules")
@click.option(
    "--category",
    type=click.Choice(["structure", "security", "performance", "testing", "deployment"]),
    default=None,
    help="Only list rules of this category.",
)
def list_rules(*, category: str | None) -> None:
    """List the registered rules with their category and default severity."""
    from rich.console import Console
    from rich.table import Table

    from pipelint.rules.base import Category
    from pipelint.rules.registry import DEFAULT_REGISTRY

    rules = (
        DEFAULT_REGISTRY.by_category(Category(category))
        if category is not None
        else tuple(DEFAULT_REGISTRY)
    )

    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Rule")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Description")
    for rule in rules:
        table.add_row(
            rule.id, rule.category.value, rule.default_severity.label, rule.description
        )

    console = Console(width=140)
    console.print(table)
