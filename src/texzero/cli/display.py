"""Rich console output for the texzero CLI."""

from __future__ import annotations

import json
import os

from rich.console import Console
from rich.table import Table

from texzero.domain.outcome import CaseOutcome, RunSummary
from texzero.texture.formats import FormatInfo

console = Console()

JSON_OUTPUT_ENV_VAR = "TEXZERO_JSON_OUTPUT"


def json_output_enabled() -> bool:
    return os.environ.get(JSON_OUTPUT_ENV_VAR, "false") == "true"


def print_json(data: object) -> None:
    console.print_json(json.dumps(data))


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


def print_formats_table(formats: list[FormatInfo]) -> None:
    table = Table(title="Texture Formats")
    table.add_column("Format", style="cyan")
    table.add_column("Aspects")
    table.add_column("Bytes/texel", justify="right")
    table.add_column("Render")
    table.add_column("Blend")
    table.add_column("Copy src")
    table.add_column("Copy dst")
    table.add_column("Storage")
    table.add_column("MSAA")
    table.add_column("Feature", style="yellow")

    for info in formats:
        table.add_row(
            info.name,
            "+".join(info.aspects),
            "/".join(str(info.bytes_per_texel(a)) for a in info.aspects),
            _flag(info.renderable),
            _flag(info.blendable),
            _flag(info.copy_src),
            _flag(info.copy_dst),
            _flag(info.storage),
            _flag(info.multisample),
            info.feature or "",
        )
    console.print(table)


def print_run_summary(summary: RunSummary, outcomes: list[CaseOutcome]) -> None:
    table = Table(title="Run Summary")
    table.add_column("Status")
    table.add_column("Cases", justify="right")
    table.add_row("[green]pass[/green]", str(summary.passed))
    table.add_row("[red]fail[/red]", str(summary.failed))
    table.add_row("[yellow]skip[/yellow]", str(summary.skipped))
    table.add_row("[bold]total[/bold]", str(summary.total))
    console.print(table)

    if summary.skip_reasons:
        console.print("\n[bold]Skip reasons[/bold]")
        for reason, count in sorted(summary.skip_reasons.items(), key=lambda kv: -kv[1]):
            console.print(f"  {count:>5}  {reason}")

    failures = [o for o in outcomes if o.failed]
    if failures:
        console.print("\n[bold red]Failures[/bold red]")
        for outcome in failures:
            console.print(f"  [red]✗[/red] {outcome.case_id}")
            console.print(f"      [dim]{outcome.reason}[/dim]")


def print_error(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}")
