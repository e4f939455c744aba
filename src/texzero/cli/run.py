"""texzero run: run generated cases on the simulated device."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress

from texzero.cli.display import (
    console,
    json_output_enabled,
    print_error,
    print_json,
    print_run_summary,
)
from texzero.cli.listing import select_cases
from texzero.config.loader import load_run_config
from texzero.device.simulated import SimulatedDevicePool
from texzero.exceptions import ConfigError, MatrixDefinitionError
from texzero.runner import run_cases, summarize


def run_cmd(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Run config YAML"),
    ] = None,
    pattern: Annotated[
        str | None,
        typer.Option("--filter", "-f", help="Only cases whose id contains this text"),
    ] = None,
    max_cases: Annotated[
        int | None,
        typer.Option("--max-cases", "-n", min=1, help="Run at most this many cases"),
    ] = None,
    fail_fast: Annotated[
        bool,
        typer.Option("--fail-fast", help="Stop after the first failing case"),
    ] = False,
    fault: Annotated[
        list[str] | None,
        typer.Option("--fault", help="Inject a simulated device fault (repeatable)"),
    ] = None,
    feature: Annotated[
        list[str] | None,
        typer.Option("--feature", help="Expose an optional device feature (repeatable)"),
    ] = None,
    memory_limit_mb: Annotated[
        int | None,
        typer.Option("--memory-limit-mb", min=1, help="Simulated device memory budget"),
    ] = None,
) -> None:
    """Run zero-initialization cases. Exits 1 if any case fails."""
    try:
        run_config = load_run_config(
            config,
            cli_overrides={
                "fail_fast": True if fail_fast else None,
                "max_cases": max_cases,
                "device.faults": fault or None,
                "device.features": feature or None,
                "device.memory_limit_mb": memory_limit_mb,
            },
        )
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(2) from None

    device_config = run_config.device
    pool = SimulatedDevicePool(
        features=frozenset(device_config.features),
        memory_limit_bytes=device_config.memory_limit_bytes,
        faults=frozenset(device_config.faults),
    )

    show_progress = not json_output_enabled() and run_config.verbosity != "quiet"
    try:
        with Progress(console=console, transient=True, disable=not show_progress) as progress:
            task = progress.add_task("Running cases", total=run_config.max_cases)
            outcomes = run_cases(
                select_cases(run_config.matrix, pattern),
                pool,
                fail_fast=run_config.fail_fast,
                max_cases=run_config.max_cases,
                oom_retries=run_config.oom_retries,
                reclaim_on_oom=run_config.reclaim_on_oom,
                on_outcome=lambda _: progress.advance(task),
            )
    except MatrixDefinitionError as e:
        print_error(f"Invalid test matrix: {e}")
        raise typer.Exit(2) from None

    summary = summarize(outcomes)
    if json_output_enabled():
        print_json(
            {
                "summary": summary.model_dump(),
                "outcomes": [o.model_dump(mode="json") for o in outcomes],
            }
        )
    else:
        print_run_summary(summary, outcomes)

    if not summary.ok:
        raise typer.Exit(1)
