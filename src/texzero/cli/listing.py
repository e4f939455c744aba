"""texzero list: show the generated case ids."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Annotated

import typer

from texzero.cli.display import console, json_output_enabled, print_error, print_json
from texzero.config.loader import load_run_config
from texzero.config.models import MatrixConfig
from texzero.exceptions import ConfigError
from texzero.oracle.matrix import texture_zero_params
from texzero.params.builder import CaseParams


def select_cases(matrix: MatrixConfig, pattern: str | None = None) -> Iterator[CaseParams]:
    """Cases of the matrix whose id contains ``pattern``."""
    for params in texture_zero_params(matrix):
        if pattern is None or pattern in params.case_id:
            yield params


def list_cmd(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Run config YAML restricting the matrix"),
    ] = None,
    pattern: Annotated[
        str | None,
        typer.Option("--filter", "-f", help="Only cases whose id contains this text"),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Show at most this many cases"),
    ] = None,
    cases_only: Annotated[
        bool,
        typer.Option("--cases", help="Show case groups with their subcase counts"),
    ] = False,
) -> None:
    """List generated test cases."""
    try:
        run_config = load_run_config(config)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(2) from None

    if cases_only:
        groups = [
            (CaseParams(case).case_id, len(members))
            for case, members in texture_zero_params(run_config.matrix).group_by_case()
        ]
        groups = [g for g in groups if pattern is None or pattern in g[0]][:limit]
        if json_output_enabled():
            print_json([{"case": case, "subcases": count} for case, count in groups])
            return
        for case, count in groups:
            console.print(f"{case} [dim]({count} subcases)[/dim]")
        return

    case_ids = []
    for params in select_cases(run_config.matrix, pattern):
        if limit is not None and len(case_ids) >= limit:
            break
        case_ids.append(params.case_id)

    if json_output_enabled():
        print_json(case_ids)
        return
    for case_id in case_ids:
        console.print(case_id, highlight=False)
    console.print(f"\n[dim]{len(case_ids)} case(s)[/dim]")
