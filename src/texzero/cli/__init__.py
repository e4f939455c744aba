"""Command-line interface for texzero.

Provides commands for:
- Inspecting the format capability table
- Listing the generated test cases
- Running cases on the simulated device
"""

from __future__ import annotations

# Load .env file BEFORE any texzero imports (constants reads env vars at import time)
from dotenv import load_dotenv

load_dotenv()  # Loads from .env in current directory or parents

# ruff: noqa: E402 - imports must come after load_dotenv()
import os
from typing import Annotated

import typer

from texzero import __version__
from texzero.cli.display import JSON_OUTPUT_ENV_VAR, console
from texzero.logging import VERBOSITY_ENV_VAR, VerbosityType, setup_logging

app = typer.Typer(
    name="texzero",
    help="Texture zero-initialization conformance oracle",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"texzero v{__version__}")
        raise typer.Exit()


@app.callback()  # type: ignore[misc]
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable full logs with timestamps")
    ] = False,
    quiet: Annotated[
        bool, typer.Option("--quiet", "-q", help="Minimal output (warnings only)")
    ] = False,
    json_output: Annotated[
        bool, typer.Option("--json", help="Output results as JSON (machine-readable)")
    ] = False,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Also write debug logs, tagged by case, to this file"),
    ] = None,
) -> None:
    """Texture zero-initialization conformance oracle."""
    verbosity: VerbosityType
    if quiet:
        verbosity = "quiet"
    elif verbose:
        verbosity = "verbose"
    else:
        verbosity = "normal"

    os.environ[VERBOSITY_ENV_VAR] = verbosity
    # Subcommands check this to switch their output
    os.environ[JSON_OUTPUT_ENV_VAR] = "true" if json_output else "false"
    setup_logging(verbosity=verbosity, json_output=json_output, log_file=log_file)


def _register_commands() -> None:
    """Register all commands with the app.

    Done in a function to control import order and avoid circular imports.
    """
    from texzero.cli import formats, listing, run

    app.command("formats")(formats.formats_cmd)
    app.command("list")(listing.list_cmd)
    app.command("run")(run.run_cmd)


_register_commands()


__all__ = ["app", "console", "main"]

if __name__ == "__main__":
    app()
