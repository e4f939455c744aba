"""texzero formats: show the format capability table."""

from __future__ import annotations

from typing import Annotated

import typer

from texzero.cli.display import json_output_enabled, print_formats_table, print_json
from texzero.texture.formats import FORMAT_INFO


def formats_cmd(
    kind: Annotated[
        str | None,
        typer.Option("--kind", "-k", help="Only show 'color', 'depth' or 'stencil' formats"),
    ] = None,
) -> None:
    """List texture formats and what the device may do with them."""
    formats = list(FORMAT_INFO.values())
    if kind is not None:
        if kind not in ("color", "depth", "stencil"):
            raise typer.BadParameter("expected 'color', 'depth' or 'stencil'", param_hint="--kind")
        formats = [info for info in formats if kind in info.aspects]

    if json_output_enabled():
        print_json(
            [
                {
                    "name": info.name,
                    "aspects": list(info.aspects),
                    "renderable": info.renderable,
                    "blendable": info.blendable,
                    "copy_src": info.copy_src,
                    "copy_dst": info.copy_dst,
                    "storage": info.storage,
                    "multisample": info.multisample,
                    "feature": info.feature,
                }
                for info in formats
            ]
        )
        return

    print_formats_table(formats)
