from pathlib import Path
from typing import Annotated

import typer

from zzgen.cli.context import get_context
from zzgen.cli.output import console, echo_json, fail, render_table
from zzgen.core.decls import parse_file_or_directory
from zzgen.core.errors import ZzgenError
from zzgen.models import DeclSummary


def scan(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Go file or directory to scan.")] = ".",
    prefix: Annotated[str | None, typer.Option(help="Annotation prefix (defaults to ZZGEN_PREFIX).")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")] = False,
) -> None:
    """List annotated declarations."""
    state = get_context(ctx)
    try:
        decls = parse_file_or_directory(
            state.caches, path, prefix or state.settings.prefix, state.settings.workers
        )
    except (ZzgenError, OSError) as exc:
        raise fail(str(exc)) from exc

    if json_output:
        echo_json([DeclSummary.from_decl(d) for d in decls])
        return

    cwd = Path.cwd()
    rows = []
    for decl in decls:
        location = Path(decl.unit.path)
        if location.is_relative_to(cwd):
            location = location.relative_to(cwd)
        rows.append(
            (
                f"{location}:{decl.node.start_point[0] + 1}",
                decl.kind.name.lower(),
                decl.name or "-",
                "; ".join(decl.annotations),
                len(decl.fields),
            )
        )
    render_table(["location", "kind", "name", "annotations", "fields"], rows)
    if names := decls.plugin_names():
        console.print(f"Plugins referenced: {', '.join(names)}")
