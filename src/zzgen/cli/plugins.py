from typing import Annotated

import typer

from zzgen.cli.output import echo_json, render_table
from zzgen.core.plugins import registry
from zzgen.models import PluginSummary


def plugins(
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")] = False,
) -> None:
    """List registered plugins."""
    summaries = [PluginSummary.from_plugin(p) for p in registry]
    if json_output:
        echo_json(summaries)
        return
    rows = [(s.name, s.description, ", ".join(s.args), ", ".join(s.options)) for s in summaries]
    render_table(["name", "description", "args", "options"], rows)
