from typing import Annotated

import typer

from zzgen.cli.context import get_context
from zzgen.cli.output import echo_json, fail, render_table
from zzgen.core.errors import ZzgenError
from zzgen.core.plugins import CollectPlugin, PluginEntity, registry
from zzgen.core.text import split_kv_list
from zzgen.models import EntitySummary


def bind(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Plugin name the annotations start with.")],
    path: Annotated[str, typer.Argument(help="Go file or directory to scan.")] = ".",
    args: Annotated[int | None, typer.Option("--args", min=0, help="Positional argument count.")] = None,
    option: Annotated[list[str] | None, typer.Option("--option", "-o", help="Extra option as key=value.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")] = False,
) -> None:
    """Bind annotations to a plugin name and show the resulting entities.

    A registered plugin contributes its own argument count unless --args is given.
    """
    state = get_context(ctx)
    registered = registry.get(name)
    if args is None:
        args = len(registered.args()[0]) if registered else 0
    options = split_kv_list(option or [], "=", {})

    plugin = CollectPlugin(name=name, arg_names=[f"arg{i}" for i in range(args)])
    try:
        entities = PluginEntity(plugin, options).run(
            state.caches, path, state.settings.prefix, state.settings.workers
        )
    except (ZzgenError, OSError) as exc:
        raise fail(str(exc)) from exc

    summaries = [EntitySummary.from_entity(e, e.parse_fields(args, options)) for e in entities]
    if json_output:
        echo_json(summaries)
        return

    rows = [
        (
            s.name or "-",
            s.kind,
            ":".join(s.args),
            ", ".join(f"{k}={v}" for k, v in sorted(s.options.items())),
            len(s.fields),
        )
        for s in summaries
    ]
    render_table(["name", "kind", "args", "options", "fields"], rows, title=name)
