import logging
from typing import Annotated

import typer

from zzgen.cli.bind import bind
from zzgen.cli.context import CliContext
from zzgen.cli.plugins import plugins
from zzgen.cli.resolve import resolve_app
from zzgen.cli.scan import scan
from zzgen.config import get_settings
from zzgen.core.cache import Caches

app = typer.Typer(
    name="zzgen",
    help="zzgen CLI: inspect annotated Go declarations and resolve packages.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output.")] = False,
) -> None:
    settings = get_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    caches = Caches()
    caches.load(settings.cache_file)
    state = CliContext(settings=settings, caches=caches)
    ctx.obj = state
    ctx.call_on_close(state.flush)


app.command("scan")(scan)
app.command("bind")(bind)
app.add_typer(resolve_app, name="resolve")
app.command("plugins")(plugins)


def main() -> None:
    app()
