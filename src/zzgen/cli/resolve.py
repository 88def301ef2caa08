from typing import Annotated

import typer

from zzgen.cli.context import get_context
from zzgen.cli.output import console, echo_json, fail
from zzgen.core.module import ModuleResolver
from zzgen.models import ImportSummary, TypeSummary

resolve_app = typer.Typer(help="Resolve import paths, package names and types.")


@resolve_app.command("import")
def import_(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="File or directory, existing or not.")] = ".",
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """Show the import path and package name of a file or directory."""
    state = get_context(ctx)
    resolver = ModuleResolver(state.caches, state.settings)
    summary = ImportSummary(
        path=path,
        import_path=resolver.import_path(path),
        import_name=resolver.import_name(path),
        mod_file=resolver.mod_file(path),
    )
    if json_output:
        echo_json(summary)
        return
    console.print(f"import path: {summary.import_path or '-'}")
    console.print(f"package:     {summary.import_name or '-'}")
    console.print(f"go.mod:      {summary.mod_file or '-'}")


@resolve_app.command("type")
def type_(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Type name to look up.")],
    pkg: Annotated[str | None, typer.Option("--pkg", help="Import path of the declaring package.")] = None,
    directory: Annotated[str, typer.Option("--dir", help="Directory to resolve from.")] = ".",
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """Follow a type name to its concrete type expression."""
    state = get_context(ctx)
    resolver = ModuleResolver(state.caches, state.settings)
    pkg_path = pkg or resolver.import_path(directory)
    resolved = resolver.lookup_type_spec(name, directory, pkg_path)
    if resolved is None:
        raise fail(f"Type {name} not found in {pkg_path or directory}")

    summary = TypeSummary.from_resolved(name, pkg_path, resolved)
    if json_output:
        echo_json(summary)
        return
    console.print(f"{summary.package_path}.{summary.name}: {summary.kind} ({summary.path}:{summary.start_point.row + 1})")
    console.print(summary.text, markup=False, highlight=False)
