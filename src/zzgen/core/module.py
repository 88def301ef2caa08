import logging
import re
import subprocess
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from tree_sitter import Node

from zzgen.config import Settings
from zzgen.core.cache import Caches
from zzgen.core.errors import CommandError, ParseError
from zzgen.core.imports import Imports
from zzgen.core.source import SourceUnit, SymbolKind, fingerprint, is_go_file, is_test_file, load_source_unit
from zzgen.core.text import trim_prefix

logger = logging.getLogger(__name__)

GO_MOD = "go.mod"

_MODULE_DIRECTIVE = re.compile(rb"^\s*module\s+(\"[^\"]*\"|`[^`]*`|\S+)", re.MULTILINE)
_IMPORT_NAME_TABLE = str.maketrans({"-": "_", ".": "_"})


def run_command(command: list[str], cwd: str | Path | None = None) -> str:
    """Run ``command`` in ``cwd`` and return its stripped stdout."""
    try:
        result = subprocess.run(command, cwd=cwd, check=False, capture_output=True, text=True)
    except OSError as exc:
        raise CommandError(command, str(exc), str(cwd) if cwd else None) from exc
    if result.returncode != 0:
        raise CommandError(command, result.stderr.strip(), str(cwd) if cwd else None)
    return result.stdout.strip()


def find_mod_file(directory: str | Path) -> str:
    """Return the nearest ``go.mod`` at or above ``directory``, or ``""``."""
    current = Path(directory).resolve()
    for candidate in (current, *current.parents):
        mod_file = candidate / GO_MOD
        if mod_file.is_file():
            return str(mod_file)
    return ""


def parse_module_name(data: bytes) -> str:
    match = _MODULE_DIRECTIVE.search(data)
    if match is None:
        return ""
    name = match.group(1).decode("utf-8")
    if name[0] in "\"`":
        name = name[1:-1]
    return name


def is_standard_import_path(path: str) -> bool:
    """Standard library import paths have no dot in their first element."""
    return "." not in path.split("/", 1)[0]


def is_exported(name: str) -> bool:
    return bool(name) and name[0].isupper()


def _existing_ancestor(path: Path) -> Path:
    current = path
    while not current.exists() and current != current.parent:
        current = current.parent
    return current


def _target_dir(filename: str | Path) -> Path:
    """Directory a file or directory name refers to, existing or not."""
    path = Path(filename or ".").absolute()
    if path.is_dir() or not is_go_file(path):
        return path
    return path.parent


@dataclass(frozen=True)
class ResolvedType:
    """Concrete type expression found by ``lookup_type_spec`` and the unit that declares it."""

    expr: Node
    unit: SourceUnit

    @property
    def kind(self) -> str:
        return self.expr.type


class ModuleResolver:
    """Resolves package names, import paths and types across module boundaries.

    Results are cached in ``caches``; unresolvable lookups yield ``""`` or ``None``.
    """

    def __init__(self, caches: Caches, settings: Settings | None = None) -> None:
        self.caches = caches
        self.go_binary = settings.go_binary if settings else "go"
        self._import_path_lock = threading.Lock()

    def mod_file(self, directory: str | Path) -> str:
        key = str(Path(directory).absolute())
        return self.caches.mod_file.load_string(key, lambda: find_mod_file(key))

    def module_name(self, mod_file: str) -> str:
        if not mod_file:
            return ""
        try:
            data = Path(mod_file).read_bytes()
        except OSError as exc:
            logger.debug("Cannot read %s: %s", mod_file, exc)
            return ""
        return self.caches.modules.load(mod_file, fingerprint(data), lambda: parse_module_name(data))

    def import_path(self, filename: str | Path) -> str:
        """Import path of a file or directory, computed from its module even if it does not exist yet."""
        directory = _target_dir(filename)
        with self._import_path_lock:
            return self.caches.import_path.load_string(str(directory), lambda: self._compute_import_path(directory))

    def _compute_import_path(self, directory: Path) -> str:
        mod_file = self.mod_file(_existing_ancestor(directory))
        module = self.module_name(mod_file)
        if not module:
            logger.debug("No module found for %s", directory)
            return ""
        mod_dir = Path(mod_file).parent
        try:
            rel = directory.resolve().relative_to(mod_dir.resolve())
        except ValueError:
            return ""
        return "/".join((module, *rel.parts))

    def import_name(self, filename: str | Path) -> str:
        """Package name of a file or directory; guessed from its import path if it has no Go files."""
        directory = _target_dir(filename)
        return self.caches.import_name.load_string(str(directory), lambda: self._compute_import_name(directory))

    def _compute_import_name(self, directory: Path) -> str:
        for unit in self._package_units(directory):
            return unit.package
        if import_path := self.import_path(directory):
            return import_path.rsplit("/", 1)[-1].translate(_IMPORT_NAME_TABLE)
        return directory.name.translate(_IMPORT_NAME_TABLE)

    def package_dir(self, pkg: str, directory: str | Path) -> str:
        """Directory holding the sources of import path ``pkg``, as seen from ``directory``."""
        key = f"{pkg}#{Path(directory).absolute()}"
        return self.caches.import_package_dir.load_string(key, lambda: self._compute_package_dir(pkg, directory))

    def _compute_package_dir(self, pkg: str, directory: str | Path) -> str:
        mod_file = self.mod_file(_existing_ancestor(Path(directory).absolute()))
        module = self.module_name(mod_file)
        if module:
            rel, inside = trim_prefix(pkg, module)
            if inside and (not rel or rel.startswith("/")):
                candidate = Path(mod_file).parent.joinpath(*[p for p in rel.split("/") if p])
                return str(candidate) if candidate.is_dir() else ""
        return self._go_list(pkg, directory, "{{.Dir}}")

    def package_name(self, pkg: str, directory: str | Path) -> str:
        key = f"{pkg}#{Path(directory).absolute()}"
        return self.caches.import_package_name.load_string(key, lambda: self._compute_package_name(pkg, directory))

    def _compute_package_name(self, pkg: str, directory: str | Path) -> str:
        pkg_dir = self.package_dir(pkg, directory)
        if pkg_dir:
            for unit in self._package_units(Path(pkg_dir)):
                return unit.package
        return self._go_list(pkg, directory, "{{.Name}}")

    def _go_list(self, pkg: str, directory: str | Path, template: str) -> str:
        try:
            return run_command([self.go_binary, "list", "-f", template, pkg], cwd=_existing_ancestor(Path(directory)))
        except CommandError as exc:
            logger.debug("go list %s failed: %s", pkg, exc)
            return ""

    def _package_units(self, directory: Path) -> Iterator[SourceUnit]:
        """Parse the non-test Go files of one package directory lazily, in lexical order."""
        if not directory.is_dir():
            return
        for path in sorted(directory.iterdir()):
            if not path.is_file() or not is_go_file(path) or is_test_file(path):
                continue
            try:
                yield load_source_unit(self.caches, path)
            except ParseError as exc:
                logger.warning("Skipping unparsable package file: %s", exc)

    def lookup_type_spec(self, name: str, directory: str | Path, pkg_path: str) -> ResolvedType | None:
        """Find the concrete type behind ``name`` in package ``pkg_path``.

        Aliases and named references are followed into their own package; the first
        non-reference type expression is returned. Unresolvable names and reference
        cycles yield ``None``.
        """
        return self._lookup_type_spec(name, directory, pkg_path, set())

    def _lookup_type_spec(
        self, name: str, directory: str | Path, pkg_path: str, seen: set[tuple[str, str]]
    ) -> ResolvedType | None:
        if not pkg_path or (pkg_path, name) in seen:
            return None
        seen.add((pkg_path, name))

        pkg_dir = self.package_dir(pkg_path, directory)
        if not pkg_dir:
            return None

        for unit in self._package_units(Path(pkg_dir)):
            symbol = unit.lookup(name)
            if symbol is None:
                continue
            if symbol.kind is not SymbolKind.TYPE:
                return None
            expr = symbol.node.child_by_field_name("type")
            if expr is None:
                return None
            if expr.type == "qualified_type":
                package = expr.child_by_field_name("package")
                target = expr.child_by_field_name("name")
                if package is None or target is None:
                    return None
                import_path = unit.imports().which(unit.text(package))
                return self._lookup_type_spec(unit.text(target), directory, import_path, seen)
            if expr.type == "type_identifier":
                return self._lookup_type_spec(unit.text(expr), directory, pkg_path, seen)
            return ResolvedType(expr=expr, unit=unit)
        return None


def fix_package(name: str, src_import_path: str, dst_import_path: str, src_imports: Imports, dst_imports: Imports) -> str:
    """Rewrite a type name used in package ``src_import_path`` for use in ``dst_import_path``.

    ``dst_imports`` receives any import the rewritten name needs. A leading ``*`` is kept.
    """
    bare, is_pointer = trim_prefix(name, "*")
    ptr = "*" if is_pointer else ""

    qualifier, dot, ident = bare.partition(".")
    if not dot:
        if is_exported(bare) and src_import_path != dst_import_path:
            return f"{ptr}{dst_imports.add(src_import_path)}.{bare}"
        return ptr + bare

    pkg_import_path = src_imports.which(qualifier)
    if pkg_import_path == dst_import_path:
        return ptr + ident
    if not pkg_import_path:
        return ptr + bare
    return f"{ptr}{dst_imports.add(pkg_import_path)}.{ident}"

