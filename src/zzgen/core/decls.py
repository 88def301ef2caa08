import logging
import os
import re
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path

from tree_sitter import Node

from zzgen.core.cache import Caches
from zzgen.core.entity import (
    ANNOTATION_SEPARATOR,
    DeclEntities,
    DeclEntity,
    FieldEntities,
    FieldEntity,
    parse_annotation,
)
from zzgen.core.module import find_mod_file
from zzgen.core.ports.plugin import Plugin
from zzgen.core.source import SourceUnit, declaration_specs, is_go_file, load_source_unit, name_nodes
from zzgen.core.text import KeySet
from zzgen.core.typeexpr import interface_methods, struct_fields

logger = logging.getLogger(__name__)

# Directory names never descended into while walking a tree.
SKIP_DIRS = frozenset({"vendor", "node_modules", "testdata"})

# {package}, {name}, {filename} and their template forms {{ .Package }}, {{ .Name }}, {{ .Filename }}.
_FILENAME_PLACEHOLDER = re.compile(r"\{\{\s*\.(Package|Name|Filename)\s*\}\}|\{(package|name|filename)\}")


class DeclKind(IntEnum):
    INTERFACE = 1  # type T interface{}
    STRUCT = 2  # type T struct{}
    MAP = 3  # type T map[string]string
    ARRAY = 4  # type T []string
    FUNC_TYPE = 5  # type T func()
    REFER = 6  # type T T2, type T = T2
    FUNC = 7  # func Fn()
    VALUE = 8  # var v = 1, const c = 1


_TYPE_KINDS = {
    "interface_type": DeclKind.INTERFACE,
    "struct_type": DeclKind.STRUCT,
    "map_type": DeclKind.MAP,
    "slice_type": DeclKind.ARRAY,
    "array_type": DeclKind.ARRAY,
    "implicit_length_array_type": DeclKind.ARRAY,
    "function_type": DeclKind.FUNC_TYPE,
    "type_identifier": DeclKind.REFER,
    "qualified_type": DeclKind.REFER,
    "pointer_type": DeclKind.REFER,
}


@dataclass(eq=False)
class AnnotatedField:
    decl: "AnnotatedDecl"
    node: Node
    docs: list[str] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [self.decl.unit.text(n) for n in name_nodes(self.node)]

    @property
    def name(self) -> str:
        names = self.names
        return names[0] if names else ""

    def parse(self, name: str, args_count: int, ext_options: Mapping[str, str] | None = None) -> FieldEntities:
        entities = FieldEntities()
        for annotation in self.annotations:
            parsed = parse_annotation(annotation, name, args_count, ext_options)
            if parsed is None:
                continue
            args, options = parsed
            entities.append(FieldEntity(annotated=self, args=args, options=options))
        return entities


@dataclass(eq=False)
class AnnotatedDecl:
    unit: SourceUnit
    kind: DeclKind
    node: Node
    docs: list[str] = field(default_factory=list)
    annotations: list[str] = field(default_factory=list)
    fields: list[AnnotatedField] = field(default_factory=list)

    @property
    def name(self) -> str:
        if self.kind is DeclKind.VALUE:
            names = name_nodes(self.node)
            return self.unit.text(names[0]) if len(names) == 1 else ""
        name_node = self.node.child_by_field_name("name")
        return self.unit.text(name_node) if name_node is not None else ""

    @property
    def type_node(self) -> Node | None:
        """Type expression of a type or value declaration."""
        if self.kind is DeclKind.FUNC:
            return None
        return self.node.child_by_field_name("type")

    @property
    def filename(self) -> str:
        return os.path.basename(self.unit.path)

    @property
    def package(self) -> str:
        return self.unit.package

    def rel_filename(self, filename: str, default_name: str = "") -> str:
        """Resolve an output filename for this declaration.

        ``{package}``, ``{name}`` and ``{filename}`` placeholders (or ``{{ .Package }}``,
        ``{{ .Name }}`` and ``{{ .Filename }}``) are substituted; any other braces are kept
        as written. A name without ``.go`` is treated as a directory holding ``default_name``.
        Absolute names are taken relative to the module root, others relative to the
        declaration's file.
        """
        values = {"package": self.package, "name": self.name, "filename": self.filename}
        filename = _FILENAME_PLACEHOLDER.sub(lambda m: values[(m.group(1) or m.group(2)).lower()], filename)

        if not filename.endswith(".go"):
            filename = os.path.join(filename, default_name.removesuffix(".go") + ".go")

        directory = os.path.dirname(self.unit.path)
        if os.path.isabs(filename):
            mod_file = find_mod_file(directory)
            root = os.path.dirname(mod_file) if mod_file else directory
            return os.path.join(root, filename.lstrip("/\\"))
        return os.path.join(directory, filename)

    def parse(self, name: str, args_count: int, ext_options: Mapping[str, str] | None = None) -> DeclEntities:
        entities = DeclEntities()
        for annotation in self.annotations:
            parsed = parse_annotation(annotation, name, args_count, ext_options)
            if parsed is None:
                continue
            args, options = parsed
            entities.append(DeclEntity(decl=self, plugin=name, args=args, options=options))
        return entities


class AnnotatedDecls(list[AnnotatedDecl]):
    def parse(self, plugin: Plugin, ext_options: Mapping[str, str] | None = None) -> DeclEntities:
        """Bind every matching annotation of every declaration to ``plugin``."""
        args, _ = plugin.args()
        entities = DeclEntities()
        for decl in self:
            entities.extend(decl.parse(plugin.name, len(args), ext_options))
        return entities

    def plugin_names(self) -> list[str]:
        """Sorted distinct plugin names referenced by the annotations."""
        names = KeySet()
        for decl in self:
            names.add([a.split(ANNOTATION_SEPARATOR, 1)[0] for a in decl.annotations])
            for annotated in decl.fields:
                names.add([a.split(ANNOTATION_SEPARATOR, 1)[0] for a in annotated.annotations])
        return names.keys()


def _parse_fields(decl: AnnotatedDecl, members: list[Node], prefix: str) -> None:
    comments = decl.unit.comments
    for member in members:
        if not name_nodes(member):
            continue
        docs, annotations = comments.split(prefix, comments.lead(member), comments.line(member))
        if annotations:
            decl.fields.append(AnnotatedField(decl=decl, node=member, docs=docs, annotations=annotations))


def parse_func_decl(unit: SourceUnit, node: Node, prefix: str) -> AnnotatedDecl | None:
    comments = unit.comments
    docs, annotations = comments.split(prefix, comments.lead(node))
    if not annotations:
        return None
    return AnnotatedDecl(unit=unit, kind=DeclKind.FUNC, node=node, docs=docs, annotations=annotations)


def parse_generic_decl(unit: SourceUnit, node: Node, prefix: str) -> list[AnnotatedDecl]:
    """Annotated specs of a ``type``, ``var`` or ``const`` declaration.

    Annotations on the declaration apply to every spec inside it. Its docs are kept only
    when it declares a single spec.
    """
    comments = unit.comments
    group_docs, group_annotations = comments.split(prefix, comments.lead(node))
    specs, grouped = declaration_specs(node)
    single = not grouped or len(specs) == 1

    decls: list[AnnotatedDecl] = []
    for spec in specs:
        docs, annotations = comments.split(prefix, comments.lead(spec) if grouped else [], comments.line(spec))
        annotations = group_annotations + annotations
        if not annotations:
            continue
        if single:
            docs = group_docs + docs

        if spec.type in ("var_spec", "const_spec"):
            decls.append(AnnotatedDecl(unit=unit, kind=DeclKind.VALUE, node=spec, docs=docs, annotations=annotations))
            continue

        type_node = spec.child_by_field_name("type")
        kind = _TYPE_KINDS.get(type_node.type) if type_node is not None else None
        if type_node is None or kind is None:
            continue

        decl = AnnotatedDecl(unit=unit, kind=kind, node=spec, docs=docs, annotations=annotations)
        if kind is DeclKind.INTERFACE:
            _parse_fields(decl, interface_methods(type_node), prefix)
        elif kind is DeclKind.STRUCT:
            _parse_fields(decl, struct_fields(type_node), prefix)
        decls.append(decl)
    return decls


def parse_unit_decls(unit: SourceUnit, prefix: str) -> AnnotatedDecls:
    decls = AnnotatedDecls()
    for node in unit.declarations():
        if node.type in ("function_declaration", "method_declaration"):
            if decl := parse_func_decl(unit, node, prefix):
                decls.append(decl)
        else:
            decls.extend(parse_generic_decl(unit, node, prefix))
    return decls


def parse_file_decls(caches: Caches, filename: str | Path, prefix: str) -> AnnotatedDecls:
    """Annotated declarations of one Go file.

    Files that are not Go sources or do not mention ``prefix`` yield nothing without being
    parsed. Results are memoised per file content.
    """
    path = Path(filename).resolve()
    if not is_go_file(path):
        return AnnotatedDecls()

    data = path.read_bytes()
    if prefix.encode("utf-8") not in data:
        return AnnotatedDecls()

    unit = load_source_unit(caches, path, data)
    decls: AnnotatedDecls = caches.decls.load(
        (unit.path, prefix), unit.fingerprint, lambda: parse_unit_decls(unit, prefix)
    )
    return decls


def walk_files(root: Path) -> Iterator[Path]:
    """Yield files below ``root`` pre-order in lexical order, pruning skipped directories."""
    with os.scandir(root) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            if entry.name in SKIP_DIRS or entry.name.startswith("."):
                continue
            yield from walk_files(Path(entry.path))
        else:
            yield Path(entry.path)


def parse_file_or_directory(
    caches: Caches,
    path: str | Path,
    prefix: str,
    workers: int | None = None,
) -> AnnotatedDecls:
    """Annotated declarations of a file, or of every file below a directory.

    Directory files are parsed in parallel; results keep walk order. The first parse
    failure aborts the walk.
    """
    target = Path(path)
    if not target.exists():
        raise FileNotFoundError(f"Path not found: {path}")
    if not target.is_dir():
        return parse_file_decls(caches, target, prefix)

    files = list(walk_files(target))
    decls = AnnotatedDecls()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="zzgen-parse") as pool:
        futures = [pool.submit(parse_file_decls, caches, f, prefix) for f in files]
        try:
            for future in futures:
                decls.extend(future.result())
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    logger.info("Found %d annotated declarations in %d files under %s", len(decls), len(files), target)
    return decls
