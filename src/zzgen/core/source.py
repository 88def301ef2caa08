import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from functools import cache
from pathlib import Path

from tree_sitter import Node, Query, QueryCursor, Tree
from tree_sitter_language_pack import get_language, get_parser

from zzgen.core.cache import Caches
from zzgen.core.comments import CommentIndex
from zzgen.core.errors import ParseError
from zzgen.core.imports import Import, Imports

logger = logging.getLogger(__name__)

GO_SUFFIX = ".go"
GO_TEST_SUFFIX = "_test.go"

SPEC_TYPES = frozenset({"type_spec", "type_alias", "var_spec", "const_spec"})
DECLARATION_TYPES = frozenset(
    {"function_declaration", "method_declaration", "type_declaration", "var_declaration", "const_declaration"}
)


class SymbolKind(Enum):
    TYPE = "type"
    FUNC = "func"
    VAR = "var"
    CONST = "const"


@dataclass(frozen=True)
class Symbol:
    name: str
    kind: SymbolKind
    node: Node


@cache
def _load_query(query_type: str) -> Query:
    query_path = Path(__file__).parent.parent / "queries" / f"go_{query_type}.scm"
    if not query_path.exists():
        raise FileNotFoundError(f"Query file not found: {query_path}")
    return Query(get_language("go"), query_path.read_text(encoding="utf-8"))


def is_go_file(path: str | Path) -> bool:
    return str(path).endswith(GO_SUFFIX)


def is_test_file(path: str | Path) -> bool:
    return str(path).endswith(GO_TEST_SUFFIX)


def fingerprint(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def unquote_string_literal(literal: str) -> str:
    if len(literal) >= 2 and literal[0] == literal[-1] and literal[0] in "\"`":
        return literal[1:-1]
    return literal


def declaration_specs(declaration: Node) -> tuple[list[Node], bool]:
    """Return the specs of a type/var/const declaration and whether they sit in parentheses."""
    specs: list[Node] = []
    grouped = False
    for child in declaration.children:
        if child.type == "(":
            grouped = True
        elif child.type in SPEC_TYPES:
            specs.append(child)
        elif child.type.endswith("_spec_list"):
            grouped = True
            specs.extend(c for c in child.named_children if c.type in SPEC_TYPES)
    return specs, grouped


def name_nodes(node: Node) -> list[Node]:
    """Named children in the ``name`` field (identifier lists also carry the comma tokens)."""
    return [n for n in node.children_by_field_name("name") if n.is_named]


def _first_error(root: Node) -> Node:
    node = root
    while True:
        for child in node.children:
            if child.type == "ERROR" or child.is_missing:
                return child
            if child.has_error:
                node = child
                break
        else:
            return node


class SourceUnit:
    """One parsed Go file: its declaration tree, imports and top-level scope."""

    def __init__(self, path: str, data: bytes, tree: Tree) -> None:
        self.path = path
        self.data = data
        self.tree = tree
        self.fingerprint = fingerprint(data)

        self.package = ""
        self.package_node: Node | None = None
        self.import_declarations: list[Node] = []
        specs: list[Node] = []

        cursor = QueryCursor(_load_query("source"))
        for _, captures in cursor.matches(tree.root_node):
            if "package.name" in captures:
                self.package_node = captures["package.name"][0]
                self.package = self.text(self.package_node)
            self.import_declarations.extend(captures.get("import.declaration", []))
            specs.extend(captures.get("import.spec", []))

        self.import_declarations.sort(key=lambda n: n.start_byte)
        specs.sort(key=lambda n: n.start_byte)
        self._imports = tuple(self.spec_import(spec) for spec in specs)
        self._symbols = self._build_scope()
        self._comments: CommentIndex | None = None

    def __repr__(self) -> str:
        return f"SourceUnit({self.path!r}, package={self.package!r})"

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def comments(self) -> CommentIndex:
        if self._comments is None:
            self._comments = CommentIndex(self.root, self.data)
        return self._comments

    def text(self, node: Node) -> str:
        return self.data[node.start_byte : node.end_byte].decode("utf-8")

    def imports(self) -> Imports:
        """Return a fresh, mutable copy of the file's imports."""
        return Imports(Import(path=i.path, name=i.name) for i in self._imports)

    def declarations(self) -> list[Node]:
        return [n for n in self.root.named_children if n.type in DECLARATION_TYPES]

    def lookup(self, name: str) -> Symbol | None:
        return self._symbols.get(name)

    def symbols(self) -> list[Symbol]:
        return list(self._symbols.values())

    def spec_import(self, spec: Node) -> Import:
        name_node = spec.child_by_field_name("name")
        path_node = spec.child_by_field_name("path")
        path = unquote_string_literal(self.text(path_node)) if path_node is not None else ""
        return Import(path=path, name=self.text(name_node) if name_node is not None else "")

    def _build_scope(self) -> dict[str, Symbol]:
        scope: dict[str, Symbol] = {}

        def declare(name_node: Node | None, kind: SymbolKind, node: Node) -> None:
            if name_node is None:
                return
            name = self.text(name_node)
            if name != "_" and name not in scope:
                scope[name] = Symbol(name=name, kind=kind, node=node)

        for decl in self.declarations():
            if decl.type == "function_declaration":
                declare(decl.child_by_field_name("name"), SymbolKind.FUNC, decl)
            elif decl.type == "type_declaration":
                for spec in declaration_specs(decl)[0]:
                    declare(spec.child_by_field_name("name"), SymbolKind.TYPE, spec)
            elif decl.type in ("var_declaration", "const_declaration"):
                kind = SymbolKind.VAR if decl.type == "var_declaration" else SymbolKind.CONST
                for spec in declaration_specs(decl)[0]:
                    for name_node in name_nodes(spec):
                        declare(name_node, kind, spec)
        return scope


def parse_source(path: str, data: bytes) -> SourceUnit:
    tree = get_parser("go").parse(data)
    root = tree.root_node
    if root.has_error:
        error = _first_error(root)
        raise ParseError(path, f"syntax error at {error.start_point[0] + 1}:{error.start_point[1] + 1}")
    unit = SourceUnit(path, data, tree)
    if unit.package_node is None:
        raise ParseError(path, "expected 'package' clause")
    logger.debug("Parsed %s (package %s, %d imports)", path, unit.package, len(unit.imports()))
    return unit


def load_source_unit(caches: Caches, path: str | Path, data: bytes | None = None) -> SourceUnit:
    """Parse ``path`` or return the cached unit when its content is unchanged."""
    resolved = str(Path(path).resolve())
    if data is None:
        data = Path(resolved).read_bytes()
    unit: SourceUnit = caches.units.load(resolved, fingerprint(data), lambda: parse_source(resolved, data))
    return unit
