import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from tree_sitter import Node
from tree_sitter_language_pack import get_parser

from zzgen.core.errors import FormatError, ParseError, PatchError
from zzgen.core.imports import Import, Imports
from zzgen.core.module import is_standard_import_path
from zzgen.core.source import SourceUnit, parse_source

logger = logging.getLogger(__name__)


class Span(NamedTuple):
    start_byte: int
    end_byte: int

    @classmethod
    def of(cls, node: Node) -> "Span":
        return cls(node.start_byte, node.end_byte)


def _raw_string_spans(root: Node) -> list[Span]:
    spans: list[Span] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "raw_string_literal":
            spans.append(Span.of(node))
        elif node.child_count:
            stack.extend(node.children)
    spans.sort()
    return spans


def _canonical_layout(data: bytes, protected: list[Span]) -> bytes:
    """Strip trailing blanks, collapse blank-line runs and end with one newline.

    Lines whose newline sits inside a raw string literal are left untouched.
    """
    out: list[bytes] = []
    blank_run = True  # drops leading blank lines
    span_idx = 0
    pos = 0
    size = len(data)
    while pos <= size:
        nl = data.find(b"\n", pos)
        end = size if nl < 0 else nl
        line = data[pos:end]

        while span_idx < len(protected) and protected[span_idx].end_byte <= end:
            span_idx += 1
        inside = span_idx < len(protected) and protected[span_idx].start_byte < end < protected[span_idx].end_byte

        if inside:
            out.append(line)
            blank_run = False
        else:
            line = line.rstrip(b" \t\r")
            if line:
                out.append(line)
                blank_run = False
            elif not blank_run:
                out.append(line)
                blank_run = True

        if nl < 0:
            break
        pos = nl + 1

    while out and not out[-1]:
        out.pop()
    return b"\n".join(out) + b"\n"


def format_source(data: bytes, gofmt: str | None = None, path: str = "<buffer>") -> bytes:
    """Validate and lay out Go source.

    The buffer must parse cleanly. ``gofmt`` names a formatter binary to pipe through;
    without one a built-in canonical layout is applied.
    """
    tree = get_parser("go").parse(data)
    if tree.root_node.has_error:
        raise FormatError(path, "rewritten source does not parse", data)

    if gofmt:
        try:
            result = subprocess.run([gofmt], input=data, capture_output=True, check=False)
        except OSError as exc:
            raise FormatError(path, f"cannot run {gofmt}: {exc}", data) from exc
        if result.returncode != 0:
            raise FormatError(path, result.stderr.decode("utf-8", errors="replace").strip(), data)
        return result.stdout

    return _canonical_layout(data, _raw_string_spans(tree.root_node))


def _write_atomic(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(f".{path.name}.zzgen-tmp")
    try:
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise PatchError(str(path), f"cannot write: {exc}") from exc


def _line_start(data: bytes, pos: int) -> int:
    return data.rfind(b"\n", 0, pos) + 1


def _line_end(data: bytes, pos: int) -> int:
    nl = data.find(b"\n", pos)
    return len(data) if nl < 0 else nl


_BLANK_LINE = re.compile(rb"\n[ \t]*\n")


def _import_spec_list(unit: SourceUnit) -> Node | None:
    """Last parenthesised import list new imports can be added to.

    Lists holding the cgo ``"C"`` import and one-line lists with comments are skipped.
    """
    for decl in reversed(unit.import_declarations):
        spec_list = next((c for c in decl.named_children if c.type == "import_spec_list"), None)
        if spec_list is None:
            continue
        specs = [c for c in spec_list.named_children if c.type == "import_spec"]
        if any(unit.spec_import(s).path == "C" for s in specs):
            continue
        one_line = spec_list.start_point[0] == spec_list.end_point[0]
        if one_line and any(c.type == "comment" for c in spec_list.named_children):
            continue
        return spec_list
    return None


def _spec_groups(unit: SourceUnit, specs: list[Node]) -> list[list[Node]]:
    """Split import specs into runs separated by blank lines."""
    groups = [[specs[0]]]
    for prev, spec in zip(specs, specs[1:]):
        lead = unit.comments.lead(spec)
        start = lead[0].start_byte if lead else spec.start_byte
        if _BLANK_LINE.search(unit.data, prev.end_byte, start):
            groups.append([spec])
        else:
            groups[-1].append(spec)
    return groups


def _pick_group(unit: SourceUnit, groups: list[list[Node]], path: str) -> list[Node]:
    standard = is_standard_import_path(path)
    matching = [g for g in groups if is_standard_import_path(unit.spec_import(g[0]).path) == standard]
    if not matching:
        return groups[-1]
    return matching[0] if standard else matching[-1]


def _insertion(unit: SourceUnit, group: list[Node], item: Import) -> tuple[int, bytes]:
    """Position and text placing ``item`` in path order within ``group``."""
    data = unit.data
    spec = item.spec().encode("utf-8")
    for anchor in group:
        if unit.spec_import(anchor).path <= item.path:
            continue
        lead = unit.comments.lead(anchor)
        start = lead[0].start_byte if lead else anchor.start_byte
        line_start = _line_start(data, start)
        indent = data[line_start:start]
        if indent.strip():
            return anchor.start_byte, spec + b"; "
        return line_start, indent + spec + b"\n"

    last = group[-1]
    close = last.parent.children[-1] if last.parent is not None else None
    if close is not None and close.start_point[0] == last.end_point[0]:
        return last.end_byte, b"; " + spec
    line_start = _line_start(data, last.start_byte)
    indent = data[line_start : last.start_byte]
    if indent.strip():
        indent = b"\t"
    return _line_end(data, last.end_byte) + 1, indent + spec + b"\n"


@dataclass(eq=False)
class FileEdit:
    """Pending changes to one Go file: imports to add and raw byte replacements."""

    filename: str
    imports: Imports | None = None
    nodes: dict[Span, bytes] = field(default_factory=dict)

    def replace(self, target: Node | Span, data: bytes | str) -> None:
        span = target if isinstance(target, Span) else Span.of(target)
        self.nodes[span] = data.encode("utf-8") if isinstance(data, str) else data

    def apply(self, gofmt: str | None = None) -> bytes:
        """Rewrite the file on disk and return its new content.

        The file is left untouched when any edit is invalid or the result does not format.
        """
        path = Path(self.filename)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise PatchError(self.filename, f"cannot read: {exc}") from exc
        try:
            unit = parse_source(self.filename, data)
        except ParseError as exc:
            raise PatchError(self.filename, str(exc)) from exc

        edits: list[tuple[int, int, bytes]] = []
        for span, replacement in self.nodes.items():
            if not 0 <= span.start_byte <= span.end_byte <= len(data):
                raise PatchError(self.filename, f"span {span.start_byte}:{span.end_byte} out of bounds")
            edits.append((span.start_byte, span.end_byte, replacement))

        if self.imports is not None:
            edits.extend(self._import_edits(unit))

        edits.sort(key=lambda e: (e[0], e[1]))
        for (_, prev_end, _), (start, end, _) in zip(edits, edits[1:]):
            if prev_end > start:
                raise PatchError(self.filename, f"overlapping edits at byte {start}")

        buffer = data
        for start, end, replacement in reversed(edits):
            buffer = buffer[:start] + replacement + buffer[end:]

        formatted = format_source(buffer, gofmt, self.filename)
        _write_atomic(path, formatted)
        logger.debug("Rewrote %s (%d edits)", self.filename, len(edits))
        return formatted

    def _import_edits(self, unit: SourceUnit) -> list[tuple[int, int, bytes]]:
        """Edits adding the imports ``unit`` lacks. Existing declarations keep their text."""
        existing = set(unit.imports().paths())
        added = sorted((i for i in self.imports or () if i.path not in existing), key=lambda i: (i.path, i.name))
        if not added:
            return []

        data = unit.data
        spec_list = _import_spec_list(unit)
        if spec_list is None:
            if unit.import_declarations:
                pos = _line_end(data, unit.import_declarations[-1].end_byte)
            elif unit.package_node is not None:
                pos = _line_end(data, (unit.package_node.parent or unit.package_node).end_byte)
            else:
                raise PatchError(self.filename, "no package clause")
            return [(pos, pos, b"\n\n" + Imports(added).render().encode("utf-8"))]

        specs = [c for c in spec_list.named_children if c.type == "import_spec"]
        decl = spec_list.parent or spec_list
        if spec_list.start_point[0] == spec_list.end_point[0]:
            block = Imports([*(unit.spec_import(s) for s in specs), *added]).render()
            return [(decl.start_byte, decl.end_byte, block.encode("utf-8"))]
        if not specs:
            pos = _line_start(data, spec_list.children[-1].start_byte)
            return [(pos, pos, b"".join(f"\t{i.spec()}\n".encode("utf-8") for i in added))]

        groups = _spec_groups(unit, specs)
        inserts: dict[int, bytes] = {}
        for item in added:
            pos, text = _insertion(unit, _pick_group(unit, groups, item.path), item)
            inserts[pos] = inserts.get(pos, b"") + text
        return [(pos, pos, text) for pos, text in inserts.items()]


class ModifySet(dict[str, FileEdit]):
    """Pending edits keyed by absolute filename, applied in insertion order."""

    def add(self, filename: str | Path) -> FileEdit:
        key = str(Path(filename).absolute())
        edit = self.get(key)
        if edit is None:
            edit = self[key] = FileEdit(filename=key)
        return edit

    def apply(self, gofmt: str | None = None) -> None:
        for edit in self.values():
            edit.apply(gofmt)
        logger.info("Applied edits to %d files", len(self))
