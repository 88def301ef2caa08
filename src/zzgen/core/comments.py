"""Go comment groups on top of a tree-sitter tree.

tree-sitter keeps comments as ``comment`` nodes wherever they occur, so attachment is
recomputed from line positions using the rules of ``go/parser``:

* comments separated by at most one newline form a group;
* a group that ends on the line right before a node, and does not begin on the same line
  as a preceding token, is that node's lead (doc) comment;
* comments that begin on a node's last line, after it, form its line comment.
"""

import re
from bisect import bisect_left
from collections.abc import Iterable, Sequence

from tree_sitter import Node

from zzgen.core.text import trim_prefix

_DIRECTIVE = re.compile(r"^[a-z0-9]+:[a-z0-9]")
_LINE_COMMENT_GAP = b" \t;,"


def is_directive(comment: str) -> bool:
    """Report whether a ``//`` comment body (without the slashes) is a tool directive."""
    if comment.startswith(("line ", "extern ", "export ")):
        return True
    return _DIRECTIVE.match(comment) is not None


def comment_text(comments: Sequence[Node], source: bytes) -> str:
    """Return the text of a comment group the way ``ast.CommentGroup.Text`` does."""
    lines: list[str] = []
    for node in comments:
        body = source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")
        if body.startswith("//"):
            body = body[2:]
            if body:
                if body[0] == " ":
                    body = body[1:]
                elif is_directive(body):
                    continue
        else:
            body = body[2:-2]
        lines.extend(line.rstrip(" \t\r\n") for line in body.split("\n"))

    kept: list[str] = []
    for line in lines:
        if line or (kept and kept[-1]):
            kept.append(line)
    if kept and kept[-1]:
        kept.append("")
    return "\n".join(kept)


def split_comment_groups(prefix: str, texts: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split comment group texts into documentation lines and annotation lines.

    A line whose trimmed text starts with ``prefix`` becomes an annotation with the prefix
    removed; all other lines stay documentation. With an empty prefix every line is docs.
    """
    docs: list[str] = []
    for text in texts:
        docs.extend(text.strip().split("\n"))

    if not prefix:
        return docs, []

    kept: list[str] = []
    annotations: list[str] = []
    for doc in docs:
        annotation, found = trim_prefix(doc.strip(), prefix)
        if found:
            annotations.append(annotation)
        else:
            kept.append(doc)
    return kept, annotations


def _collect_comments(root: Node) -> list[Node]:
    found: list[Node] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "comment":
            found.append(node)
        elif node.child_count:
            stack.extend(node.children)
    found.sort(key=lambda n: n.start_byte)
    return found


class CommentIndex:
    def __init__(self, root: Node, source: bytes) -> None:
        self._source = source
        self._comments = _collect_comments(root)
        self._starts = [c.start_byte for c in self._comments]
        self._own_line: list[bool] = []

        prev: Node | None = None
        for comment in self._comments:
            if prev is not None and prev.end_point[0] == comment.start_point[0]:
                gap = source[prev.end_byte : comment.start_byte]
                own = self._own_line[-1] and not gap.strip()
            else:
                line_start = source.rfind(b"\n", 0, comment.start_byte) + 1
                own = not source[line_start : comment.start_byte].strip()
            self._own_line.append(own)
            prev = comment

    def __len__(self) -> int:
        return len(self._comments)

    def lead(self, node: Node) -> list[Node]:
        group: list[Node] = []
        row = node.start_point[0]
        j = bisect_left(self._starts, node.start_byte) - 1
        while j >= 0 and self._own_line[j]:
            comment = self._comments[j]
            if group:
                if comment.end_point[0] + 1 < group[0].start_point[0]:
                    break
            elif comment.end_point[0] != row - 1:
                break
            group.insert(0, comment)
            j -= 1
        return group

    def line(self, node: Node) -> list[Node]:
        group: list[Node] = []
        row = node.end_point[0]
        pos = node.end_byte
        for j in range(bisect_left(self._starts, node.end_byte), len(self._comments)):
            comment = self._comments[j]
            if comment.start_point[0] != row or self._source[pos : comment.start_byte].strip(_LINE_COMMENT_GAP):
                break
            group.append(comment)
            pos = comment.end_byte
        return group

    def text(self, group: Sequence[Node]) -> str:
        return comment_text(group, self._source)

    def split(self, prefix: str, *groups: Sequence[Node]) -> tuple[list[str], list[str]]:
        """Docs and annotations of the non-empty ``groups``, in order."""
        return split_comment_groups(prefix, (self.text(g) for g in groups if g))
