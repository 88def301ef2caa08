import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from zzgen.core.text import split_kv_list

if TYPE_CHECKING:
    from zzgen.core.decls import AnnotatedDecl, AnnotatedField

ANNOTATION_SEPARATOR = ":"
ESCAPED_ANNOTATION_SEPARATOR = "\\u003A"
KEY_VALUE_SEPARATOR = "="

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})


class Options(dict[str, str]):
    """Key/value options parsed from one annotation."""

    def get(self, key: str, default: str = "") -> str:  # type: ignore[override]
        value = super().get(key)
        return value if value else default

    def exist(self, key: str) -> bool:
        if key not in self:
            return False
        value = self[key]
        return not value or value in _TRUE_VALUES


def escape_annotation(value: str) -> str:
    return value.replace("\\:", ESCAPED_ANNOTATION_SEPARATOR)


def unescape_annotation(value: str) -> str:
    return value.replace(ESCAPED_ANNOTATION_SEPARATOR, ANNOTATION_SEPARATOR)


def parse_annotation(
    annotation: str,
    name: str,
    args_count: int,
    ext_options: Mapping[str, str] | None = None,
) -> tuple[list[str], Options] | None:
    """Match ``annotation`` against plugin ``name`` and split it into args and options.

    Format: ``name:arg1:...:argN:key1=value1:key2=value2``. Returns ``None`` when the first
    segment is not ``name`` or fewer than ``args_count`` segments follow it. ``ext_options``
    fill in keys the annotation does not set.
    """
    segments = escape_annotation(annotation).split(ANNOTATION_SEPARATOR)
    if segments[0] != name or len(segments) - 1 < args_count:
        return None

    options = Options()
    split_kv_list(segments[1 + args_count :], KEY_VALUE_SEPARATOR, options)
    for key, value in options.items():
        options[key] = unescape_annotation(value)

    for key, value in (ext_options or {}).items():
        if key not in options:
            options[key] = value

    return segments[1 : 1 + args_count], options


@dataclass(eq=False)
class DeclEntity:
    decl: "AnnotatedDecl"
    plugin: str
    args: list[str] = field(default_factory=list)
    options: Options = field(default_factory=Options)

    @property
    def name(self) -> str:
        return self.decl.name

    def parse_fields(self, args_count: int, ext_options: Mapping[str, str] | None = None) -> "FieldEntities":
        """Bind the annotated fields of this declaration under the same plugin name."""
        fields = FieldEntities()
        for annotated in self.decl.fields:
            fields.extend(annotated.parse(self.plugin, args_count, ext_options))
        return fields


@dataclass(eq=False)
class FieldEntity:
    annotated: "AnnotatedField"
    args: list[str] = field(default_factory=list)
    options: Options = field(default_factory=Options)


class DeclEntities(list[DeclEntity]):
    def group_by(self, key: Callable[[DeclEntity], str]) -> dict[str, "DeclEntities"]:
        """Group entities by ``key``; entities with an empty key are dropped."""
        groups: dict[str, DeclEntities] = {}
        for entity in self:
            if k := key(entity):
                groups.setdefault(k, DeclEntities()).append(entity)
        return groups

    def group_by_dir(self) -> dict[str, "DeclEntities"]:
        return self.group_by(lambda entity: os.path.dirname(entity.decl.unit.path))


class FieldEntities(list[FieldEntity]):
    pass
