from pydantic import BaseModel

from zzgen.core.decls import AnnotatedDecl, AnnotatedField
from zzgen.core.entity import DeclEntity, FieldEntity
from zzgen.core.module import ResolvedType
from zzgen.core.ports.plugin import Plugin


class Position(BaseModel):
    row: int
    column: int


class FieldSummary(BaseModel):
    names: list[str]
    start_point: Position
    docs: list[str]
    annotations: list[str]

    @classmethod
    def from_field(cls, annotated: AnnotatedField) -> "FieldSummary":
        row, column = annotated.node.start_point
        return cls(
            names=annotated.names,
            start_point=Position(row=row, column=column),
            docs=annotated.docs,
            annotations=annotated.annotations,
        )


class DeclSummary(BaseModel):
    name: str
    kind: str
    package: str
    path: str
    start_point: Position
    end_point: Position
    docs: list[str]
    annotations: list[str]
    fields: list[FieldSummary] = []

    @classmethod
    def from_decl(cls, decl: AnnotatedDecl) -> "DeclSummary":
        start, end = decl.node.start_point, decl.node.end_point
        return cls(
            name=decl.name,
            kind=decl.kind.name.lower(),
            package=decl.package,
            path=decl.unit.path,
            start_point=Position(row=start[0], column=start[1]),
            end_point=Position(row=end[0], column=end[1]),
            docs=decl.docs,
            annotations=decl.annotations,
            fields=[FieldSummary.from_field(f) for f in decl.fields],
        )


class FieldEntitySummary(BaseModel):
    names: list[str]
    args: list[str]
    options: dict[str, str]

    @classmethod
    def from_entity(cls, entity: FieldEntity) -> "FieldEntitySummary":
        return cls(names=entity.annotated.names, args=entity.args, options=dict(entity.options))


class EntitySummary(BaseModel):
    plugin: str
    name: str
    kind: str
    path: str
    args: list[str]
    options: dict[str, str]
    fields: list[FieldEntitySummary] = []

    @classmethod
    def from_entity(cls, entity: DeclEntity, fields: list[FieldEntity] | None = None) -> "EntitySummary":
        return cls(
            plugin=entity.plugin,
            name=entity.name,
            kind=entity.decl.kind.name.lower(),
            path=entity.decl.unit.path,
            args=entity.args,
            options=dict(entity.options),
            fields=[FieldEntitySummary.from_entity(f) for f in fields or []],
        )


class ImportSummary(BaseModel):
    path: str
    import_path: str
    import_name: str
    mod_file: str


class TypeSummary(BaseModel):
    name: str
    package_path: str
    kind: str
    path: str
    start_point: Position
    text: str

    @classmethod
    def from_resolved(cls, name: str, package_path: str, resolved: ResolvedType) -> "TypeSummary":
        row, column = resolved.expr.start_point
        return cls(
            name=name,
            package_path=package_path,
            kind=resolved.kind,
            path=resolved.unit.path,
            start_point=Position(row=row, column=column),
            text=resolved.unit.text(resolved.expr),
        )


class PluginSummary(BaseModel):
    name: str
    description: str
    args: list[str]
    options: dict[str, str]

    @classmethod
    def from_plugin(cls, plugin: Plugin) -> "PluginSummary":
        args, options = plugin.args()
        return cls(name=plugin.name, description=plugin.description, args=args, options=options)
