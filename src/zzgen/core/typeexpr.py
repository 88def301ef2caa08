from tree_sitter import Node

from zzgen.core.source import SourceUnit, name_nodes

METHOD_ELEMENT_TYPES = frozenset({"method_elem", "method_spec"})


def struct_fields(struct_type: Node) -> list[Node]:
    """``field_declaration`` nodes of a ``struct_type``, in source order."""
    for child in struct_type.named_children:
        if child.type == "field_declaration_list":
            return [f for f in child.named_children if f.type == "field_declaration"]
    return []


def interface_methods(interface_type: Node) -> list[Node]:
    return [m for m in interface_type.named_children if m.type in METHOD_ELEMENT_TYPES]


def assert_func_type(unit: SourceUnit, member: Node) -> tuple[str, Node] | None:
    """Return ``(name, member)`` when an interface member or struct field is a named function."""
    names = name_nodes(member)
    if not names:
        return None
    if member.type in METHOD_ELEMENT_TYPES:
        return unit.text(names[0]), member
    typ = member.child_by_field_name("type")
    if typ is not None and typ.type == "function_type":
        return unit.text(names[0]), typ
    return None


def extract_anonymous_name(unit: SourceUnit, expr: Node | None) -> str:
    """Name an embedded field takes from its type: ``T``, ``*T`` and ``pkg.T`` all give ``T``."""
    while expr is not None and expr.type == "pointer_type":
        expr = next(iter(expr.named_children), None)
    if expr is None:
        return ""
    if expr.type == "qualified_type":
        expr = expr.child_by_field_name("name")
    elif expr.type == "generic_type":
        expr = expr.child_by_field_name("type")
    if expr is None or expr.type != "type_identifier":
        return ""
    return unit.text(expr)


def extract_struct_field_names(unit: SourceUnit, struct_type: Node) -> list[str]:
    """Exported field names of a struct type in declaration order.

    Embedded fields contribute their type name. Duplicate names are kept.
    """
    names: list[str] = []

    def add(name: str) -> None:
        if name and name[0].isupper():
            names.append(name)

    for field in struct_fields(struct_type):
        declared = name_nodes(field)
        if not declared:
            add(extract_anonymous_name(unit, field.child_by_field_name("type")))
            continue
        for name_node in declared:
            add(unit.text(name_node))
    return names
