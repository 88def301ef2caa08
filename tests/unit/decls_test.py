"""Unit tests for the declaration extraction pipeline."""

from collections.abc import Callable
from pathlib import Path

import pytest

from zzgen.core.cache import Caches
from zzgen.core.decls import (
    AnnotatedDecls,
    DeclKind,
    parse_file_decls,
    parse_file_or_directory,
    parse_unit_decls,
    walk_files,
)
from zzgen.core.errors import ParseError
from zzgen.core.plugins import CollectPlugin
from zzgen.core.source import SourceUnit

PREFIX = "+zz:"

SAMPLE = """package x

// +zz:test
// comment
type T struct{}

// +zz:test
/*
lines comment
*/
type (
	T2 interface{
		// field
		// +zz:test
		Foo()
	}
)

// +zz:test
// comment
var (
	V0 = 0
	// +zz:test
	V1 = 1
)

// +zz:test
var V2 = 2

// +zz:test
func F0(){}
"""


@pytest.fixture
def sample_decls(parse_go: Callable[..., SourceUnit]) -> AnnotatedDecls:
    return parse_unit_decls(parse_go(SAMPLE, "/virtual/test.go"), PREFIX)


class TestParseUnitDecls:
    """Tests for annotation extraction from a single file."""

    def test_finds_every_annotated_declaration_in_order(self, sample_decls: AnnotatedDecls) -> None:
        assert [(d.name, d.kind) for d in sample_decls] == [
            ("T", DeclKind.STRUCT),
            ("T2", DeclKind.INTERFACE),
            ("V0", DeclKind.VALUE),
            ("V1", DeclKind.VALUE),
            ("V2", DeclKind.VALUE),
            ("F0", DeclKind.FUNC),
        ]

    def test_single_type_keeps_docs(self, sample_decls: AnnotatedDecls) -> None:
        assert sample_decls[0].docs == ["comment"]
        assert sample_decls[0].annotations == ["test"]

    def test_single_member_group_keeps_group_docs(self, sample_decls: AnnotatedDecls) -> None:
        assert sample_decls[1].docs == ["", "lines comment"]

    def test_interface_method_annotations(self, sample_decls: AnnotatedDecls) -> None:
        (method,) = sample_decls[1].fields
        assert method.name == "Foo"
        assert method.docs == ["field"]
        assert method.annotations == ["test"]

    def test_group_annotations_apply_to_every_member(self, sample_decls: AnnotatedDecls) -> None:
        v0, v1 = sample_decls[2], sample_decls[3]
        assert v0.annotations == ["test"]
        assert v0.docs == []
        assert v1.annotations == ["test", "test"]

    def test_function_uses_its_doc_comment(self, sample_decls: AnnotatedDecls) -> None:
        assert sample_decls[5].annotations == ["test"]
        assert sample_decls[5].fields == []

    def test_unannotated_declarations_are_skipped(self, parse_go: Callable[..., SourceUnit]) -> None:
        unit = parse_go("package x\n\n// plain doc\ntype A int\n\nfunc B() {}\n")
        assert parse_unit_decls(unit, PREFIX) == []

    def test_own_doc_of_ungrouped_spec_is_the_declaration_doc(self, parse_go: Callable[..., SourceUnit]) -> None:
        unit = parse_go("package x\n\n// +zz:a\nconst C = 1 // +zz:b\n")
        (decl,) = parse_unit_decls(unit, PREFIX)
        assert decl.annotations == ["a", "b"]

    def test_multi_name_value_has_no_name(self, parse_go: Callable[..., SourceUnit]) -> None:
        unit = parse_go("package x\n\n// +zz:a\nvar A, B = 1, 2\n")
        (decl,) = parse_unit_decls(unit, PREFIX)
        assert decl.kind is DeclKind.VALUE
        assert decl.name == ""

    def test_embedded_fields_are_not_collected(self, parse_go: Callable[..., SourceUnit]) -> None:
        source = "package x\n\n// +zz:a\ntype S struct {\n\t// +zz:a\n\tBase\n\t// +zz:a\n\tName string\n}\n"
        (decl,) = parse_unit_decls(parse_go(source), PREFIX)
        assert [f.name for f in decl.fields] == ["Name"]

    @pytest.mark.parametrize(
        ("type_expr", "kind"),
        [
            ("map[string]int", DeclKind.MAP),
            ("[]string", DeclKind.ARRAY),
            ("[3]int", DeclKind.ARRAY),
            ("func() error", DeclKind.FUNC_TYPE),
            ("Other", DeclKind.REFER),
            ("pkg.Other", DeclKind.REFER),
            ("*Other", DeclKind.REFER),
        ],
    )
    def test_type_kinds(self, parse_go: Callable[..., SourceUnit], type_expr: str, kind: DeclKind) -> None:
        unit = parse_go(f"package x\n\n// +zz:a\ntype T {type_expr}\n")
        (decl,) = parse_unit_decls(unit, PREFIX)
        assert decl.kind is kind

    def test_alias_is_a_reference(self, parse_go: Callable[..., SourceUnit]) -> None:
        unit = parse_go("package x\n\n// +zz:a\ntype T = Other\n")
        (decl,) = parse_unit_decls(unit, PREFIX)
        assert decl.kind is DeclKind.REFER
        assert decl.name == "T"

    def test_channel_types_are_not_retained(self, parse_go: Callable[..., SourceUnit]) -> None:
        unit = parse_go("package x\n\n// +zz:a\ntype C chan int\n")
        assert parse_unit_decls(unit, PREFIX) == []

    def test_plugin_names(self, sample_decls: AnnotatedDecls) -> None:
        assert sample_decls.plugin_names() == ["test"]

    def test_parse_with_plugin(self, sample_decls: AnnotatedDecls) -> None:
        entities = sample_decls.parse(CollectPlugin(name="test"))
        assert len(entities) == 7
        assert all(e.args == [] for e in entities)


class TestRelFilename:
    """Tests for output filename resolution."""

    def test_placeholders(self, sample_decls: AnnotatedDecls) -> None:
        for decl in sample_decls:
            rel = decl.rel_filename("{package}_{name}_{filename}", "")
            assert rel.endswith(f"x_{decl.name}_test.go")

    def test_template_placeholders(self, sample_decls: AnnotatedDecls) -> None:
        decl = sample_decls[0]
        rel = decl.rel_filename("{{ .Package }}/{{.Name}}_impl.go")
        assert rel == f"/virtual/x/{decl.name}_impl.go"

    def test_unknown_placeholders_are_kept(self, sample_decls: AnnotatedDecls) -> None:
        decl = sample_decls[0]
        assert decl.rel_filename("{Name}_impl.go") == "/virtual/{Name}_impl.go"
        assert decl.rel_filename("{0}{ {name}.go") == f"/virtual/{{0}}{{ {decl.name}.go"

    def test_directory_gets_default_name(self, sample_decls: AnnotatedDecls) -> None:
        rel = sample_decls[0].rel_filename("gen", "zz_generated")
        assert rel == "/virtual/gen/zz_generated.go"

    def test_absolute_name_is_module_relative(
        self, caches: Caches, go_module: Path, write_go: Callable[[Path, str], Path]
    ) -> None:
        path = write_go(go_module / "pkg" / "a" / "a.go", "package a\n\n// +zz:test\ntype A struct{}\n")
        (decl,) = parse_file_decls(caches, path, PREFIX)
        assert decl.rel_filename("/out/{name}.go") == str(go_module.resolve() / "out" / "A.go")


class TestFilesAndDirectories:
    """Tests for walking and caching."""

    def test_file_without_prefix_is_not_parsed(self, caches: Caches, tmp_path: Path) -> None:
        path = tmp_path / "broken.go"
        path.write_text("package x\nfunc {\n")
        assert parse_file_decls(caches, path, PREFIX) == []
        assert len(caches.units) == 0

    def test_non_go_file_is_ignored(self, caches: Caches, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("+zz:test\n")
        assert parse_file_decls(caches, path, PREFIX) == []

    def test_malformed_annotated_file_raises(self, caches: Caches, tmp_path: Path) -> None:
        path = tmp_path / "broken.go"
        path.write_text("package x\n// +zz:test\nfunc {\n")
        with pytest.raises(ParseError):
            parse_file_decls(caches, path, PREFIX)

    def test_result_is_cached_until_content_changes(self, caches: Caches, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text("package x\n\n// +zz:test\ntype A int\n")
        first = parse_file_decls(caches, path, PREFIX)
        assert parse_file_decls(caches, path, PREFIX) is first

        path.write_text("package x\n\n// +zz:test\ntype B int\n")
        second = parse_file_decls(caches, path, PREFIX)
        assert second is not first
        assert [d.name for d in second] == ["B"]

    def test_directory_walk_is_ordered_and_skips_excluded_dirs(
        self, caches: Caches, tmp_path: Path, write_go: Callable[[Path, str], Path]
    ) -> None:
        annotated = "package {pkg}\n\n// +zz:test\ntype {name} int\n"
        write_go(tmp_path / "b.go", annotated.format(pkg="root", name="B"))
        write_go(tmp_path / "a.go", annotated.format(pkg="root", name="A"))
        write_go(tmp_path / "sub" / "c.go", annotated.format(pkg="sub", name="C"))
        write_go(tmp_path / "vendor" / "v.go", "package v\n// +zz:test\nfunc {\n")
        write_go(tmp_path / "testdata" / "t.go", annotated.format(pkg="t", name="T"))
        write_go(tmp_path / "node_modules" / "n.go", annotated.format(pkg="n", name="N"))
        write_go(tmp_path / ".hidden" / "h.go", annotated.format(pkg="h", name="H"))

        decls = parse_file_or_directory(caches, tmp_path, PREFIX, workers=4)
        assert [d.name for d in decls] == ["A", "B", "C"]

    def test_walk_files_is_pre_order(self, tmp_path: Path) -> None:
        (tmp_path / "z").mkdir()
        (tmp_path / "z" / "1.go").write_text("")
        (tmp_path / "b.go").write_text("")
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "2.go").write_text("")
        rel = [p.relative_to(tmp_path).as_posix() for p in walk_files(tmp_path)]
        assert rel == ["a/2.go", "b.go", "z/1.go"]

    def test_first_failure_aborts(self, caches: Caches, tmp_path: Path, write_go: Callable[[Path, str], Path]) -> None:
        write_go(tmp_path / "a.go", "package x\n// +zz:test\nfunc {\n")
        write_go(tmp_path / "b.go", "package x\n\n// +zz:test\ntype B int\n")
        with pytest.raises(ParseError):
            parse_file_or_directory(caches, tmp_path, PREFIX)

    def test_missing_path_raises(self, caches: Caches, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            parse_file_or_directory(caches, tmp_path / "missing", PREFIX)
