"""Unit tests for the source patch engine."""

from pathlib import Path

import pytest

from zzgen.core.errors import FormatError, PatchError
from zzgen.core.modify import FileEdit, ModifySet, Span, format_source
from zzgen.core.source import parse_source

SOURCE = 'package s\n\nimport (\n\t"time"\n)\n\nvar _ = new(time.Time)\n'


@pytest.fixture
def go_file(tmp_path: Path) -> Path:
    path = tmp_path / "s.go"
    path.write_text(SOURCE)
    return path


class TestFileEdit:
    """Tests for rewriting one file."""

    def test_rename_package_and_add_imports(self, go_file: Path) -> None:
        unit = parse_source(str(go_file), go_file.read_bytes())
        edit = ModifySet().add(go_file)
        edit.imports = unit.imports()
        edit.imports.add("context")
        edit.imports.add("host.com/time")
        assert unit.package_node is not None
        edit.replace(unit.package_node, "x")

        edit.apply()

        assert go_file.read_text() == (
            'package x\n\nimport (\n\t"context"\n\ttime2 "host.com/time"\n\t"time"\n)\n\nvar _ = new(time.Time)\n'
        )

    def test_imports_are_inserted_after_package_clause(self, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text("package a\n\nvar v = 1\n")
        unit = parse_source(str(path), path.read_bytes())
        edit = FileEdit(str(path), imports=unit.imports())
        edit.imports.add("fmt")  # type: ignore[union-attr]

        edit.apply()

        assert path.read_text() == 'package a\n\nimport (\n\t"fmt"\n)\n\nvar v = 1\n'

    def test_imports_go_after_the_package_line_comment(self, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text('package a // import "example.com/a"\n\nvar v = 1\n')
        unit = parse_source(str(path), path.read_bytes())
        edit = FileEdit(str(path), imports=unit.imports())
        edit.imports.add("fmt")  # type: ignore[union-attr]

        edit.apply()

        assert path.read_text() == (
            'package a // import "example.com/a"\n\nimport (\n\t"fmt"\n)\n\nvar v = 1\n'
        )

    def test_single_import_declarations_are_kept(self, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text('package a\n\nimport "os"\nimport "fmt"\n\nvar _ = fmt.Sprint(os.Args)\n')
        unit = parse_source(str(path), path.read_bytes())
        edit = FileEdit(str(path), imports=unit.imports())
        edit.imports.add("strings")  # type: ignore[union-attr]

        edit.apply()

        assert path.read_text() == (
            'package a\n\nimport "os"\nimport "fmt"\n\nimport (\n\t"strings"\n)\n\nvar _ = fmt.Sprint(os.Args)\n'
        )

    def test_unchanged_imports_leave_declarations_alone(self, tmp_path: Path) -> None:
        source = 'package a\n\nimport "os"\nimport "fmt"\n\nvar _ = fmt.Sprint(os.Args)\n'
        path = tmp_path / "a.go"
        path.write_text(source)
        unit = parse_source(str(path), path.read_bytes())

        FileEdit(str(path), imports=unit.imports()).apply()

        assert path.read_text() == source

    def test_import_comments_and_groups_are_kept(self, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text(
            'package a\n\nimport (\n\t"fmt" // printing\n\n\t// internal\n\t"example.com/x"\n)\n\n'
            "var _ = fmt.Sprint(x.V)\n"
        )
        unit = parse_source(str(path), path.read_bytes())
        edit = FileEdit(str(path), imports=unit.imports())
        edit.imports.add("context")  # type: ignore[union-attr]
        edit.imports.add("example.com/y")  # type: ignore[union-attr]
        edit.imports.add("example.com/w")  # type: ignore[union-attr]

        edit.apply()

        assert path.read_text() == (
            'package a\n\nimport (\n\t"context"\n\t"fmt" // printing\n\n'
            '\t"example.com/w"\n\t// internal\n\t"example.com/x"\n\t"example.com/y"\n)\n\n'
            "var _ = fmt.Sprint(x.V)\n"
        )

    def test_cgo_import_is_left_alone(self, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text('package a\n\n// #include <stdio.h>\nimport "C"\n\nvar _ = C.int(0)\n')
        unit = parse_source(str(path), path.read_bytes())
        edit = FileEdit(str(path), imports=unit.imports())
        edit.imports.add("fmt")  # type: ignore[union-attr]

        edit.apply()

        assert path.read_text() == (
            'package a\n\n// #include <stdio.h>\nimport "C"\n\nimport (\n\t"fmt"\n)\n\nvar _ = C.int(0)\n'
        )

    def test_one_line_import_list_is_expanded(self, tmp_path: Path) -> None:
        path = tmp_path / "a.go"
        path.write_text('package a\n\nimport ("time")\n\nvar _ = time.Now\n')
        unit = parse_source(str(path), path.read_bytes())
        edit = FileEdit(str(path), imports=unit.imports())
        edit.imports.add("context")  # type: ignore[union-attr]

        edit.apply()

        assert path.read_text() == 'package a\n\nimport (\n\t"context"\n\t"time"\n)\n\nvar _ = time.Now\n'

    def test_without_changes_the_content_is_kept(self, go_file: Path) -> None:
        assert FileEdit(str(go_file)).apply() == SOURCE.encode()
        assert go_file.read_text() == SOURCE

    def test_overlapping_edits_are_rejected(self, go_file: Path) -> None:
        edit = FileEdit(str(go_file))
        edit.replace(Span(0, 9), b"package y")
        edit.replace(Span(8, 9), b"z")
        with pytest.raises(PatchError, match="overlapping"):
            edit.apply()
        assert go_file.read_text() == SOURCE

    def test_imports_overlapping_a_node_edit_are_rejected(self, go_file: Path) -> None:
        unit = parse_source(str(go_file), go_file.read_bytes())
        edit = FileEdit(str(go_file), imports=unit.imports())
        edit.imports.add("context")  # type: ignore[union-attr]
        edit.replace(unit.import_declarations[0], b"")
        with pytest.raises(PatchError, match="overlapping"):
            edit.apply()
        assert go_file.read_text() == SOURCE

    def test_out_of_bounds_span_is_rejected(self, go_file: Path) -> None:
        edit = FileEdit(str(go_file))
        edit.replace(Span(0, 10_000), b"")
        with pytest.raises(PatchError, match="out of bounds"):
            edit.apply()
        assert go_file.read_text() == SOURCE

    def test_invalid_result_raises_format_error_with_buffer(self, go_file: Path) -> None:
        unit = parse_source(str(go_file), go_file.read_bytes())
        assert unit.package_node is not None
        edit = FileEdit(str(go_file))
        edit.replace(unit.package_node, "x {")
        with pytest.raises(FormatError) as exc_info:
            edit.apply()
        assert exc_info.value.buffer.startswith(b"package x {")
        assert go_file.read_text() == SOURCE

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PatchError):
            FileEdit(str(tmp_path / "missing.go")).apply()


class TestModifySet:
    """Tests for batching edits across files."""

    def test_add_returns_the_same_edit(self, go_file: Path) -> None:
        modify = ModifySet()
        assert modify.add(go_file) is modify.add(str(go_file))
        assert len(modify) == 1

    def test_apply_rewrites_every_file(self, tmp_path: Path) -> None:
        paths = [tmp_path / "a.go", tmp_path / "b.go"]
        for path in paths:
            path.write_text("package a\n\n\n\nvar v = 1   \n")
        modify = ModifySet()
        for path in paths:
            modify.add(path)

        modify.apply()

        assert all(p.read_text() == "package a\n\nvar v = 1\n" for p in paths)


class TestFormatSource:
    """Tests for the canonical layout."""

    def test_layout_keeps_raw_strings(self) -> None:
        data = b"\n\npackage x   \n\n\n\nvar s = `a  \n\n\n  b`\t\n\n"
        assert format_source(data) == b"package x\n\nvar s = `a  \n\n\n  b`\n"

    def test_unparsable_buffer(self) -> None:
        with pytest.raises(FormatError):
            format_source(b"package x\nfunc {\n")

    def test_external_formatter(self, tmp_path: Path) -> None:
        script = tmp_path / "fmt.sh"
        script.write_text("#!/bin/sh\ncat\n")
        script.chmod(0o755)
        data = b"package x\n\n\n\nvar v = 1\n"
        assert format_source(data, gofmt=str(script)) == data

    def test_failing_external_formatter(self, tmp_path: Path) -> None:
        script = tmp_path / "fmt.sh"
        script.write_text("#!/bin/sh\necho broken >&2\nexit 2\n")
        script.chmod(0o755)
        with pytest.raises(FormatError, match="broken"):
            format_source(b"package x\n", gofmt=str(script))
