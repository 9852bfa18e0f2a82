from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

import lbrbuild.sources as sources
from lbrbuild.errors import SourceReadError


def _detector(root: Path) -> sources.ChangeDetector:
    return sources.ChangeDetector(root, ("c", "h", "pgm"))


def _write(root: Path, source: str, content: str) -> str:
    path = root / source
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return sources.fingerprint(path)


def test_detect_splits_new_and_changed_sources(tmp_path: Path) -> None:
    _write(tmp_path, "a.c", "int a = 2;\n")
    _write(tmp_path, "b.c", "int b;\n")

    change_set = _detector(tmp_path).detect(None, {"a.c": "h1"})

    assert change_set.new_objects == ("b.c",)
    assert change_set.changed_sources == ("a.c",)
    assert change_set.to_document() == {"new-objects": ["b.c"], "changed-sources": ["a.c"]}


def test_detect_skips_unchanged_sources(tmp_path: Path) -> None:
    digest = _write(tmp_path, "qsrc/a.c", "int a;\n")

    change_set = _detector(tmp_path).detect(None, {"qsrc/a.c": digest})

    assert change_set.is_empty()


def test_detect_single_candidate_ignores_other_changes(tmp_path: Path) -> None:
    _write(tmp_path, "a.c", "int a;\n")
    _write(tmp_path, "b.c", "int b;\n")

    change_set = _detector(tmp_path).detect("b.c", {})

    assert change_set.sources == ["b.c"]


def test_detect_normalizes_candidate_paths(tmp_path: Path) -> None:
    _write(tmp_path, "qsrc/a.c", "int a;\n")

    change_set = _detector(tmp_path).detect(["\\qsrc\\a.c", "/qsrc/a.c"], {})

    assert change_set.new_objects == ("qsrc/a.c",)


def test_detect_missing_candidate_fails_without_partial_result(tmp_path: Path) -> None:
    _write(tmp_path, "a.c", "int a;\n")

    with pytest.raises(SourceReadError) as excinfo:
        _detector(tmp_path).detect(["a.c", "gone.c"], {})

    assert excinfo.value.code == "source_unreadable"
    assert excinfo.value.path == "gone.c"
    assert "file not found" in excinfo.value.message


def test_detect_rejects_unsupported_object_type(tmp_path: Path) -> None:
    _write(tmp_path, "notes.txt", "hello\n")

    with pytest.raises(SourceReadError, match="unsupported object type"):
        _detector(tmp_path).detect(["notes.txt"], {})


def test_discover_ignores_unsupported_files(tmp_path: Path) -> None:
    _write(tmp_path, "b/main.PGM", "x")
    _write(tmp_path, "a.h", "x")
    _write(tmp_path, "README.md", "x")

    assert _detector(tmp_path).discover() == ["a.h", "b/main.PGM"]


@pytest.mark.parametrize(
    ("source", "expected"),
    [("qsrc/a.c", "c"), ("b\\main.PGM", "pgm"), ("noext", ""), ("x.tar.h", "h")],
)
def test_object_type_is_lowercased_suffix(source: str, expected: str) -> None:
    assert sources.object_type(source) == expected


def test_discover_missing_root_is_empty(tmp_path: Path) -> None:
    assert sources.discover_sources(tmp_path / "missing", ["c"]) == []


def test_stale_sources_lists_entries_without_files(tmp_path: Path) -> None:
    _write(tmp_path, "a.c", "x")

    stale = _detector(tmp_path).stale_sources({"a.c": "h", "removed.c": "h"})

    assert stale == ["removed.c"]


def test_current_fingerprints_cover_every_discovered_source(tmp_path: Path) -> None:
    digest_a = _write(tmp_path, "a.c", "a")
    digest_b = _write(tmp_path, "x/b.h", "b")

    assert _detector(tmp_path).current_fingerprints() == {"a.c": digest_a, "x/b.h": digest_b}


def test_resolve_source_accepts_absolute_and_relative_paths(tmp_path: Path) -> None:
    _write(tmp_path, "qsrc/a.c", "a")
    detector = _detector(tmp_path)

    assert detector.resolve_source(tmp_path / "qsrc" / "a.c") == "qsrc/a.c"
    assert detector.resolve_source("qsrc/a.c") == "qsrc/a.c"


def test_resolve_source_rejects_paths_outside_source_root(tmp_path: Path) -> None:
    root = tmp_path / "src"
    root.mkdir()
    outside = tmp_path / "other.c"
    outside.write_text("x", encoding="utf-8")

    with pytest.raises(SourceReadError, match="not below source directory"):
        _detector(root).resolve_source(outside)


def test_change_set_from_document_skips_malformed_entries() -> None:
    change_set = sources.ChangeSet.from_document(
        {"new-objects": ["a.c", 3, "\\b.c"], "changed-sources": "c.c"}
    )

    assert change_set == sources.ChangeSet(new_objects=("a.c", "b.c"))


@settings(max_examples=30, deadline=None)
@given(
    contents=st.dictionaries(
        st.sampled_from(["a.c", "b.c", "c.h", "d.pgm", "e.c"]),
        st.binary(max_size=16),
        min_size=1,
    ),
    recorded=st.dictionaries(
        st.sampled_from(["a.c", "b.c", "c.h", "d.pgm", "e.c"]),
        st.sampled_from(["stale-1", "stale-2", "current"]),
    ),
)
def test_detect_partitions_candidates(contents: dict[str, bytes], recorded: dict[str, str]) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        table: dict[str, str] = {}
        for source, payload in contents.items():
            (root / source).write_bytes(payload)
            if source in recorded:
                marker = recorded[source]
                current = sources.fingerprint(root / source)
                table[source] = current if marker == "current" else marker

        change_set = _detector(root).detect(None, table)

        assert set(change_set.new_objects) == {s for s in contents if s not in table}
        assert set(change_set.changed_sources).isdisjoint(change_set.new_objects)
        for source in contents:
            unchanged = source in table and table[source] == sources.fingerprint(root / source)
            assert (source in change_set.sources) is not unchanged
