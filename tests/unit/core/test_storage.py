"""Tests for cryptopilot.core.storage."""

from __future__ import annotations

import json
from pathlib import Path

from cryptopilot.core.storage import FileStore


class TestReadText:
    def test_read_existing_file(self, tmp_path: Path) -> None:
        p = tmp_path / "test.txt"
        p.write_text("hello world", encoding="utf-8")
        assert FileStore.read_text(p) == "hello world"

    def test_read_missing_file_returns_default(self, tmp_path: Path) -> None:
        p = tmp_path / "missing.txt"
        assert FileStore.read_text(p) == ""
        assert FileStore.read_text(p, "fallback") == "fallback"


class TestWriteText:
    def test_write_and_read(self, tmp_path: Path) -> None:
        p = tmp_path / "out.txt"
        assert FileStore.write_text(p, "content here") is True
        assert p.read_text(encoding="utf-8") == "content here"

    def test_atomic_write_no_leftover_tmp(self, tmp_path: Path) -> None:
        p = tmp_path / "out.txt"
        FileStore.write_text(p, "data")
        assert not p.with_suffix(".txt.tmp").exists()

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        p = tmp_path / "sub" / "dir" / "file.txt"
        FileStore.write_text(p, "nested")
        assert p.read_text(encoding="utf-8") == "nested"

    def test_failure_returns_false(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        assert FileStore.write_text(blocker / "out.txt", "x") is False


class TestJson:
    def test_round_trip(self, tmp_path: Path) -> None:
        p = tmp_path / "data.json"
        assert FileStore.write_json(p, {"a": 1, "b": [1.5, None]}) is True
        assert FileStore.read_json(p) == {"a": 1, "b": [1.5, None]}

    def test_read_missing_file(self, tmp_path: Path) -> None:
        p = tmp_path / "missing.json"
        assert FileStore.read_json(p) is None
        assert FileStore.read_json(p, {"default": True}) == {"default": True}

    def test_read_corrupt_json(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.json"
        p.write_text("{{{", encoding="utf-8")
        assert FileStore.read_json(p, []) == []

    def test_read_null_returns_default(self, tmp_path: Path) -> None:
        p = tmp_path / "null.json"
        p.write_text("null", encoding="utf-8")
        assert FileStore.read_json(p, {}) == {}

    def test_unserialisable_not_written(self, tmp_path: Path) -> None:
        p = tmp_path / "obj.json"
        assert FileStore.write_json(p, {"x": object()}) is False
        assert not p.exists()

    def test_indented(self, tmp_path: Path) -> None:
        p = tmp_path / "pretty.json"
        FileStore.write_json(p, {"k": "v"})
        assert p.read_text(encoding="utf-8") == json.dumps({"k": "v"}, indent=2) + "\n"


class TestJsonLines:
    def test_append_and_read(self, tmp_path: Path) -> None:
        p = tmp_path / "log" / "history.jsonl"
        assert FileStore.append_jsonl(p, {"n": 1})
        assert FileStore.append_jsonl(p, {"n": 2})
        assert FileStore.read_jsonl(p) == [{"n": 1}, {"n": 2}]

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert FileStore.read_jsonl(tmp_path / "nope.jsonl") == []

    def test_corrupt_and_non_object_lines_skipped(self, tmp_path: Path) -> None:
        p = tmp_path / "history.jsonl"
        p.write_text('{"n": 1}\nnot json\n\n[1, 2]\n{"n": 3}\n', encoding="utf-8")
        assert FileStore.read_jsonl(p) == [{"n": 1}, {"n": 3}]
