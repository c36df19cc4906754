"""Tests for the concurrent prompt generator."""

import threading
import warnings
import xml.etree.ElementTree as ET
from pathlib import Path

import pathspec
import pytest

from openprompt.errors import FileReadError, GenerationCancelled, PartialReadError
from openprompt.generator import (
    NOISE_SPEC,
    AggregationPipeline,
    BufferPool,
    PromptDocument,
    read_file_with_buffer,
)
from openprompt.ignore import compile_rules
from openprompt.render import render_xml
from openprompt.scanner import FilterConfig, scan_directory
from openprompt.tree import FileTree

from conftest import make_tree


def files_in(root: Path, **filters):
    return [e for e in scan_directory(root, FilterConfig(**filters)) if not e.is_dir]


@pytest.fixture
def sources(tmp_path: Path) -> Path:
    return make_tree(
        tmp_path / "src",
        {f"pkg/mod_{i:02d}.py": f"value = {i}\n" for i in range(25)} | {"README.md": "# readme\n"},
    )


class TestBufferPool:
    def test_borrow_returns_buffer(self):
        pool = BufferPool(buffer_size=16, capacity=2)
        with pool.borrow() as buf:
            assert len(buf) == 16
            assert pool.available == 0
        assert pool.available == 1

    def test_buffer_returned_on_error(self):
        pool = BufferPool(buffer_size=16)
        with pytest.raises(RuntimeError):
            with pool.borrow():
                raise RuntimeError("read failed")
        assert pool.available == 1

    def test_capacity_is_bounded(self):
        pool = BufferPool(buffer_size=8, capacity=1)
        a, b = pool.get(), pool.get()
        pool.put(a)
        pool.put(b)
        assert pool.available == 1

    def test_foreign_buffers_are_dropped(self):
        pool = BufferPool(buffer_size=8)
        pool.put(bytearray(4))
        assert pool.available == 0


class TestReadFileWithBuffer:
    def test_small_file_uses_buffer(self, tmp_path: Path):
        f = tmp_path / "a.txt"
        f.write_text("hello", encoding="utf-8")
        buf = bytearray(b"x" * 32)
        assert read_file_with_buffer(f, buf) == "hello"
        assert bytes(buf[:5]) == b"hello"

    def test_large_file_bypasses_buffer(self, tmp_path: Path):
        f = tmp_path / "big.txt"
        f.write_text("z" * 100, encoding="utf-8")
        buf = bytearray(8)
        assert read_file_with_buffer(f, buf) == "z" * 100
        assert buf == bytearray(8)

    def test_invalid_utf8_is_replaced(self, tmp_path: Path):
        f = tmp_path / "bad.txt"
        f.write_bytes(b"ok\xff")
        assert read_file_with_buffer(f, bytearray(16)) == "ok\ufffd"


class TestGenerate:
    def test_all_files_are_collected_in_path_order(self, sources: Path):
        selection = files_in(sources)
        doc = AggregationPipeline(max_workers=4).generate(selection, "Explain", sources)
        assert len(doc.files) == 26
        assert [r.path for r in doc.files] == sorted(r.path for r in doc.files)
        assert doc.instructions == "Explain"
        record = next(r for r in doc.files if r.path == "pkg/mod_07.py")
        assert record.type == "py"
        assert record.content == "value = 7\n"

    def test_deterministic_across_runs(self, sources: Path):
        selection = files_in(sources)
        pipeline = AggregationPipeline(max_workers=8)
        assert pipeline.generate(selection, "", sources) == pipeline.generate(selection, "", sources)

    def test_empty_selection(self, tmp_path: Path):
        doc = AggregationPipeline().generate([], "just instructions", tmp_path)
        assert doc == PromptDocument(files=[], instructions="just instructions")

    def test_directories_are_ignored(self, sources: Path):
        selection = scan_directory(sources)
        doc = AggregationPipeline().generate(selection, "", sources)
        assert len(doc.files) == 26

    def test_partial_failure_keeps_other_files(self, sources: Path):
        selection = files_in(sources)
        (sources / "pkg" / "mod_03.py").unlink()
        with pytest.raises(PartialReadError) as excinfo:
            AggregationPipeline(max_workers=4).generate(selection, "go", sources)
        err = excinfo.value
        assert len(err.document.files) == 25
        assert "pkg/mod_03.py" not in {r.path for r in err.document.files}
        assert err.document.instructions == "go"
        assert len(err.failures) == 1
        assert isinstance(err.last_error, FileReadError)
        assert err.last_error.path.endswith("mod_03.py")

    def test_noise_files_are_skipped(self, tmp_path: Path):
        make_tree(tmp_path, {"a.py": "a\n", "sub/.DS_Store": "junk"})
        doc = AggregationPipeline().generate(files_in(tmp_path), "", tmp_path)
        assert [r.path for r in doc.files] == ["a.py"]

    def test_noise_spec_uses_gitignore_flavour(self):
        assert isinstance(NOISE_SPEC, pathspec.GitIgnoreSpec)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert NOISE_SPEC.match_file("deep/dir/Thumbs.db")
            assert not NOISE_SPEC.match_file("Thumbs.dbx")

    def test_gitignore_safety_filter(self, tmp_path: Path):
        make_tree(tmp_path, {".gitignore": "*.secret\n", "a.py": "a\n", "b.secret": "s\n"})
        selection = files_in(tmp_path, respect_gitignore=False)
        assert {e.name for e in selection} == {".gitignore", "a.py", "b.secret"}

        doc = AggregationPipeline().generate(selection, "", tmp_path)
        assert [r.path for r in doc.files] == [".gitignore", "a.py"]

        doc = AggregationPipeline(respect_gitignore=False).generate(selection, "", tmp_path)
        assert [r.path for r in doc.files] == [".gitignore", "a.py", "b.secret"]

    def test_extensionless_file_type(self, tmp_path: Path):
        make_tree(tmp_path, {"Makefile": "all:\n"})
        doc = AggregationPipeline().generate(files_in(tmp_path), "", tmp_path)
        assert doc.files[0].type == ""

    def test_large_files_with_small_pool(self, tmp_path: Path):
        make_tree(tmp_path, {"big.txt": "b" * 5000, "small.txt": "s"})
        pipeline = AggregationPipeline(buffer_pool=BufferPool(buffer_size=64))
        doc = pipeline.generate(files_in(tmp_path), "", tmp_path)
        assert {r.path: len(r.content) for r in doc.files} == {"big.txt": 5000, "small.txt": 1}
        assert pipeline.buffer_pool.available >= 1

    def test_pipelines_do_not_share_pools(self):
        assert AggregationPipeline().buffer_pool is not AggregationPipeline().buffer_pool

    def test_cancelled_before_start(self, sources: Path):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(GenerationCancelled):
            AggregationPipeline().generate(files_in(sources), "", sources, cancel_event=cancel)

    def test_cancel_mid_run_stops_new_reads(self, sources: Path):
        cancel = threading.Event()
        pipeline = AggregationPipeline(max_workers=1)
        reads = []
        original = pipeline._read_one

        def read_and_cancel(entry, *args):
            record = original(entry, *args)
            if record is not None:
                reads.append(record.path)
            cancel.set()
            return record

        pipeline._read_one = read_and_cancel
        selection = files_in(sources)
        with pytest.raises(GenerationCancelled):
            pipeline.generate(selection, "", sources, cancel_event=cancel)
        assert len(reads) == 1


class TestRuleConsistency:
    def test_document_matches_what_the_scan_offered(self, tmp_path: Path):
        make_tree(
            tmp_path,
            {
                ".gitignore": "doc/**/*.md\n",
                "doc/a.md": "a\n",
                "doc/deep/b.md": "b\n",
                "doc/keep.txt": "k\n",
                "top.md": "t\n",
            },
        )
        tree = FileTree(tmp_path)
        tree.load()
        tree.select_all()
        selection = tree.selected_files()
        offered = {e.rel_path for e in selection}
        assert offered == {".gitignore", "doc/keep.txt", "top.md"}

        doc = AggregationPipeline().generate(selection, "", tmp_path, rules=tree.rules)
        assert {r.path for r in doc.files} == offered

        doc = AggregationPipeline().generate(selection, "", tmp_path)
        assert {r.path for r in doc.files} == offered

    def test_explicit_rules_replace_the_root_gitignore(self, tmp_path: Path):
        make_tree(tmp_path, {".gitignore": "*.md\n", "a.md": "a\n", "b.py": "b\n"})
        selection = files_in(tmp_path, respect_gitignore=False)
        doc = AggregationPipeline().generate(selection, "", tmp_path, rules=compile_rules(["*.py"]))
        assert [r.path for r in doc.files] == [".gitignore", "a.md"]

        doc = AggregationPipeline().generate(selection, "", tmp_path, rules=[])
        assert [r.path for r in doc.files] == [".gitignore", "a.md", "b.py"]


class _LateEvent(threading.Event):
    """Reports set only after ``after`` checks have been made."""

    def __init__(self, after: int):
        super().__init__()
        self.after = after
        self.checks = 0

    def is_set(self) -> bool:
        self.checks += 1
        return self.checks > self.after


def test_cancel_after_collection_keeps_document(tmp_path: Path):
    make_tree(tmp_path, {"only.py": "x = 1\n"})
    # one check in the worker, one in the collector; anything later is too late
    cancel = _LateEvent(after=2)
    doc = AggregationPipeline(max_workers=1).generate(
        files_in(tmp_path), "", tmp_path, cancel_event=cancel
    )
    assert [r.path for r in doc.files] == ["only.py"]


def test_control_characters_survive_xml_rendering(tmp_path: Path):
    (tmp_path / "colors.log").write_bytes(b"\x1b[31mred\x1b[0m\x00end\n")
    doc = AggregationPipeline().generate(files_in(tmp_path), "bell\x07", tmp_path)
    text = render_xml(doc)
    root = ET.fromstring(text.split("\n", 1)[1])
    content = root.find("files/file/filecontents").text
    assert content == "\ufffd[31mred\ufffd[0m\ufffdend\n"
    assert root.find("instructions").text == "bell\ufffd"
