"""
Concurrent prompt generation.

:class:`AggregationPipeline` reads a frozen selection of files on a thread
pool and assembles a :class:`PromptDocument`. A file that cannot be read does
not stop the run: every other file still ends up in the document, and the
failures are reported together through :class:`PartialReadError`.
"""

from __future__ import annotations

import os
import queue
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import pathspec  # type: ignore

from . import console
from .errors import FileReadError, GenerationCancelled, PartialReadError
from .ignore import IgnoreRule, is_ignored, load_ignore_file
from .scanner import Entry

DEFAULT_BUFFER_SIZE = 64 * 1024
PROGRESS_EVERY = 500

# OS metadata files that never belong in a prompt
NOISE_SPEC = pathspec.GitIgnoreSpec.from_lines([".DS_Store", "Thumbs.db", "desktop.ini"])


@dataclass(frozen=True)
class FileRecord:
    path: str
    type: str
    content: str


@dataclass
class PromptDocument:
    files: List[FileRecord] = field(default_factory=list)
    instructions: str = ""


class BufferPool:
    """
    Reusable read buffers shared by the pipeline's workers.

    Borrowing and returning are safe from any thread. When every buffer is in
    use a fresh one is allocated; at most ``capacity`` buffers are kept.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE, capacity: int = 64):
        self.buffer_size = buffer_size
        self._free: "queue.LifoQueue[bytearray]" = queue.LifoQueue(maxsize=capacity)

    def get(self) -> bytearray:
        try:
            return self._free.get_nowait()
        except queue.Empty:
            return bytearray(self.buffer_size)

    def put(self, buf: bytearray) -> None:
        if len(buf) != self.buffer_size:
            return
        try:
            self._free.put_nowait(buf)
        except queue.Full:
            pass

    @contextmanager
    def borrow(self) -> Iterator[bytearray]:
        buf = self.get()
        try:
            yield buf
        finally:
            self.put(buf)

    @property
    def available(self) -> int:
        return self._free.qsize()


def read_file_with_buffer(path: Path, buffer: bytearray) -> str:
    """Read ``path`` into ``buffer`` when it fits, else with a one-off read."""
    with open(path, "rb") as fh:
        size = os.fstat(fh.fileno()).st_size
        if size <= len(buffer):
            view = memoryview(buffer)
            try:
                n = fh.readinto(view[:size]) or 0
                data = bytes(view[:n])
            finally:
                view.release()
        else:
            data = fh.read()
    return data.decode("utf-8", errors="replace")


def _relative(path: Path, base_dir: Path) -> str:
    try:
        return path.relative_to(base_dir).as_posix()
    except ValueError:
        rel = os.path.relpath(path, base_dir)
        return Path(rel).as_posix()


class AggregationPipeline:
    """
    Reads selected files concurrently into a :class:`PromptDocument`.

    The buffer pool is owned by the instance (or injected), so two pipelines
    never share buffers. The calling thread is the only one that touches the
    collected records.
    """

    def __init__(
        self,
        buffer_pool: Optional[BufferPool] = None,
        max_workers: Optional[int] = None,
        respect_gitignore: bool = True,
        verbose: bool = False,
    ):
        self.buffer_pool = buffer_pool if buffer_pool is not None else BufferPool()
        self.max_workers = max_workers or (os.cpu_count() or 1) * 2
        self.respect_gitignore = respect_gitignore
        self.verbose = verbose

    def _read_one(
        self,
        entry: Entry,
        base_dir: Path,
        rules: Optional[List[IgnoreRule]],
        cancel_event: threading.Event,
    ) -> Optional[FileRecord]:
        if cancel_event.is_set():
            return None

        path = Path(entry.path)
        if not path.is_absolute():
            path = base_dir / path
        rel = _relative(path, base_dir)

        if NOISE_SPEC.match_file(rel):
            return None
        if rules and is_ignored(rules, rel, is_dir=False):
            return None

        file_type = path.suffix[1:] if path.suffix else ""
        try:
            with self.buffer_pool.borrow() as buf:
                content = read_file_with_buffer(path, buf)
        except OSError as e:
            raise FileReadError(str(path), e) from e
        return FileRecord(path=rel, type=file_type, content=content)

    def generate(
        self,
        selection: Sequence[Entry],
        instructions: str,
        base_dir: Path,
        cancel_event: Optional[threading.Event] = None,
        rules: Optional[List[IgnoreRule]] = None,
    ) -> PromptDocument:
        """
        Read ``selection`` relative to ``base_dir`` and build the document.

        Records are sorted by relative path. Raises :class:`PartialReadError`
        (holding the document of every successful read) when any file fails,
        and :class:`GenerationCancelled` when ``cancel_event`` is set before
        every read has been collected.

        ``rules`` should be the list the selection was scanned with, so a file
        the tree offered is never dropped here; by default the root
        .gitignore is compiled once for the run.
        """
        base_dir = Path(base_dir).resolve()
        cancel = cancel_event if cancel_event is not None else threading.Event()
        files = [e for e in selection if not e.is_dir]
        document = PromptDocument(instructions=instructions)

        if not files:
            return document

        if rules is None and self.respect_gitignore:
            rules = load_ignore_file(base_dir)
        records: List[FileRecord] = []
        failures: List[FileReadError] = []
        total = len(files)
        done = 0
        interrupted = False

        workers = min(self.max_workers, total)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="openprompt") as executor:
            futures: List[Future] = [
                executor.submit(self._read_one, e, base_dir, rules, cancel)
                for e in files
            ]
            try:
                for future in as_completed(futures):
                    if cancel.is_set():
                        interrupted = True
                        break
                    try:
                        record = future.result()
                    except CancelledError:
                        interrupted = True
                        continue
                    except FileReadError as e:
                        failures.append(e)
                        if self.verbose:
                            console.warn(f"! {e}")
                        continue
                    done += 1
                    if record is not None:
                        records.append(record)
                    if self.verbose and done % PROGRESS_EVERY == 0:
                        console.info(f"Processed {done}/{total} files")
            finally:
                if interrupted:
                    for future in futures:
                        future.cancel()

        if interrupted:
            raise GenerationCancelled(
                f"Generation cancelled after {len(records)}/{total} files"
            )

        records.sort(key=lambda r: r.path)
        document.files = records

        if self.verbose:
            console.info(f"Total files processed: {len(records)}/{total}")

        if failures:
            raise PartialReadError(document, failures)
        return document
