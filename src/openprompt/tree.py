"""
Hierarchical file tree built from a flat scan.

:func:`build_file_tree` places every scanned entry under its parent using an
index over the flat list, so no entry is dropped or placed twice.
:class:`FileTree` holds one scan of a root directory, expands directories on
demand, and tracks selection and token totals.
"""

from __future__ import annotations

import dataclasses
import threading
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from . import console
from .errors import InvalidRootError
from .ignore import IgnoreRule
from .scanner import Entry, FilterConfig, compile_scan_rules, scan_directory
from .tokens import format_token_count


def _sort_key(entry: Entry):
    return (not entry.is_dir, entry.name)


def _has_ancestor(parents: List[Optional[int]], start: int, target: int) -> bool:
    seen = set()
    cur: Optional[int] = start
    while cur is not None and cur not in seen:
        if cur == target:
            return True
        seen.add(cur)
        cur = parents[cur]
    return False


def build_file_tree(entries: Iterable[Entry]) -> List[Entry]:
    """
    Arrange a flat entry list into sorted root entries.

    Files go under their parent directory when it is part of the list, else
    they become roots. Directories are placed the same way, except that a
    directory is never made its own parent or the child of one of its own
    descendants. Whatever is left unplaced becomes a root. Every sibling group
    lists directories first, then names in ascending (case-sensitive) order.
    """
    arena: List[Entry] = []
    seen_ids = set()
    for entry in entries:
        if id(entry) in seen_ids:
            continue
        seen_ids.add(id(entry))
        arena.append(entry)

    dir_index: Dict[Path, int] = {}
    for i, entry in enumerate(arena):
        if entry.is_dir:
            entry.children = []
            dir_index.setdefault(entry.path, i)

    parents: List[Optional[int]] = [None] * len(arena)

    for i, entry in enumerate(arena):
        if entry.is_dir:
            continue
        parents[i] = dir_index.get(entry.path.parent)

    for i, entry in enumerate(arena):
        if not entry.is_dir:
            continue
        p = dir_index.get(entry.path.parent)
        if p is None or p == i or entry.path.parent == entry.path:
            continue
        if _has_ancestor(parents, p, i):
            continue
        parents[i] = p

    roots: List[Entry] = []
    for i, entry in enumerate(arena):
        p = parents[i]
        if p is None:
            roots.append(entry)
        else:
            arena[p].children.append(entry)

    roots.sort(key=_sort_key)
    for entry in arena:
        if entry.is_dir and entry.children:
            entry.children.sort(key=_sort_key)

    for root in roots:
        calculate_directory_tokens(root)
    return roots


def calculate_directory_tokens(entry: Entry) -> int:
    """Recompute and store the token total of ``entry`` and its subtree."""
    if not entry.is_dir:
        return entry.token_count
    entry.token_count = sum(calculate_directory_tokens(c) for c in entry.children)
    return entry.token_count


def iter_tree(roots: Iterable[Entry]) -> Iterator[Entry]:
    """Depth-first, pre-order walk over already materialized entries."""
    stack = list(reversed(list(roots)))
    while stack:
        entry = stack.pop()
        yield entry
        if entry.children:
            stack.extend(reversed(entry.children))


def flatten_tree(roots: Iterable[Entry]) -> List[Entry]:
    return list(iter_tree(roots))


def collect_selected(roots: Iterable[Entry]) -> List[Entry]:
    """Selected file entries among the materialized tree, in tree order."""
    return [e for e in iter_tree(roots) if e.selected and not e.is_dir]


def format_tree(roots: Iterable[Entry], show_tokens: bool = True) -> str:
    """Render entries like the Unix ``tree`` utility."""
    lines: List[str] = []

    def _walk(nodes: List[Entry], prefix: str) -> None:
        for idx, node in enumerate(nodes):
            last = idx == len(nodes) - 1
            connector = "└── " if last else "├── "
            label = node.name + ("/" if node.is_dir else "")
            if show_tokens:
                label += f" [{format_token_count(node.token_count)} tokens]"
            lines.append(f"{prefix}{connector}{label}")
            _walk(node.children, prefix + ("    " if last else "│   "))

    _walk(list(roots), "")
    return "\n".join(lines)


class FileTree:
    """
    A scanned directory tree that grows as directories are expanded.

    Ignore rules are compiled once per :meth:`load` and reused for every
    expansion under the same root, so the whole tree is filtered by one
    consistent rule set. Each directory is scanned at most once per load.
    """

    def __init__(
        self,
        root: Path,
        filters: FilterConfig = FilterConfig(),
        verbose: bool = False,
    ):
        self.root = Path(root)
        self.filters = filters
        self.verbose = verbose
        self.roots: List[Entry] = []
        self.generation = 0
        self._rules: Optional[List[IgnoreRule]] = None
        self._lock = threading.RLock()

    def load(self) -> List[Entry]:
        """Scan the root and replace the current tree. Raises on a bad root."""
        with self._lock:
            root = self.root.resolve()
            rules = compile_scan_rules(root, self.filters) if self.filters.uses_rules else None
            entries = scan_directory(root, self.filters, rules=rules)
            self.root = root
            self._rules = rules
            self.roots = build_file_tree(entries)
            self.generation += 1
            if self.verbose:
                console.info(f"Loaded {len(self.roots)} root files/directories")
            return self.roots

    @property
    def rules(self) -> List[IgnoreRule]:
        """The ignore rules compiled by the last :meth:`load` (empty when none apply)."""
        return list(self._rules or [])

    def expand(self, entry: Entry) -> List[Entry]:
        """Materialize the children of ``entry`` if they were never loaded."""
        if not entry.is_dir:
            return []
        with self._lock:
            if entry.expanded:
                return entry.children
            sub_filters = dataclasses.replace(self.filters, sub_path=entry.rel_path)
            try:
                entries = scan_directory(self.root, sub_filters, rules=self._rules)
            except InvalidRootError as e:
                if self.verbose:
                    console.warn(f"Could not load children of {entry.rel_path}: {e}")
                entries = []
            entry.children = build_file_tree(entries)
            entry.expanded = True
            self.recalculate_tokens()
            if self.verbose:
                console.info(f"Loaded {len(entry.children)} children for {entry.rel_path}")
            return entry.children

    def recalculate_tokens(self) -> int:
        with self._lock:
            return sum(calculate_directory_tokens(r) for r in self.roots)

    def total_tokens(self) -> int:
        return sum(r.token_count for r in self.roots)

    def set_selected(self, entry: Entry, selected: bool) -> None:
        """Select or clear ``entry``; directories apply to their whole subtree."""
        with self._lock:
            stack = [entry]
            while stack:
                node = stack.pop()
                node.selected = selected
                if not node.is_dir:
                    continue
                if selected:
                    self.expand(node)
                stack.extend(node.children)

    def select_all(self, selected: bool = True) -> None:
        for root in list(self.roots):
            self.set_selected(root, selected)

    def find(self, rel_path: str) -> Optional[Entry]:
        """Find an entry by root-relative path, expanding directories on the way."""
        parts = [p for p in Path(rel_path).as_posix().split("/") if p and p != "."]
        nodes = self.roots
        found: Optional[Entry] = None
        for depth, part in enumerate(parts):
            found = next((n for n in nodes if n.name == part), None)
            if found is None:
                return None
            if depth < len(parts) - 1:
                nodes = self.expand(found)
        return found

    def selected_files(self) -> List[Entry]:
        """
        Return copies of every selected file, safe to hand to another thread.

        Selected directories are expanded first so their files are included.
        """
        with self._lock:
            for node in list(iter_tree(self.roots)):
                if node.is_dir and node.selected and not node.expanded:
                    self.set_selected(node, True)
            return [
                dataclasses.replace(e, children=[])
                for e in collect_selected(self.roots)
            ]

    def selected_tokens(self) -> int:
        return sum(e.token_count for e in collect_selected(self.roots))
