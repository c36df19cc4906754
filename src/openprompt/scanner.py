"""
Directory scanning.

:func:`scan_directory` walks a directory once and returns a flat list of
:class:`Entry` objects, parents before their contents. Ignored directories are
pruned without being descended into.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence, Tuple

from . import console
from .errors import InvalidRootError
from .ignore import IgnoreRule, compile_rules, is_ignored, load_ignore_file
from .tokens import estimate_tokens_from_size


@dataclass(eq=False)
class Entry:
    """One file or directory seen by the scanner."""

    path: Path
    rel_path: str
    name: str
    is_dir: bool
    size: int = 0
    extension: str = ""
    selected: bool = False
    children: List["Entry"] = field(default_factory=list)
    token_count: int = 0
    expanded: bool = False

    def key(self) -> Tuple[str, str, bool, int, str, int]:
        """Scan-observed fields, for comparing entries across scans."""
        return (
            str(self.path),
            self.rel_path,
            self.is_dir,
            self.size,
            self.extension,
            self.token_count if not self.is_dir else 0,
        )


@dataclass(frozen=True)
class FilterConfig:
    extensions: FrozenSet[str] = frozenset()
    name_pattern: Optional[str] = None
    ignore_patterns: Tuple[str, ...] = ()
    sub_path: Optional[str] = None
    respect_gitignore: bool = True
    extra_ignore_lines: Tuple[str, ...] = ()
    max_depth: Optional[int] = None

    @property
    def uses_rules(self) -> bool:
        return self.respect_gitignore or bool(self.extra_ignore_lines)


def parse_extensions(text: Optional[str]) -> FrozenSet[str]:
    """Parse ``"py, .go,md"`` into ``{"py", "go", "md"}``."""
    if not text:
        return frozenset()
    return frozenset(
        part.strip().lstrip(".") for part in text.split(",") if part.strip().lstrip(".")
    )


def parse_ignore_patterns(text: Optional[str]) -> Tuple[str, ...]:
    if not text:
        return ()
    return tuple(part.strip() for part in text.split(",") if part.strip())


def compile_scan_rules(root: Path, filters: FilterConfig) -> List[IgnoreRule]:
    """Rules for a scan rooted at ``root``: the root .gitignore, then extras."""
    rules: List[IgnoreRule] = []
    if filters.respect_gitignore:
        rules.extend(load_ignore_file(root))
    rules.extend(compile_rules(filters.extra_ignore_lines))
    return rules


def _matches_any(patterns: Sequence[str], name: str) -> bool:
    return any(fnmatchcase(name, pattern) for pattern in patterns)


def _keep_file(name: str, filters: FilterConfig) -> bool:
    if filters.extensions:
        ext = os.path.splitext(name)[1][1:]
        if ext not in filters.extensions:
            return False
    if filters.name_pattern and not fnmatchcase(name, filters.name_pattern):
        return False
    return True


def scan_directory(
    root: Path,
    filters: FilterConfig = FilterConfig(),
    rules: Optional[List[IgnoreRule]] = None,
    verbose: bool = False,
) -> List[Entry]:
    """
    Walk ``root`` (or ``root / filters.sub_path``) and return its entries.

    ``rules`` lets callers reuse a rule list compiled for ``root`` so that
    every lazy expansion under one root sees the same rules; when omitted they
    are compiled here once. Relative paths, and therefore rule matching, are
    always computed against ``root`` even when ``sub_path`` narrows the walk.

    Unreadable entries below the scan directory are skipped. Failing to open
    the scan directory itself raises :class:`InvalidRootError`.
    """
    try:
        root = Path(root).resolve()
    except (OSError, RuntimeError) as e:
        raise InvalidRootError(f"Could not resolve root path '{root}': {e}")

    start = root / filters.sub_path if filters.sub_path else root
    if not start.is_dir():
        raise InvalidRootError(f"Root directory '{start}' does not exist or is not a directory")

    if rules is None and filters.uses_rules:
        rules = compile_scan_rules(root, filters)
    active_rules = rules if filters.uses_rules else None

    try:
        top = sorted(os.scandir(start), key=lambda d: d.name)
    except OSError as e:
        raise InvalidRootError(f"Could not scan directory '{start}': {e}")

    result: List[Entry] = []

    def _walk(dir_entries: List[os.DirEntry], depth: int) -> None:
        for d in dir_entries:
            name = d.name
            try:
                is_dir = d.is_dir(follow_symlinks=False)
                if not is_dir and d.is_symlink() and d.is_dir():
                    # directory symlinks are neither walked nor read as files
                    continue
                st = d.stat(follow_symlinks=not is_dir)
            except OSError:
                continue

            if filters.ignore_patterns and _matches_any(filters.ignore_patterns, name):
                continue

            path = Path(d.path)
            rel = path.relative_to(root).as_posix()
            if active_rules and is_ignored(active_rules, rel, is_dir):
                continue

            if not is_dir and not _keep_file(name, filters):
                continue

            size = 0 if is_dir else int(st.st_size)
            entry = Entry(
                path=path,
                rel_path=rel,
                name=name,
                is_dir=is_dir,
                size=size,
                extension="" if is_dir else os.path.splitext(name)[1],
                token_count=estimate_tokens_from_size(size),
            )
            result.append(entry)

            if not is_dir:
                continue
            if filters.max_depth is not None and depth + 1 >= filters.max_depth:
                continue
            try:
                children = sorted(os.scandir(path), key=lambda c: c.name)
            except OSError:
                continue
            entry.expanded = True
            _walk(children, depth + 1)

    _walk(top, 0)

    if verbose:
        console.info(f"Scanned {start}: {len(result)} entries")
    return result
