"""
Ignore-file pattern matching.

Lines from a ``.gitignore`` are compiled once into an ordered list of
:class:`IgnoreRule` objects. Each rule is classified up front so that matching
a candidate path only has to run the strategy for that rule's kind:

* ``SEGMENT_GLOB`` - the pattern contains ``**`` (``logs/**``, ``**/tmp``)
* ``ROOT_ANCHORED`` - the pattern contains ``/`` and is matched against the
  path from the scan root
* ``WILDCARD_BASENAME`` - a glob without ``/`` matched against any segment
* ``LITERAL`` - a plain name matched against any segment

Rules are evaluated in source order and the last matching rule decides.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, List

from .errors import ConfigFileError

IGNORE_FILENAME = ".gitignore"

_GLOB_CHARS = ("*", "?", "[")


class RuleKind(enum.Enum):
    SEGMENT_GLOB = "segment-glob"
    ROOT_ANCHORED = "root-anchored"
    WILDCARD_BASENAME = "wildcard-basename"
    LITERAL = "literal"


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    body: str
    negated: bool
    dir_only: bool
    kind: RuleKind


def _has_glob(text: str) -> bool:
    return any(ch in text for ch in _GLOB_CHARS)


def _glob(pattern: str, name: str) -> bool:
    # fnmatch never raises on odd input (an unclosed "[" is taken literally),
    # the guard keeps a bad line from ever aborting a walk.
    try:
        return fnmatchcase(name, pattern)
    except (re.error, TypeError):
        return False


def _classify(body: str) -> RuleKind:
    if "**" in body:
        return RuleKind.SEGMENT_GLOB
    if "/" in body:
        return RuleKind.ROOT_ANCHORED
    if _has_glob(body):
        return RuleKind.WILDCARD_BASENAME
    return RuleKind.LITERAL


def compile_rule(line: str) -> IgnoreRule | None:
    """Compile a single ignore-file line, or return ``None`` for blanks/comments."""
    raw = line.strip()
    if not raw or raw.startswith("#"):
        return None

    body = raw
    negated = body.startswith("!")
    if negated:
        body = body[1:]

    dir_only = body.endswith("/")
    if dir_only:
        body = body.rstrip("/")

    if not body:
        return None
    return IgnoreRule(
        pattern=raw,
        body=body,
        negated=negated,
        dir_only=dir_only,
        kind=_classify(body),
    )


def compile_rules(lines: Iterable[str]) -> List[IgnoreRule]:
    """Compile ignore-file lines into rules, preserving source order."""
    rules: List[IgnoreRule] = []
    for line in lines:
        rule = compile_rule(line)
        if rule is not None:
            rules.append(rule)
    return rules


def _match_segments(pattern_parts: List[str], parts: List[str]) -> bool:
    if not pattern_parts:
        return not parts
    head, rest = pattern_parts[0], pattern_parts[1:]
    if head == "**":
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return _glob(head, parts[0]) and _match_segments(rest, parts[1:])


def _match_segment_glob(body: str, path: str, parts: List[str]) -> bool:
    if body.endswith("/**"):
        prefix = body[: -len("/**")]
        if path == prefix or path.startswith(prefix + "/"):
            return True
    if body.startswith("**/"):
        suffix = body[len("**/"):]
        if path == suffix or path.endswith("/" + suffix):
            return True
        if _glob(suffix, parts[-1]):
            return True
    # a/**/b, **/x/** and friends: "**" spans zero or more whole segments
    return _match_segments(body.lstrip("/").split("/"), parts)


def _match_anchored(body: str, path: str, parts: List[str]) -> bool:
    body = body.lstrip("/")
    if not _has_glob(body):
        return path == body or path.startswith(body + "/")
    pattern_parts = body.split("/")
    if len(parts) < len(pattern_parts):
        return False
    return all(_glob(p, seg) for p, seg in zip(pattern_parts, parts))


def matches(rule: IgnoreRule, rel_path: str, is_dir: bool) -> bool:
    """Return True when ``rule`` matches ``rel_path`` (POSIX, relative to root)."""
    if rule.dir_only and not is_dir:
        return False

    path = rel_path.replace("\\", "/").strip("/")
    if not path:
        return False
    parts = path.split("/")

    if rule.kind is RuleKind.SEGMENT_GLOB:
        return _match_segment_glob(rule.body, path, parts)
    if rule.kind is RuleKind.ROOT_ANCHORED:
        return _match_anchored(rule.body, path, parts)
    if rule.kind is RuleKind.WILDCARD_BASENAME:
        return any(_glob(rule.body, seg) for seg in reversed(parts))
    return rule.body in parts


def is_ignored(rules: Iterable[IgnoreRule], rel_path: str, is_dir: bool) -> bool:
    """Evaluate every rule in order; the last one that matches wins."""
    ignored = False
    for rule in rules:
        if matches(rule, rel_path, is_dir):
            ignored = not rule.negated
    return ignored


def load_ignore_file(root: Path) -> List[IgnoreRule]:
    """Compile ``<root>/.gitignore``, or return no rules when it is absent."""
    ignore_path = root / IGNORE_FILENAME
    if not ignore_path.is_file():
        return []
    with ignore_path.open("r", encoding="utf-8", errors="replace") as fh:
        return compile_rules(fh)


def load_extra_patterns(config_path: Path) -> List[str]:
    """Read a user config file of additional ignore lines."""
    if not config_path.exists():
        raise ConfigFileError(f"Config file '{config_path}' does not exist")
    if not config_path.is_file():
        raise ConfigFileError(f"'{config_path}' is not a file")
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            return [
                ln.strip()
                for ln in fh
                if ln.strip() and not ln.lstrip().startswith("#")
            ]
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Could not read config file '{config_path}': {e}")
