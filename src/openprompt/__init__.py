"""
OpenPrompt - A tool for turning a selection of project files into an LLM prompt.

This package scans a directory tree, filters entries through .gitignore-style
rules and user filters, builds a lazily expandable file tree for selection,
and reads the selected files concurrently into a single XML (or Markdown)
document together with free-text instructions.
"""

__version__ = "0.2.0"
__author__ = "OpenPrompt Team"

from .errors import (
    ClipboardError,
    ConfigFileError,
    FileReadError,
    GenerationCancelled,
    InvalidRootError,
    OpenPromptError,
    OutputError,
    PartialReadError,
    PreferencesError,
)
from .generator import AggregationPipeline, BufferPool, FileRecord, PromptDocument
from .ignore import IgnoreRule, RuleKind, compile_rules, is_ignored, matches
from .scanner import Entry, FilterConfig, scan_directory
from .tokens import format_token_count
from .tree import FileTree, build_file_tree, flatten_tree

__all__ = [
    "AggregationPipeline",
    "BufferPool",
    "ClipboardError",
    "ConfigFileError",
    "Entry",
    "FileReadError",
    "FileRecord",
    "FileTree",
    "FilterConfig",
    "GenerationCancelled",
    "IgnoreRule",
    "InvalidRootError",
    "OpenPromptError",
    "OutputError",
    "PartialReadError",
    "PreferencesError",
    "PromptDocument",
    "RuleKind",
    "build_file_tree",
    "compile_rules",
    "flatten_tree",
    "format_token_count",
    "is_ignored",
    "matches",
    "scan_directory",
]
