"""
CLI entrypoint for openprompt.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__, console
from .clipboard import copy_to_clipboard
from .errors import (
    ClipboardError,
    ConfigFileError,
    InvalidRootError,
    OutputError,
    PartialReadError,
    PreferencesError,
)
from .generator import AggregationPipeline, PromptDocument
from .ignore import load_extra_patterns
from .preferences import PreferenceStore, Preferences
from .render import RENDERERS
from .scanner import FilterConfig, parse_extensions, parse_ignore_patterns
from .tokens import count_tokens, format_token_count
from .tree import FileTree, format_tree

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2

DEFAULT_TOKEN_LIMIT = 8192


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="openprompt",
        description="Bundle project files and instructions into a single LLM prompt.",
    )
    p.add_argument("root", nargs="?", type=Path, help="Project root dir (default: last used, else .)")
    p.add_argument("--ext", help="Comma-separated extensions to include, e.g. py,md")
    p.add_argument("--name", help="Glob the file name must match, e.g. 'test_*'")
    p.add_argument("--ignore", help="Comma-separated name globs to skip, e.g. 'dist,*.lock'")
    p.add_argument("--no-gitignore", action="store_true", help="Do not apply the root .gitignore")
    p.add_argument(
        "--config",
        type=Path,
        help="Path to a file with extra ignore patterns (one per line)",
    )
    p.add_argument("--max-depth", type=int, help="Only list entries this many levels deep")
    p.add_argument("-i", "--instructions", default="", help="Instructions for the LLM")
    p.add_argument("--instructions-file", type=Path, help="Read instructions from a file")
    p.add_argument("--format", choices=sorted(RENDERERS), default="xml", help="Output format (default xml)")
    p.add_argument("--out", type=Path, help="Write the prompt to a file instead of the clipboard")
    p.add_argument("--stdout", action="store_true", help="Print the prompt instead of copying it")
    p.add_argument("--tree", action="store_true", help="Print the file tree with token counts and exit")
    p.add_argument(
        "--select",
        action="append",
        default=[],
        metavar="PATH",
        help="File or directory (relative to root) to include; repeatable. Default: everything",
    )
    p.add_argument(
        "--token-limit",
        type=int,
        default=DEFAULT_TOKEN_LIMIT,
        help=f"Warn when the estimate exceeds this many tokens (default {DEFAULT_TOKEN_LIMIT})",
    )
    p.add_argument("--workers", type=int, help="Reader threads (default 2x CPU count)")
    p.add_argument("--no-save-prefs", action="store_true", help="Do not remember directory and filters")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def _filters_from_args(ns: argparse.Namespace, prefs: Preferences, extra: List[str]) -> FilterConfig:
    base = prefs.filter_config()
    return FilterConfig(
        extensions=parse_extensions(ns.ext) if ns.ext is not None else base.extensions,
        name_pattern=ns.name if ns.name is not None else base.name_pattern,
        ignore_patterns=parse_ignore_patterns(ns.ignore) if ns.ignore is not None else base.ignore_patterns,
        respect_gitignore=False if ns.no_gitignore else base.respect_gitignore,
        extra_ignore_lines=tuple(extra),
        max_depth=ns.max_depth,
    )


def _select_paths(tree: FileTree, paths: List[str]) -> List[str]:
    """Select each root-relative path in ``tree``; return the ones not found."""
    missing: List[str] = []
    for rel in paths:
        entry = tree.find(rel)
        if entry is None:
            missing.append(rel)
            continue
        tree.set_selected(entry, True)
    return missing


def _deliver(text: str, ns: argparse.Namespace) -> None:
    if ns.out:
        try:
            out_path = ns.out.resolve()
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(text, encoding="utf-8", newline="\n")
        except (OSError, RuntimeError) as e:
            raise OutputError(f"Could not write '{ns.out}': {e}")
        if ns.verbose:
            console.success(f"Done → {out_path}")
    elif ns.stdout:
        sys.stdout.write(text)
    else:
        copy_to_clipboard(text)
        if ns.verbose:
            console.success("Prompt copied to clipboard")


def main(argv: Optional[List[str]] = None) -> int:
    try:
        ns = _parse_args(argv)
        store = PreferenceStore()
        try:
            prefs = store.load()
        except PreferencesError as e:
            console.warn(str(e))
            prefs = Preferences()

        extra: List[str] = []
        if ns.config:
            try:
                extra = load_extra_patterns(ns.config.resolve())
                if ns.verbose:
                    console.info(f"Loaded extra patterns from {ns.config}")
            except ConfigFileError as e:
                print(f"Error: {e}", file=sys.stderr)
                return EXIT_ERROR

        root = ns.root or (Path(prefs.last_directory) if prefs.last_directory else Path("."))
        filters = _filters_from_args(ns, prefs, extra)

        if ns.instructions_file:
            try:
                instructions = ns.instructions_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                print(f"Error: could not read instructions: {e}", file=sys.stderr)
                return EXIT_ERROR
        else:
            instructions = ns.instructions

        if ns.verbose:
            console.info(f"Scanning {root} …")

        tree = FileTree(root, filters, verbose=ns.verbose)
        try:
            tree.load()
        except InvalidRootError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

        if not ns.no_save_prefs:
            prefs.last_directory = str(tree.root)
            prefs.remember_filters(filters)
            try:
                store.save(prefs)
            except PreferencesError as e:
                console.warn(str(e))

        if ns.tree:
            print(format_tree(tree.roots))
            print(f"Total: {format_token_count(tree.total_tokens())} tokens")
            return EXIT_OK

        if ns.select:
            missing = _select_paths(tree, ns.select)
            if missing:
                print(f"Error: Not found under {tree.root}: {', '.join(missing)}", file=sys.stderr)
                return EXIT_ERROR
        else:
            tree.select_all()
        selection = tree.selected_files()
        if not selection:
            print("Error: No files selected.", file=sys.stderr)
            return EXIT_ERROR

        estimate = tree.selected_tokens()
        if ns.verbose:
            console.info(
                f"{len(selection)} files selected, "
                f"~{format_token_count(estimate)} tokens"
            )
        if ns.token_limit and estimate > ns.token_limit:
            console.warn(
                f"~{format_token_count(estimate)} tokens exceeds limit of "
                f"{format_token_count(ns.token_limit)}"
            )

        pipeline = AggregationPipeline(
            max_workers=ns.workers,
            respect_gitignore=filters.respect_gitignore,
            verbose=ns.verbose,
        )
        status = EXIT_OK
        try:
            document: PromptDocument = pipeline.generate(
                selection, instructions, tree.root, rules=tree.rules
            )
        except PartialReadError as e:
            console.warn(str(e))
            document = e.document
            status = EXIT_PARTIAL

        text = RENDERERS[ns.format](document)
        try:
            _deliver(text, ns)
        except (OutputError, ClipboardError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

        if ns.verbose:
            console.info(
                f"{len(document.files)} files, "
                f"{format_token_count(count_tokens(text))} tokens in prompt"
            )
        return status

    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
