"""
Serialization of a :class:`PromptDocument`.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from pathlib import PurePosixPath
from typing import Dict, List

from .generator import PromptDocument

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

# characters XML 1.0 does not allow, even escaped
_XML_INVALID = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

_LANG_MAP: Dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "tsx": "tsx",
    "jsx": "jsx",
    "json": "json",
    "yml": "yaml",
    "yaml": "yaml",
    "toml": "toml",
    "css": "css",
    "scss": "scss",
    "html": "html",
    "md": "markdown",
    "sh": "bash",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "sql": "sql",
    "xml": "xml",
}


def _lang_from_type(file_type: str) -> str:
    return _LANG_MAP.get(file_type.lower(), "")


def _xml_text(text: str) -> str:
    return _XML_INVALID.sub("\ufffd", text)


def render_xml(document: PromptDocument) -> str:
    """
    Render ``document`` as::

        <prompt>
          <files>
            <file path="src/a.py" type="py">
              <filecontents>...</filecontents>
            </file>
          </files>
          <instructions>...</instructions>
        </prompt>
    """
    prompt = ET.Element("prompt")
    files_el = ET.SubElement(prompt, "files")
    for record in document.files:
        attrs = {"path": _xml_text(record.path), "type": _xml_text(record.type)}
        file_el = ET.SubElement(files_el, "file", attrs)
        contents = ET.SubElement(file_el, "filecontents")
        contents.text = _xml_text(record.content)
    ET.SubElement(prompt, "instructions").text = _xml_text(document.instructions)
    ET.indent(prompt, space="  ")
    return XML_HEADER + ET.tostring(prompt, encoding="unicode")


def build_project_tree(paths: List[str]) -> str:
    """
    Return an ASCII tree of relative POSIX paths, directories listed first.

    Every ancestor directory is shown so the hierarchy is complete.
    """
    tree: dict = {}
    for rel in paths:
        parts = PurePosixPath(rel).parts
        cur = tree
        for part in parts[:-1]:
            cur = cur.setdefault(part, {})
            if cur is None:
                break
        else:
            cur.setdefault(parts[-1], None)

    lines: List[str] = []

    def _walk(node: dict, prefix: str = "") -> None:
        items = sorted(node.items(), key=lambda kv: (kv[1] is None, kv[0]))  # dirs first
        for idx, (name, child) in enumerate(items):
            last = idx == len(items) - 1
            connector = "└── " if last else "├── "
            lines.append(f"{prefix}{connector}{name}{'/' if child is not None else ''}")
            if child is not None:
                _walk(child, prefix + ("    " if last else "│   "))

    _walk(tree)
    return "\n".join(lines)


def render_markdown(document: PromptDocument) -> str:
    """Render ``document`` as a project tree, fenced files, then instructions."""
    out: List[str] = ["## Project Tree", "", "```"]
    out.append(build_project_tree([r.path for r in document.files]))
    out += ["```", "", "## Files", ""]
    for record in document.files:
        lang = _lang_from_type(record.type)
        fence = "````" if "```" in record.content else "```"
        out.append(f"### {record.path}")
        out.append(f"{fence}{lang}")
        out.append(record.content.rstrip("\n"))
        out.append(fence)
        out.append("")
    out += ["## Instructions", "", document.instructions, ""]
    return "\n".join(out)


RENDERERS = {
    "xml": render_xml,
    "markdown": render_markdown,
}
