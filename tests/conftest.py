"""Shared fixtures for openprompt tests."""

from pathlib import Path
from typing import Dict

import pytest


def make_tree(root: Path, files: Dict[str, str]) -> Path:
    """Create ``files`` (relative path -> content) under ``root``."""
    for rel, content in files.items():
        path = root / rel
        if rel.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project with a .gitignore, nested sources and ignored dirs."""
    root = tmp_path / "project"
    root.mkdir()
    return make_tree(
        root,
        {
            ".gitignore": "# deps\nnode_modules\n.env\n!important/.env\nbuild/\nlogs/**\n*.log\n",
            ".env": "SECRET=1\n",
            "README.md": "# Project\n",
            "main.py": "print('hi')\n",
            "src/app.py": "x = 1\n" * 10,
            "src/util.go": "package util\n",
            "src/node_modules/lib.js": "module.exports = 1\n",
            "src/debug.log": "noise\n",
            "important/.env": "KEEP=1\n",
            "build/out.bin": "bin\n",
            "logs/2024/a.txt": "log\n",
            "docs/guide.md": "guide\n",
        },
    )
