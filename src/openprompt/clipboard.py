"""
Clipboard delivery of a rendered prompt.
"""

from __future__ import annotations

import pyperclip

from .errors import ClipboardError


def copy_to_clipboard(text: str) -> None:
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise ClipboardError(f"Failed to copy to clipboard: {e}")
