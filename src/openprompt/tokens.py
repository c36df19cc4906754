"""
Token estimation helpers.

Sizes are turned into token estimates with the usual rule of thumb of one
token per four bytes. When ``tiktoken`` is installed, :func:`count_tokens`
gives an exact count for a piece of text instead.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

DEFAULT_ENCODING = "cl100k_base"
BYTES_PER_TOKEN = 4


def estimate_tokens_from_size(size: int) -> int:
    return max(0, int(size)) // BYTES_PER_TOKEN


@lru_cache(maxsize=None)
def _get_encoder(encoding: str) -> Optional[Any]:
    try:
        import tiktoken  # type: ignore
    except ImportError:
        return None
    try:
        return tiktoken.get_encoding(encoding)
    except Exception:
        return None


def count_tokens(text: str, encoding: str = DEFAULT_ENCODING) -> int:
    """
    Count tokens in ``text``.

    Uses ``tiktoken`` when it is installed and ``encoding`` can be loaded,
    otherwise falls back silently to ``len(text) // 4``.
    """
    enc = _get_encoder(encoding)
    if enc is None:
        return len(text) // BYTES_PER_TOKEN
    try:
        return len(enc.encode(text, disallowed_special=()))
    except Exception:
        return len(text) // BYTES_PER_TOKEN


def format_token_count(count: int) -> str:
    """Format a token count for display: ``999``, ``1.2K``, ``3.5M``."""
    if count < 1000:
        return f"{count}"
    if count < 1_000_000:
        return f"{count / 1000:.1f}K"
    return f"{count / 1_000_000:.1f}M"
