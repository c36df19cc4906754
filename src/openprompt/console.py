"""
Prefixed, colored status output on stderr.
"""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from colorama import Fore, Style, init as colorama_init

colorama_init()

PREFIX = "[openprompt]"


def _emit(msg: str, color: str = "", stream: Optional[TextIO] = None) -> None:
    out = stream if stream is not None else sys.stderr
    line = f"{PREFIX} {msg}"
    if color:
        line = color + line + Style.RESET_ALL
    print(line, file=out)


def info(msg: str, stream: Optional[TextIO] = None) -> None:
    _emit(msg, stream=stream)


def warn(msg: str, stream: Optional[TextIO] = None) -> None:
    _emit(msg, Fore.YELLOW, stream)


def success(msg: str, stream: Optional[TextIO] = None) -> None:
    _emit(msg, Fore.GREEN, stream)


def error(msg: str, stream: Optional[TextIO] = None) -> None:
    _emit(msg, Fore.RED, stream)
