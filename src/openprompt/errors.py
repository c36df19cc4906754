"""
Exception hierarchy for openprompt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .generator import PromptDocument


class OpenPromptError(Exception):
    """Base exception for openprompt errors."""


class InvalidRootError(OpenPromptError):
    """Raised when the directory to scan cannot be opened."""


class ConfigFileError(OpenPromptError):
    """Raised when there are issues with config files."""


class OutputError(OpenPromptError):
    """Raised when the generated document cannot be written."""


class FileReadError(OpenPromptError):
    """Raised when a single selected file cannot be read."""

    def __init__(self, path: str, reason: Exception | str):
        self.path = path
        self.reason = reason
        super().__init__(f"error reading file {path}: {reason}")


class PartialReadError(OpenPromptError):
    """
    Raised when some selected files failed to read.

    The document still holds every file that was read successfully, so callers
    should treat this as a partial success rather than a total failure.
    """

    def __init__(
        self,
        document: "PromptDocument",
        failures: List[FileReadError],
    ):
        self.document = document
        self.failures = failures
        super().__init__(
            f"{len(failures)} of {len(failures) + len(document.files)} files "
            f"could not be read (last: {self.last_error})"
        )

    @property
    def last_error(self) -> Optional[FileReadError]:
        return self.failures[-1] if self.failures else None


class GenerationCancelled(OpenPromptError):
    """Raised when a generation run is cancelled before it completes."""


class PreferencesError(OpenPromptError):
    """Raised when preferences cannot be loaded or saved."""


class ClipboardError(OpenPromptError):
    """Raised when the document cannot be delivered to the clipboard."""
