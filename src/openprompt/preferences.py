"""
Persisted user preferences: the last directory and the last filters.

Stored as JSON in the platform user config directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from platformdirs import user_config_dir

from .errors import PreferencesError
from .scanner import FilterConfig, parse_extensions, parse_ignore_patterns

APP_NAME = "openprompt"
PREFERENCES_FILENAME = "preferences.json"


def default_preferences_path() -> Path:
    return Path(user_config_dir(APP_NAME, appauthor=False)) / PREFERENCES_FILENAME


@dataclass
class Preferences:
    last_directory: str = ""
    filters: Dict[str, str] = field(default_factory=dict)

    def filter_config(self) -> FilterConfig:
        """Build a FilterConfig from the stored filter strings."""
        f = self.filters
        return FilterConfig(
            extensions=parse_extensions(f.get("extensions")),
            name_pattern=f.get("namePattern") or None,
            ignore_patterns=parse_ignore_patterns(f.get("ignorePatterns")),
            respect_gitignore=f.get("respectGitignore", "true") != "false",
        )

    def remember_filters(self, config: FilterConfig) -> None:
        self.filters = {
            "extensions": ",".join(sorted(config.extensions)),
            "namePattern": config.name_pattern or "",
            "ignorePatterns": ",".join(config.ignore_patterns),
            "respectGitignore": "true" if config.respect_gitignore else "false",
        }


class PreferenceStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = path if path is not None else default_preferences_path()

    def load(self) -> Preferences:
        """Load preferences; a missing file yields defaults."""
        if not self.path.exists():
            return Preferences()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PreferencesError(f"Could not read preferences '{self.path}': {e}")
        if not isinstance(data, dict):
            raise PreferencesError(f"Preferences '{self.path}' is not a JSON object")

        filters = data.get("filters") or {}
        if not isinstance(filters, dict):
            filters = {}
        return Preferences(
            last_directory=str(data.get("lastDirectory") or ""),
            filters={str(k): str(v) for k, v in filters.items()},
        )

    def save(self, prefs: Preferences) -> None:
        payload = {"lastDirectory": prefs.last_directory, "filters": prefs.filters}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise PreferencesError(f"Could not save preferences '{self.path}': {e}")
