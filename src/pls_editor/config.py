"""YAML configuration for pls-editor."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from pls_editor.exceptions import ConfigError


@dataclass(frozen=True, slots=True)
class EditorConfig:
    """Settings shared by the editing session, the stores and the CLI."""

    database: str = ":memory:"
    default_language: str = "en-US"
    lexicon_base_url: str = "https://skillsoftlexicons.blob.core.windows.net/lexicons"
    preview_base_url: str = "https://web-tts-content-development.dev.eastus.aks.skillsoft.com"
    list_retry_attempts: int = 3
    list_retry_delay: float = 1.0
    max_settings_backups: int = 20
    probe_lexicon_urls: bool = True
    probe_timeout: float = 5.0

    def lexicon_url(self, filename: str) -> str:
        """Public URL of a stored lexicon file."""
        return f"{self.lexicon_base_url.rstrip('/')}/{filename}"


_TYPES: dict[str, tuple[type, ...]] = {
    "database": (str,),
    "default_language": (str,),
    "lexicon_base_url": (str,),
    "preview_base_url": (str,),
    "list_retry_attempts": (int,),
    "list_retry_delay": (int, float),
    "max_settings_backups": (int,),
    "probe_lexicon_urls": (bool,),
    "probe_timeout": (int, float),
}


def load_config(source: str | Path | dict[str, Any] | None = None) -> EditorConfig:
    """Load configuration from a YAML file, a YAML string or a mapping.

    Raises:
        ConfigError: If the YAML is invalid or holds unknown or mistyped keys
        FileNotFoundError: If a path is given that does not exist
    """
    if source is None:
        return EditorConfig()
    if isinstance(source, dict):
        data = source
    elif isinstance(source, Path) or _is_file_path(source):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = _load_yaml(f.read())
    else:
        data = _load_yaml(source)
    return _build(data)


def _is_file_path(s: str) -> bool:
    if "\n" in s:
        return False
    return "/" in s or "\\" in s or s.endswith((".yaml", ".yml"))


def _load_yaml(text: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line = mark.line + 1 if mark else None
        raise ConfigError(f"Invalid YAML: {e}", line=line) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("YAML root must be a mapping (dictionary)")
    return data


def _build(data: dict[str, Any]) -> EditorConfig:
    known = {f.name for f in fields(EditorConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    for key, value in data.items():
        expected = _TYPES[key]
        # bool is an int subclass
        if isinstance(value, bool) and bool not in expected:
            raise ConfigError(f"{key} must be {expected[0].__name__}")
        if not isinstance(value, expected):
            raise ConfigError(f"{key} must be {expected[0].__name__}")
    if data.get("list_retry_attempts", 1) < 1:
        raise ConfigError("list_retry_attempts must be at least 1")
    if data.get("max_settings_backups", 1) < 1:
        raise ConfigError("max_settings_backups must be at least 1")
    return EditorConfig(**data)
