"""Configuration file parsing utilities."""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from roast.config.schemas import PluginManifest
from roast.errors import RoastError
from roast.utils.filesystem import write_text_file

# Manifest file names, in lookup order
MANIFEST_FILES = ("roast.yml", "roast.yaml")


class ConfigError(RoastError):
    """Error loading or parsing configuration."""

    code = 6

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


def load_json(path: Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Args:
        path: Path to the JSON file

    Returns:
        Parsed JSON as a dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}", path)

    try:
        with open(path, encoding="utf-8") as f:
            result = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}", path) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e

    if not isinstance(result, dict):
        raise ConfigError(f"JSON file must contain an object: {path}", path)
    return result


def save_json(path: Path, data: dict[str, Any], indent: int = 2) -> None:
    """Save data to a JSON file.

    Args:
        path: Path to write to
        data: Data to serialize
        indent: JSON indentation level
    """
    write_text_file(path, json.dumps(data, indent=indent, default=str) + "\n")


def load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML as a dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}", path)

    try:
        with open(path, encoding="utf-8") as f:
            result = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e

    if result is None:
        return {}
    if not isinstance(result, dict):
        raise ConfigError(f"YAML file must contain a mapping: {path}", path)
    return result


def find_plugin_manifest(plugin_path: Path) -> Path | None:
    """Return the manifest file of a plugin directory, if it ships one."""
    for name in MANIFEST_FILES:
        candidate = plugin_path / name
        if candidate.is_file():
            return candidate
    return None


def load_plugin_manifest(plugin_path: Path) -> PluginManifest | None:
    """Load the plugin manifest from a plugin directory.

    Args:
        plugin_path: Path to the plugin directory

    Returns:
        Parsed PluginManifest, or None if the directory has no manifest

    Raises:
        ConfigError: If the manifest exists but is invalid
    """
    manifest_path = find_plugin_manifest(plugin_path)
    if manifest_path is None:
        return None

    data = load_yaml(manifest_path)
    try:
        return PluginManifest.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid plugin manifest: {e}", manifest_path) from e
