"""Pydantic schemas for roast files.

This module defines the data models for:
- roast.yml (plugin manifest shipped inside a plugin directory)
- storage.json (storage snapshot of the manager state)
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Common Types
# =============================================================================


class PluginLang(str, Enum):
    """Language a plugin is written in; selects its default install recipe."""

    PYPIP = "pypip"
    PYPOETRY = "pypoetry"
    GO = "go"
    RUST = "rust"
    DART = "dart"
    JVM = "java"
    JAVASCRIPT = "js"
    TYPESCRIPT = "ts"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "PluginLang":
        """Map a manifest language name (with common aliases) to a PluginLang."""
        if value is None:
            return cls.UNKNOWN
        return _LANG_ALIASES.get(value.strip().lower(), cls.UNKNOWN)


_LANG_ALIASES: dict[str, PluginLang] = {
    "pypip": PluginLang.PYPIP,
    "python": PluginLang.PYPIP,
    "py": PluginLang.PYPIP,
    "pypoetry": PluginLang.PYPOETRY,
    "poetry": PluginLang.PYPOETRY,
    "go": PluginLang.GO,
    "golang": PluginLang.GO,
    "rust": PluginLang.RUST,
    "rs": PluginLang.RUST,
    "dart": PluginLang.DART,
    "java": PluginLang.JVM,
    "kotlin": PluginLang.JVM,
    "scala": PluginLang.JVM,
    "jvm": PluginLang.JVM,
    "js": PluginLang.JAVASCRIPT,
    "javascript": PluginLang.JAVASCRIPT,
    "node": PluginLang.JAVASCRIPT,
    "ts": PluginLang.TYPESCRIPT,
    "typescript": PluginLang.TYPESCRIPT,
    "unknown": PluginLang.UNKNOWN,
}


# =============================================================================
# Plugin Manifest (roast.yml)
# =============================================================================


class PluginSection(BaseModel):
    """The ``plugin`` table of a plugin manifest."""

    name: str
    version: str = "0.0.0"
    lang: PluginLang = PluginLang.UNKNOWN
    description: str | None = None
    install: str | None = None  # Shell script, one command per line
    main: str | None = None  # Entrypoint file, relative to the plugin root

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Plugin names end up as directory names."""
        v = v.strip()
        if not v:
            raise ValueError("Plugin name cannot be empty")
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"Invalid plugin name: {v!r}")
        return v

    @field_validator("lang", mode="before")
    @classmethod
    def validate_lang(cls, v: Any) -> PluginLang:
        if isinstance(v, PluginLang):
            return v
        return PluginLang.parse(str(v) if v is not None else None)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> str:
        # YAML reads `version: 0.1` as a float
        return str(v) if v is not None else "0.0.0"


class PluginManifest(BaseModel):
    """Plugin manifest (roast.yml) schema.

    Example:
        plugin:
          name: btcli4j
          version: 0.0.1
          lang: java
          install: |
            sh -c ./gradlew createRunnableScript
          main: btcli4j-gen.sh
    """

    plugin: PluginSection


# =============================================================================
# Storage Snapshot (storage.json)
# =============================================================================


class RepositoryInfo(BaseModel):
    """Persisted descriptor of a repository.

    ``kind`` selects the concrete repository variant on reload.
    """

    kind: str
    name: str
    url: str
    path: str
    branch: str | None = None
    git_head: str | None = None


class InstalledPlugin(BaseModel):
    """A plugin installed by the manager."""

    name: str
    repository: str
    path: str  # Install directory
    exec_path: str
    lang: PluginLang = PluginLang.UNKNOWN
    version: str | None = None
    dynamic: bool = False  # Resolved without a default install recipe


class ManagerConfig(BaseModel):
    """Manager-level configuration persisted with the snapshot."""

    network: str
    data_dir: str
    host_config_path: str | None = None
    plugins: list[InstalledPlugin] = Field(default_factory=list)


class StorageSnapshot(BaseModel):
    """Storage snapshot (storage.json) schema."""

    version: str = "1.0"
    config: ManagerConfig
    repositories: list[RepositoryInfo] = Field(default_factory=list)
