"""Abstract base class for plugin repositories."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from roast.config.parser import ConfigError
from roast.config.schemas import RepositoryInfo
from roast.core.plugin import Plugin
from roast.errors import RoastError
from roast.utils.filesystem import remove_directory

logger = logging.getLogger(__name__)

# Directories never scanned for plugins
SKIP_DIRS = {"__pycache__", "node_modules", "venv", "target", "build", "dist"}

# How deep below the checkout root plugins are searched for
MAX_SCAN_DEPTH = 2


class RepositoryError(RoastError):
    """Error interacting with a repository."""

    code = 2

    def __init__(self, message: str, name: str | None = None, url: str | None = None):
        self.name = name
        self.url = url
        super().__init__(message)


class RepositoryExistsError(RepositoryError):
    """A repository with the same local name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Repository with name `{name}` already exists", name=name)


class RepositoryNotFoundError(RepositoryError):
    """No repository is registered under a local name."""

    def __init__(self, name: str):
        super().__init__(f"Repository with name `{name}` not found", name=name)


def names_match(name1: str, name2: str) -> bool:
    """Check if two plugin names match (handles - vs _ normalization)."""
    if name1 == name2:
        return True
    return name1.replace("-", "_") == name2.replace("-", "_")


class Repository(ABC):
    """A source of plugins with a local checkout.

    Concrete variants implement fetching (``init``/``upgrade``) and their own
    persisted form (``to_info``/``from_info``); plugin discovery inside the
    checkout is shared.
    """

    kind: ClassVar[str]

    def __init__(self, name: str, url: str, path: Path):
        """Initialize the repository.

        Args:
            name: Local name, unique within the registry
            url: Remote URL
            path: Local checkout directory
        """
        self._name = name
        self._url = url
        self._path = path
        self._plugins: list[Plugin] | None = None

    @property
    def name(self) -> str:
        """Get the local name."""
        return self._name

    @property
    def url(self) -> str:
        """Get the remote URL."""
        return self._url

    @property
    def path(self) -> Path:
        """Get the checkout directory."""
        return self._path

    @abstractmethod
    async def init(self) -> None:
        """Fetch the remote into the checkout directory for the first time.

        Raises:
            RepositoryError: If the remote is unreachable or the checkout
                cannot be created
        """
        ...

    @abstractmethod
    async def upgrade(self) -> bool:
        """Fetch remote changes into the checkout.

        Returns:
            True if the checkout changed

        Raises:
            RepositoryError: If the fetch fails
        """
        ...

    @abstractmethod
    def is_healthy(self) -> bool:
        """Check that the checkout exists and is usable."""
        ...

    @abstractmethod
    def to_info(self) -> RepositoryInfo:
        """Get the persisted descriptor of this repository."""
        ...

    @classmethod
    @abstractmethod
    def from_info(cls, info: RepositoryInfo) -> Repository:
        """Rebuild a repository from its persisted descriptor."""
        ...

    def _root_plugin_name(self) -> str:
        """Name of a plugin living at the checkout root (the remote's basename).

        A root Python plugin is still named after its script when the
        basename has no matching ``.py`` file.
        """
        stem = self._url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
        return stem.removesuffix(".git") or self._name

    def _walk(self, directory: Path, depth: int, plugins: list[Plugin]) -> None:
        name = self._root_plugin_name() if depth == 0 else None
        try:
            plugin = Plugin.load(directory, name=name)
        except ConfigError as e:
            logger.warning("Skipping plugin in %s: %s", directory, e)
            plugin = None

        if plugin is not None:
            logger.debug("Found %s plugin %s in %s", plugin.lang.value, plugin.name, directory)
            plugins.append(plugin)
            return

        if depth >= MAX_SCAN_DEPTH:
            return
        for child in sorted(directory.iterdir()):
            if child.is_dir() and not child.name.startswith(".") and child.name not in SKIP_DIRS:
                self._walk(child, depth + 1, plugins)

    def rescan(self) -> list[Plugin]:
        """Scan the checkout for plugins, replacing the cached list."""
        plugins: list[Plugin] = []
        if self._path.is_dir():
            self._walk(self._path, 0, plugins)
        else:
            logger.warning("Checkout of repository %s is missing: %s", self._name, self._path)
        logger.debug("Repository %s provides %d plugin(s)", self._name, len(plugins))
        self._plugins = plugins
        return plugins

    def list_plugins(self) -> list[Plugin]:
        """List the plugins in the checkout (scanned on first use)."""
        if self._plugins is None:
            return self.rescan()
        return self._plugins

    def get_plugin_by_name(self, name: str) -> Plugin | None:
        """Find a plugin by name.

        Returns:
            The plugin, or None if this repository does not provide it
        """
        plugins = self.list_plugins()
        for plugin in plugins:
            if plugin.name == name:
                return plugin
        for plugin in plugins:
            if names_match(plugin.name, name):
                return plugin
        return None

    def remove(self) -> bool:
        """Delete the checkout directory."""
        self._plugins = None
        return remove_directory(self._path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, url={self._url!r})"
