"""Plugin model representing a discovered or installed plugin."""

from __future__ import annotations

import logging
import tomllib
from enum import Enum
from pathlib import Path

from roast.config.parser import ConfigError, load_plugin_manifest
from roast.config.schemas import InstalledPlugin, PluginLang, PluginManifest
from roast.core.installer import get_installer
from roast.errors import RoastError
from roast.utils.filesystem import remove_directory
from roast.utils.process import run_script

logger = logging.getLogger(__name__)

README_FILES = ("README.md", "README", "README.rst", "readme.md")

# Conventional files that mark a directory as a plugin of a given language.
# Python is handled separately because it needs a <name>.py entrypoint.
LANG_MARKERS: list[tuple[str, PluginLang]] = [
    ("go.mod", PluginLang.GO),
    ("Cargo.toml", PluginLang.RUST),
    ("pubspec.yaml", PluginLang.DART),
    ("build.gradle", PluginLang.JVM),
    ("build.gradle.kts", PluginLang.JVM),
    ("pom.xml", PluginLang.JVM),
    ("tsconfig.json", PluginLang.TYPESCRIPT),
    ("package.json", PluginLang.JAVASCRIPT),
]


class PluginNotFoundError(RoastError):
    """A plugin name could not be resolved."""

    code = 3

    def __init__(self, plugin_name: str, message: str | None = None):
        self.plugin_name = plugin_name
        super().__init__(
            message or f"Plugin `{plugin_name}` is not present inside the repositories"
        )


class PluginAlreadyInstalledError(RoastError):
    """Install was requested for a plugin that is already installed."""

    code = 8

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Plugin `{plugin_name}` is already installed; use `upgrade` to update it"
        )


class PluginState(str, Enum):
    """Lifecycle state of a plugin."""

    DISCOVERED = "discovered"
    CONFIGURING = "configuring"
    INSTALLED = "installed"
    UPGRADING = "upgrading"
    REMOVING = "removing"
    REMOVED = "removed"
    FAILED = "failed"


def _is_poetry_project(pyproject: Path) -> bool:
    try:
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return False
    return "poetry" in data.get("tool", {})


def python_entry_name(path: Path, name: str | None = None) -> str | None:
    """Get the stem of the conventional Python entrypoint, if one exists.

    The plugin name is tried before the directory name.
    """
    for candidate in (name, path.name):
        if candidate and (path / f"{candidate}.py").is_file():
            return candidate
    return None


def detect_lang(path: Path, name: str | None = None) -> PluginLang | None:
    """Detect the language of a plugin directory from its conventional files.

    Args:
        path: Candidate plugin directory
        name: Plugin name, if it differs from the directory name

    Returns:
        The detected language, or None if the directory is not a plugin
    """
    if python_entry_name(path, name) is not None:
        pyproject = path / "pyproject.toml"
        if pyproject.is_file() and _is_poetry_project(pyproject):
            return PluginLang.PYPOETRY
        return PluginLang.PYPIP

    for marker, lang in LANG_MARKERS:
        if (path / marker).is_file():
            return lang
    return None


class Plugin:
    """Represents a plugin inside a repository checkout or an install directory."""

    def __init__(
        self,
        name: str,
        path: Path,
        lang: PluginLang,
        manifest: PluginManifest | None = None,
    ):
        """Initialize a Plugin.

        Args:
            name: Plugin name
            path: Plugin root directory
            lang: Plugin language
            manifest: Parsed roast.yml, if the plugin ships one
        """
        self._name = name
        self._path = path
        self._lang = lang
        self._manifest = manifest
        self._exec_path: Path | None = None
        self._state = PluginState.DISCOVERED

    @classmethod
    def load(cls, path: Path, name: str | None = None) -> Plugin | None:
        """Load a plugin from a directory.

        A directory is a plugin if it ships a manifest or if its language can
        be detected from conventional files.

        Args:
            path: Candidate plugin directory
            name: Name to use when there is no manifest (defaults to the
                directory name)

        Returns:
            Loaded Plugin, or None if the directory is not a plugin

        Raises:
            ConfigError: If the directory has an invalid manifest
        """
        manifest = load_plugin_manifest(path)
        if manifest is not None:
            section = manifest.plugin
            lang = section.lang
            if lang == PluginLang.UNKNOWN:
                lang = detect_lang(path, section.name) or PluginLang.UNKNOWN
            return cls(section.name, path, lang, manifest)

        lang = detect_lang(path, name)
        if lang is None:
            return None
        if lang in (PluginLang.PYPIP, PluginLang.PYPOETRY):
            # Named after the script that made it a plugin
            name = python_entry_name(path, name)
        return cls(name or path.name, path, lang)

    @property
    def name(self) -> str:
        """Get the plugin name."""
        return self._name

    @property
    def path(self) -> Path:
        """Get the plugin root directory."""
        return self._path

    @property
    def lang(self) -> PluginLang:
        """Get the plugin language."""
        return self._lang

    @property
    def manifest(self) -> PluginManifest | None:
        """Get the plugin manifest, if any."""
        return self._manifest

    @property
    def version(self) -> str | None:
        return self._manifest.plugin.version if self._manifest else None

    @property
    def description(self) -> str | None:
        return self._manifest.plugin.description if self._manifest else None

    @property
    def exec_path(self) -> Path | None:
        """Executable path, set after a successful configure."""
        return self._exec_path

    @property
    def state(self) -> PluginState:
        return self._state

    @property
    def is_dynamic(self) -> bool:
        """True if the executable cannot come from a manifest or a recipe."""
        if self._manifest and (self._manifest.plugin.install or self._manifest.plugin.main):
            return False
        return not get_installer(self._lang).has_recipe

    def relocate(self, path: Path) -> Plugin:
        """Return the same plugin rooted at another directory."""
        return Plugin(self._name, path, self._lang, self._manifest)

    def _manifest_main(self) -> Path | None:
        if self._manifest and self._manifest.plugin.main:
            return self._path / self._manifest.plugin.main
        return None

    async def _install(self, verbose: bool, try_dynamic: bool) -> Path:
        installer = get_installer(self._lang)
        script = self._manifest.plugin.install if self._manifest else None

        if script:
            logger.info("Running install script of %s in %s", self._name, self._path)
            await run_script(script, cwd=self._path, verbose=verbose)
            return self._manifest_main() or installer.entrypoint(
                self._path, self._name, try_dynamic=try_dynamic
            )

        main = self._manifest_main()
        if main is not None:
            if installer.has_recipe:
                await installer.install_requirements(self._path, self._name, verbose=verbose)
            return main

        return await installer.install(
            self._path, self._name, verbose=verbose, try_dynamic=try_dynamic
        )

    async def configure(self, verbose: bool = False, try_dynamic: bool = False) -> Path:
        """Run the install side effects and resolve the executable.

        The manifest install script, when present, runs line by line with the
        shell in the plugin root; otherwise the default recipe of the
        plugin's language runs.

        Args:
            verbose: Stream process output instead of capturing it
            try_dynamic: Accept a prebuilt executable for languages without
                a recipe

        Returns:
            Path of the plugin executable

        Raises:
            ProcessExecutionError: If an install step fails
            UnsupportedLanguageError: If no manifest script and no recipe exist
            ConfigError: If the resolved executable does not exist
        """
        if self._state != PluginState.UPGRADING:
            self._state = PluginState.CONFIGURING
        try:
            exec_path = await self._install(verbose, try_dynamic)
            if not exec_path.is_file():
                raise ConfigError(
                    f"Executable of plugin `{self._name}` not found: {exec_path}", path=exec_path
                )
        except Exception:
            self._state = PluginState.FAILED
            raise
        self._exec_path = exec_path
        self._state = PluginState.INSTALLED
        logger.debug("Runnable plugin path %s", exec_path)
        return exec_path

    def get_executable(self, try_dynamic: bool = False) -> Path:
        """Resolve the executable without running anything.

        Raises:
            UnsupportedLanguageError: If the executable cannot be resolved
        """
        main = self._manifest_main()
        if main is not None:
            return main
        return get_installer(self._lang).entrypoint(self._path, self._name, try_dynamic=try_dynamic)

    async def upgrade(self, verbose: bool = False, try_dynamic: bool = False) -> Path:
        """Re-run the install steps for new plugin sources."""
        self._state = PluginState.UPGRADING
        return await self.configure(verbose=verbose, try_dynamic=try_dynamic)

    def remove(self) -> bool:
        """Delete the plugin directory.

        Returns:
            True if the directory existed and was removed
        """
        self._state = PluginState.REMOVING
        removed = remove_directory(self._path)
        self._exec_path = None
        self._state = PluginState.REMOVED
        return removed

    def readme(self) -> str | None:
        """Get the plugin documentation text, if it ships any."""
        for name in README_FILES:
            candidate = self._path / name
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8", errors="replace")
        return None

    def to_installed(self, repository: str) -> InstalledPlugin:
        """Build the persisted record of this plugin once configured."""
        if self._exec_path is None:
            raise RoastError(f"Plugin `{self._name}` is not configured")
        return InstalledPlugin(
            name=self._name,
            repository=repository,
            path=str(self._path),
            exec_path=str(self._exec_path),
            lang=self._lang,
            version=self.version,
            dynamic=self.is_dynamic,
        )

    def __repr__(self) -> str:
        return f"Plugin(name={self._name!r}, lang={self._lang.value!r}, path={str(self._path)!r})"
