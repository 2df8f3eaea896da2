"""Plugin manager orchestrating repositories, plugins and the host config.

The manager owns the state of one network root: the repository registry,
the installed plugin records, and the config fragment the node includes.
Every mutating operation does its risky work (git, installers, copies)
first and persists only on success: the snapshot is written, then the
fragment is flushed. ``nurse()`` re-derives the fragment from the snapshot
if a crash happens between the two writes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from roast.config.host import PLUGIN_KEY, HostConfig
from roast.config.parser import ConfigError
from roast.config.schemas import InstalledPlugin, ManagerConfig, RepositoryInfo, StorageSnapshot
from roast.core.context import NetworkContext
from roast.core.installer import UnsupportedLanguageError
from roast.core.plugin import Plugin, PluginAlreadyInstalledError, PluginNotFoundError
from roast.core.storage import FileStorage, StorageError
from roast.errors import RoastError
from roast.registry.base import (
    Repository,
    RepositoryError,
    RepositoryExistsError,
    RepositoryNotFoundError,
    names_match,
)
from roast.registry.factory import create_repository, repository_from_info
from roast.utils.filesystem import copy_directory, remove_directory

logger = logging.getLogger(__name__)

FRAGMENT_HEADER = "# managed by roast, do not edit"


@dataclass
class RemoveResult:
    """Result of removing an installed plugin."""

    plugin_name: str
    repository: str
    exec_path: str
    directory_removed: bool


@dataclass
class RemoteRemoval:
    """Result of removing a repository."""

    repository: str
    removed_plugins: list[RemoveResult] = field(default_factory=list)


class UpgradeStatus(str, Enum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class RepositoryUpgrade:
    """Result of upgrading one repository."""

    repository: str
    status: UpgradeStatus
    plugins: list[str] = field(default_factory=list)  # Re-installed plugins
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status != UpgradeStatus.FAILED


@dataclass
class UpgradeSummary:
    """Summary of an upgrade operation."""

    results: list[RepositoryUpgrade] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def all_successful(self) -> bool:
        return all(r.success for r in self.results)


@dataclass
class ShowResult:
    """Documentation of a plugin."""

    name: str
    repository: str
    readme: str


class NurseActionKind(str, Enum):
    REPOSITORY_DROPPED = "repository_dropped"
    PLUGIN_DROPPED = "plugin_dropped"
    DIRECTIVE_REMOVED = "directive_removed"
    DIRECTIVE_ADDED = "directive_added"
    INCLUDE_RESTORED = "include_restored"


@dataclass
class NurseAction:
    """One repair performed by ``nurse()``."""

    kind: NurseActionKind
    target: str
    detail: str = ""


@dataclass
class NurseReport:
    """Summary of a reconciliation pass."""

    actions: list[NurseAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.actions)


class PluginManager:
    """Installs, upgrades and removes plugins for one network.

    Usage:
        manager = await PluginManager.open(NetworkContext.default())
        await manager.add_remote("lightning", "https://github.com/lightningd/plugins")
        record = await manager.install("summary")
    """

    def __init__(self, context: NetworkContext, storage: FileStorage | None = None):
        """Initialize the manager with empty state.

        Use ``open()`` to also load the persisted state.

        Args:
            context: Network the manager operates on
            storage: Snapshot storage (defaults to the network root)
        """
        self._context = context
        self._storage = storage or FileStorage(context.root)
        self._lock = asyncio.Lock()
        self._repositories: list[Repository] = []
        self._config = ManagerConfig(network=context.network, data_dir=str(context.data_dir))
        self._fragment = HostConfig(
            context.fragment_path, create_if_missing=True, header=FRAGMENT_HEADER
        )

    @classmethod
    async def open(cls, context: NetworkContext, storage: FileStorage | None = None) -> PluginManager:
        """Create a manager and load its persisted state.

        Raises:
            StorageError: If the snapshot exists but is unreadable
            RepositoryError: If the snapshot names an unknown repository kind
        """
        manager = cls(context, storage)
        await manager.inventory()
        return manager

    @property
    def context(self) -> NetworkContext:
        return self._context

    @property
    def repositories(self) -> list[Repository]:
        return list(self._repositories)

    async def inventory(self) -> None:
        """Load the snapshot, rebuild the repositories and read the fragment."""
        snapshot = self._storage.load()
        if snapshot is not None:
            self._config = snapshot.config
            self._repositories = [repository_from_info(info) for info in snapshot.repositories]
            logger.info(
                "Loaded %d repositories and %d installed plugins",
                len(self._repositories),
                len(self._config.plugins),
            )
        await self.configure()

        try:
            self._fragment.parse()
        except ConfigError as e:
            logger.warning("Cannot read config fragment: %s", e.message)

    async def configure(self) -> None:
        """Normalize the in-memory config to the bound network context."""
        self._config.network = self._context.network
        self._config.data_dir = str(self._context.data_dir)

    def storage_info(self) -> StorageSnapshot:
        """Get the current state as it would be persisted."""
        return StorageSnapshot(
            config=self._config.model_copy(deep=True),
            repositories=[repository.to_info() for repository in self._repositories],
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _persist(self) -> None:
        """Write the snapshot, then the fragment."""
        self._storage.store(self.storage_info())
        self._fragment.flush()

    def _find_repository(self, name: str) -> Repository | None:
        for repository in self._repositories:
            if repository.name == name:
                return repository
        return None

    def _get_repository(self, name: str) -> Repository:
        repository = self._find_repository(name)
        if repository is None:
            raise RepositoryNotFoundError(name)
        return repository

    def _find_record(self, name: str) -> InstalledPlugin | None:
        for record in self._config.plugins:
            if record.name == name:
                return record
        for record in self._config.plugins:
            if names_match(record.name, name):
                return record
        return None

    def _drop_record(self, name: str) -> None:
        self._config.plugins = [r for r in self._config.plugins if r.name != name]

    def _lookup(self, name: str) -> tuple[Repository, Plugin]:
        """Find a plugin in the repositories, in registration order.

        Raises:
            PluginNotFoundError: If no repository provides the plugin
        """
        matches = []
        for repository in self._repositories:
            plugin = repository.get_plugin_by_name(name)
            if plugin is not None:
                matches.append((repository, plugin))

        if not matches:
            raise PluginNotFoundError(name)
        if len(matches) > 1:
            logger.warning(
                "Plugin %s is provided by several repositories (%s); using %s",
                name,
                ", ".join(repository.name for repository, _ in matches),
                matches[0][0].name,
            )
        return matches[0]

    def _resolve_exec_paths(self, record: InstalledPlugin) -> set[str]:
        """Executable paths a record may have registered in the fragment."""
        paths = {record.exec_path}
        install_dir = Path(record.path)
        if not install_dir.is_dir():
            return paths
        try:
            plugin = Plugin.load(install_dir, name=record.name)
            if plugin is not None:
                paths.add(str(plugin.get_executable(try_dynamic=True)))
        except (ConfigError, UnsupportedLanguageError) as e:
            logger.debug("Cannot resolve executable of %s: %s", record.name, e.message)
        return paths

    def _uninstall(self, record: InstalledPlugin) -> RemoveResult:
        """Remove a plugin's directives, directory and record (not persisted)."""
        logger.info("Removing plugin %s", record.name)
        for exec_path in self._resolve_exec_paths(record):
            self._fragment.remove_directive(PLUGIN_KEY, exec_path)
        removed = remove_directory(Path(record.path))
        self._drop_record(record.name)
        return RemoveResult(
            plugin_name=record.name,
            repository=record.repository,
            exec_path=record.exec_path,
            directory_removed=removed,
        )

    async def _deploy(
        self, plugin: Plugin, dest: Path, verbose: bool, try_dynamic: bool, upgrade: bool = False
    ) -> Plugin:
        """Copy a plugin to its install directory and configure it there.

        On failure the copy is removed and the error propagates.
        """
        try:
            copy_directory(plugin.path, dest)
        except OSError as e:
            remove_directory(dest)
            raise RoastError(f"Cannot copy plugin `{plugin.name}` to {dest}: {e}") from e

        deployed = plugin.relocate(dest)
        try:
            if upgrade:
                await deployed.upgrade(verbose=verbose, try_dynamic=try_dynamic)
            else:
                await deployed.configure(verbose=verbose, try_dynamic=try_dynamic)
        except Exception:
            remove_directory(dest)
            raise
        return deployed

    # -------------------------------------------------------------------------
    # Plugins
    # -------------------------------------------------------------------------

    async def install(
        self, name: str, verbose: bool = False, try_dynamic: bool = False
    ) -> InstalledPlugin:
        """Install a plugin from the first repository that provides it.

        Args:
            name: Plugin name
            verbose: Stream installer output
            try_dynamic: Accept prebuilt executables for languages without
                an install recipe

        Returns:
            The persisted record

        Raises:
            PluginAlreadyInstalledError: If the plugin is already installed
            PluginNotFoundError: If no repository provides the plugin
            UnsupportedLanguageError: If the plugin cannot be installed
            ProcessExecutionError: If an install step fails
        """
        async with self._lock:
            if self._find_record(name) is not None:
                raise PluginAlreadyInstalledError(name)
            repository, plugin = self._lookup(name)
            if self._find_record(plugin.name) is not None:
                raise PluginAlreadyInstalledError(plugin.name)

            logger.info("Installing plugin %s from repository %s", plugin.name, repository.name)
            dest = self._context.plugin_path(plugin.name)
            deployed = await self._deploy(plugin, dest, verbose, try_dynamic)
            record = deployed.to_installed(repository.name)

            self._config.plugins.append(record)
            try:
                self._storage.store(self.storage_info())
            except StorageError:
                self._drop_record(record.name)
                remove_directory(dest)
                raise

            self._fragment.add_directive(PLUGIN_KEY, record.exec_path)
            self._fragment.flush()
            logger.info("Plugin %s installed at %s", record.name, record.exec_path)
            return record

    async def remove(self, name: str) -> RemoveResult:
        """Uninstall a plugin.

        Raises:
            PluginNotFoundError: If the plugin is not installed
        """
        async with self._lock:
            record = self._find_record(name)
            if record is None:
                raise PluginNotFoundError(name, f"Plugin `{name}` is not installed")
            result = self._uninstall(record)
            self._persist()
            return result

    async def list(self) -> list[InstalledPlugin]:
        """List installed plugins."""
        return [record.model_copy() for record in self._config.plugins]

    async def _reinstall(
        self, repository: Repository, record: InstalledPlugin, verbose: bool, try_dynamic: bool
    ) -> InstalledPlugin:
        plugin = repository.get_plugin_by_name(record.name)
        if plugin is None:
            raise PluginNotFoundError(
                record.name,
                f"Plugin `{record.name}` is no longer provided by repository `{repository.name}`",
            )

        dest = Path(record.path)
        backup = dest.with_name(f".{dest.name}.bak")
        remove_directory(backup)
        if dest.exists():
            dest.rename(backup)

        try:
            deployed = await self._deploy(
                plugin, dest, verbose, try_dynamic or record.dynamic, upgrade=True
            )
        except Exception:
            if backup.exists():
                backup.rename(dest)
            raise
        remove_directory(backup)

        updated = deployed.to_installed(repository.name)
        self._config.plugins = [updated if r.name == record.name else r for r in self._config.plugins]
        if updated.exec_path != record.exec_path:
            self._fragment.remove_directive(PLUGIN_KEY, record.exec_path)
            self._fragment.add_directive(PLUGIN_KEY, updated.exec_path)
        return updated

    async def _upgrade_repository(
        self, repository: Repository, verbose: bool, try_dynamic: bool
    ) -> RepositoryUpgrade:
        try:
            changed = await repository.upgrade()
        except RoastError as e:
            logger.error("Failed to upgrade repository %s: %s", repository.name, e.message)
            return RepositoryUpgrade(repository.name, UpgradeStatus.FAILED, error=e.message)

        if not changed:
            return RepositoryUpgrade(repository.name, UpgradeStatus.UP_TO_DATE)

        result = RepositoryUpgrade(repository.name, UpgradeStatus.UPDATED)
        errors = []
        records = [r for r in self._config.plugins if r.repository == repository.name]
        for record in records:
            try:
                await self._reinstall(repository, record, verbose, try_dynamic)
                result.plugins.append(record.name)
            except (RoastError, OSError) as e:
                message = e.message if isinstance(e, RoastError) else str(e)
                logger.error("Failed to upgrade plugin %s: %s", record.name, message)
                errors.append(f"{record.name}: {message}")

        if errors:
            result.status = UpgradeStatus.FAILED
            result.error = "; ".join(errors)
        return result

    async def upgrade(
        self, target: str | None = None, verbose: bool = False, try_dynamic: bool = False
    ) -> UpgradeSummary:
        """Pull one or all repositories and re-install their plugins that changed.

        A failing repository is reported in the summary; the others still
        upgrade.

        Raises:
            RepositoryNotFoundError: If ``target`` is not a registered repository
        """
        async with self._lock:
            if target is not None:
                repositories = [self._get_repository(target)]
            else:
                repositories = list(self._repositories)

            summary = UpgradeSummary()
            for repository in repositories:
                summary.results.append(
                    await self._upgrade_repository(repository, verbose, try_dynamic)
                )
            self._persist()
            return summary

    # -------------------------------------------------------------------------
    # Repositories
    # -------------------------------------------------------------------------

    async def add_remote(self, name: str, url: str) -> RepositoryInfo:
        """Register and clone a repository.

        Raises:
            RepositoryExistsError: If the name is already registered
            RepositoryError: If the URL is invalid or the clone fails
        """
        async with self._lock:
            if not name or "/" in name or name.startswith("."):
                raise RepositoryError(f"Invalid repository name: {name!r}", name=name, url=url)
            if self._find_repository(name) is not None:
                raise RepositoryExistsError(name)

            repository = create_repository(name, url, self._context.repositories_dir)
            if repository.path.exists():
                logger.warning("Removing stale checkout %s", repository.path)
                remove_directory(repository.path)

            await repository.init()
            self._repositories.append(repository)
            try:
                self._storage.store(self.storage_info())
            except StorageError:
                self._repositories.remove(repository)
                repository.remove()
                raise

            logger.info(
                "Repository %s added with %d plugin(s)", name, len(repository.list_plugins())
            )
            return repository.to_info()

    async def rm_remote(self, name: str) -> RemoteRemoval:
        """Remove a repository and every plugin installed from it.

        Raises:
            RepositoryNotFoundError: If the name is not registered
        """
        async with self._lock:
            repository = self._get_repository(name)
            removal = RemoteRemoval(repository=name)
            for record in [r for r in self._config.plugins if r.repository == name]:
                removal.removed_plugins.append(self._uninstall(record))

            repository.remove()
            self._repositories.remove(repository)
            self._persist()
            logger.info(
                "Repository %s removed (%d plugin(s) uninstalled)",
                name,
                len(removal.removed_plugins),
            )
            return removal

    async def list_remotes(self) -> list[RepositoryInfo]:
        """List registered repositories."""
        return [repository.to_info() for repository in self._repositories]

    # -------------------------------------------------------------------------
    # Host integration
    # -------------------------------------------------------------------------

    def _detach(self, host_path: Path) -> None:
        """Remove the fragment include from a previously bound host config."""
        host = HostConfig(host_path)
        try:
            host.parse()
            if host.remove_include(self._context.fragment_path):
                host.flush()
                logger.info("Removed include from previous host config %s", host_path)
        except ConfigError as e:
            logger.warning("Cannot detach previous host config: %s", e.message)

    async def setup(self, host_config_path: Path | str) -> Path:
        """Make the node's config include the fragment of installed plugins.

        Args:
            host_config_path: Node config file, or the node's data directory
                (resolved to ``<dir>/<network>/config``)

        Returns:
            The host config file that now includes the fragment

        Raises:
            ConfigError: If the host config cannot be read or written
        """
        async with self._lock:
            path = Path(host_config_path).expanduser().resolve()
            if path.is_dir():
                path = path / self._context.network / "config"

            host = HostConfig(path, create_if_missing=True)
            host.parse()
            if host.add_include(self._context.fragment_path):
                host.flush()
                logger.info("Added include for %s to %s", self._context.fragment_path, path)
            else:
                logger.info("%s already includes %s", path, self._context.fragment_path)

            previous = self._config.host_config_path
            if previous and Path(previous) != path:
                self._detach(Path(previous))

            self._config.host_config_path = str(path)
            self._persist()
            return path

    async def show(self, name: str) -> ShowResult:
        """Get the README of a plugin from the repositories.

        Raises:
            PluginNotFoundError: If no repository provides the plugin
            RoastError: If the plugin ships no README
        """
        repository, plugin = self._lookup(name)
        readme = plugin.readme()
        if readme is None:
            raise RoastError(f"Plugin `{plugin.name}` does not ship a README")
        return ShowResult(name=plugin.name, repository=repository.name, readme=readme)

    async def nurse(self) -> NurseReport:
        """Reconcile the persisted state with what is on disk.

        Raises:
            ConfigError: If the fragment cannot be read
        """
        async with self._lock:
            report = NurseReport()

            for repository in list(self._repositories):
                if not repository.is_healthy():
                    logger.warning("Dropping repository %s: checkout is missing", repository.name)
                    self._repositories.remove(repository)
                    report.actions.append(
                        NurseAction(
                            NurseActionKind.REPOSITORY_DROPPED, repository.name, str(repository.path)
                        )
                    )

            for record in list(self._config.plugins):
                if not Path(record.path).is_dir():
                    logger.warning("Dropping plugin %s: %s is missing", record.name, record.path)
                    self._drop_record(record.name)
                    report.actions.append(
                        NurseAction(NurseActionKind.PLUGIN_DROPPED, record.name, record.path)
                    )

            registered = {repository.name for repository in self._repositories}
            for record in self._config.plugins:
                if record.repository not in registered:
                    report.warnings.append(
                        f"Plugin {record.name} was installed from repository {record.repository}, "
                        "which is no longer registered; it will not be upgraded"
                    )

            report.warnings.extend(self._fragment.parse())
            expected = [record.exec_path for record in self._config.plugins]
            for value in self._fragment.get(PLUGIN_KEY):
                if value is not None and value not in expected:
                    self._fragment.remove_directive(PLUGIN_KEY, value)
                    report.actions.append(
                        NurseAction(NurseActionKind.DIRECTIVE_REMOVED, str(value))
                    )
            for exec_path in expected:
                if self._fragment.add_directive(PLUGIN_KEY, exec_path):
                    report.actions.append(NurseAction(NurseActionKind.DIRECTIVE_ADDED, exec_path))

            if self._config.host_config_path:
                host_path = Path(self._config.host_config_path)
                host = HostConfig(host_path)
                try:
                    report.warnings.extend(host.parse())
                    if host.add_include(self._context.fragment_path):
                        host.flush()
                        report.actions.append(
                            NurseAction(NurseActionKind.INCLUDE_RESTORED, str(host_path))
                        )
                except ConfigError as e:
                    logger.warning("Cannot check host config: %s", e.message)
                    report.warnings.append(e.message)

            if report.changed:
                self._persist()
                logger.info("Nurse performed %d repair(s)", len(report.actions))
            else:
                logger.info("Nothing to repair")
            return report
