"""Default install recipes, one per plugin language.

A plugin that ships a manifest with an ``install`` script never reaches this
module; everything else is installed by the strategy registered for its
language. Languages without a recipe refuse to install and ask for a
manifest instead.

Usage:
    installer = get_installer(PluginLang.PYPIP)
    exec_path = await installer.install(path, "summary", verbose=True)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

from roast.config.schemas import PluginLang
from roast.errors import RoastError
from roast.utils.filesystem import is_executable
from roast.utils.process import run_command

logger = logging.getLogger(__name__)

PIP = "pip"
POETRY = "poetry"


class UnsupportedLanguageError(RoastError):
    """No default install recipe exists for a plugin's language."""

    code = 4

    def __init__(self, lang: PluginLang, plugin_name: str):
        self.lang = lang
        self.plugin_name = plugin_name
        super().__init__(
            f"Plugin `{plugin_name}` is written in `{lang.value}`, which has no default "
            "install procedure. Ship a roast.yml manifest with `install` and `main` "
            "entries to install it."
        )


class InstallerStrategy(ABC):
    """Default install recipe for one language."""

    lang: PluginLang = PluginLang.UNKNOWN
    has_recipe: bool = True

    @abstractmethod
    def entrypoint(self, path: Path, name: str, try_dynamic: bool = False) -> Path:
        """Resolve the executable of a plugin without side effects.

        Args:
            path: Plugin root directory
            name: Plugin name
            try_dynamic: Accept an already built executable for languages
                without a recipe

        Raises:
            UnsupportedLanguageError: If the language has no recipe
        """
        ...

    @abstractmethod
    async def install_requirements(self, path: Path, name: str, verbose: bool = False) -> None:
        """Install the plugin's dependencies with the language's package manager."""
        ...

    async def install(
        self,
        path: Path,
        name: str,
        verbose: bool = False,
        install_requirements: bool = True,
        try_dynamic: bool = False,
    ) -> Path:
        """Install a plugin and return its executable.

        The entrypoint is resolved first so an unsupported language fails
        before any process is started.
        """
        exec_path = self.entrypoint(path, name, try_dynamic=try_dynamic)
        if install_requirements:
            await self.install_requirements(path, name, verbose=verbose)
        return exec_path


_INSTALLERS: dict[PluginLang, InstallerStrategy] = {}


def register_installer(
    lang: PluginLang,
) -> Callable[[type[InstallerStrategy]], type[InstallerStrategy]]:
    """Decorator for installer registration.

    Usage:
        @register_installer(PluginLang.PYPIP)
        class PipInstaller(InstallerStrategy):
            ...
    """

    def decorator(cls: type[InstallerStrategy]) -> type[InstallerStrategy]:
        cls.lang = lang
        _INSTALLERS[lang] = cls()
        return cls

    return decorator


def get_installer(lang: PluginLang) -> InstallerStrategy:
    """Get the installer strategy for a language."""
    return _INSTALLERS[lang]


def list_installers() -> list[PluginLang]:
    """List all languages with a registered strategy."""
    return list(_INSTALLERS.keys())


# =============================================================================
# Python
# =============================================================================


def _python_entrypoint(path: Path, name: str) -> Path:
    candidates = [path / f"{name}.py", path / f"{path.name}.py"]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return candidates[0]


@register_installer(PluginLang.PYPIP)
class PipInstaller(InstallerStrategy):
    """pip install -r requirements.txt; runs <path>/<name>.py."""

    def entrypoint(self, path: Path, name: str, try_dynamic: bool = False) -> Path:
        return _python_entrypoint(path, name)

    async def install_requirements(self, path: Path, name: str, verbose: bool = False) -> None:
        requirements = path / "requirements.txt"
        if not requirements.is_file():
            logger.debug("No requirements.txt for %s, nothing to install", name)
            return
        logger.info("Installing Python requirements for %s", name)
        await run_command([PIP, "install", "-r", str(requirements)], cwd=path, verbose=verbose)


@register_installer(PluginLang.PYPOETRY)
class PoetryInstaller(PipInstaller):
    """Export the poetry lock to requirements.txt, then install it with pip."""

    async def install_requirements(self, path: Path, name: str, verbose: bool = False) -> None:
        logger.info("Exporting poetry requirements for %s", name)
        await run_command(
            [
                POETRY,
                "export",
                "-f",
                "requirements.txt",
                "--output",
                "requirements.txt",
                "--without-hashes",
            ],
            cwd=path,
            verbose=verbose,
        )
        await super().install_requirements(path, name, verbose=verbose)


# =============================================================================
# Languages without a default recipe
# =============================================================================


class UnsupportedInstaller(InstallerStrategy):
    """Refuses to install; permissive resolution may still find a built binary."""

    has_recipe = False
    # Candidate executables relative to the plugin root, formatted with the name
    dynamic_candidates: tuple[str, ...] = ("{name}",)

    def entrypoint(self, path: Path, name: str, try_dynamic: bool = False) -> Path:
        if try_dynamic:
            for pattern in self.dynamic_candidates:
                candidate = path / pattern.format(name=name)
                if is_executable(candidate):
                    logger.warning(
                        "Using prebuilt executable %s for %s plugin %s (no install recipe)",
                        candidate,
                        self.lang.value,
                        name,
                    )
                    return candidate
        raise UnsupportedLanguageError(self.lang, name)

    async def install_requirements(self, path: Path, name: str, verbose: bool = False) -> None:
        # Only reached once entrypoint accepted a prebuilt executable
        logger.debug("No dependencies to install for prebuilt %s plugin %s", self.lang.value, name)


@register_installer(PluginLang.GO)
class GoInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "bin/{name}")


@register_installer(PluginLang.RUST)
class RustInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "target/release/{name}")


@register_installer(PluginLang.DART)
class DartInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "bin/{name}.exe", "{name}.dart")


@register_installer(PluginLang.JVM)
class JvmInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "{name}.sh")


@register_installer(PluginLang.JAVASCRIPT)
class JavaScriptInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "{name}.js")


@register_installer(PluginLang.TYPESCRIPT)
class TypeScriptInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "{name}.ts")


@register_installer(PluginLang.UNKNOWN)
class UnknownInstaller(UnsupportedInstaller):
    dynamic_candidates = ("{name}", "{name}.sh")
