"""Tests for roast.core.installer module."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from conftest import write_file

from roast.config.schemas import PluginLang
from roast.core.installer import (
    GoInstaller,
    PipInstaller,
    PoetryInstaller,
    UnsupportedInstaller,
    UnsupportedLanguageError,
    get_installer,
    list_installers,
)


class TestRegistry:
    """Tests for installer registration."""

    def test_every_language_has_a_strategy(self):
        """Each language of the closed enumeration has exactly one strategy."""
        assert set(list_installers()) == set(PluginLang)

    def test_get_installer(self):
        """Strategies are looked up by language."""
        assert isinstance(get_installer(PluginLang.PYPIP), PipInstaller)
        assert isinstance(get_installer(PluginLang.PYPOETRY), PoetryInstaller)
        assert isinstance(get_installer(PluginLang.GO), GoInstaller)

    def test_registration_sets_language(self):
        """The decorator records the language on the class."""
        assert GoInstaller.lang == PluginLang.GO
        assert get_installer(PluginLang.RUST).lang == PluginLang.RUST

    @pytest.mark.parametrize(
        "lang",
        [
            PluginLang.GO,
            PluginLang.RUST,
            PluginLang.DART,
            PluginLang.JVM,
            PluginLang.JAVASCRIPT,
            PluginLang.TYPESCRIPT,
            PluginLang.UNKNOWN,
        ],
    )
    def test_languages_without_recipe(self, lang: PluginLang):
        """Only the Python strategies have a default recipe."""
        installer = get_installer(lang)

        assert isinstance(installer, UnsupportedInstaller)
        assert installer.has_recipe is False


class TestPipInstaller:
    """Tests for the pip strategy."""

    def test_entrypoint_uses_plugin_name(self, temp_dir: Path):
        """The entrypoint is <path>/<name>.py."""
        write_file(temp_dir / "summary.py", "")

        assert PipInstaller().entrypoint(temp_dir, "summary") == temp_dir / "summary.py"

    def test_entrypoint_falls_back_to_directory_name(self, temp_dir: Path):
        """A plugin named differently from its directory uses <dir>.py."""
        plugin_dir = temp_dir / "summary"
        write_file(plugin_dir / "summary.py", "")

        assert PipInstaller().entrypoint(plugin_dir, "renamed") == plugin_dir / "summary.py"

    @pytest.mark.asyncio
    async def test_installs_requirements(self, temp_dir: Path, fake_pip: AsyncMock):
        """Runs pip against requirements.txt."""
        write_file(temp_dir / "summary.py", "")
        write_file(temp_dir / "requirements.txt", "pyln-client\n")

        exec_path = await PipInstaller().install(temp_dir, "summary", verbose=True)

        assert exec_path == temp_dir / "summary.py"
        fake_pip.assert_awaited_once_with(
            ["pip", "install", "-r", str(temp_dir / "requirements.txt")],
            cwd=temp_dir,
            verbose=True,
        )

    @pytest.mark.asyncio
    async def test_skips_missing_requirements(self, temp_dir: Path, fake_pip: AsyncMock):
        """Nothing runs without requirements.txt."""
        write_file(temp_dir / "summary.py", "")

        await PipInstaller().install(temp_dir, "summary")

        fake_pip.assert_not_awaited()


class TestPoetryInstaller:
    """Tests for the poetry strategy."""

    @pytest.mark.asyncio
    async def test_exports_then_installs(self, temp_dir: Path, fake_pip: AsyncMock):
        """Exports the lock to requirements.txt, then installs it with pip."""
        write_file(temp_dir / "summary.py", "")

        async def export(args, cwd=None, verbose=False):
            if args[0] == "poetry":
                write_file(cwd / "requirements.txt", "pyln-client\n")
            return fake_pip.return_value

        fake_pip.side_effect = export

        await PoetryInstaller().install(temp_dir, "summary")

        commands = [call.args[0] for call in fake_pip.await_args_list]
        assert commands[0][:2] == ["poetry", "export"]
        assert "--without-hashes" in commands[0]
        assert commands[1][:2] == ["pip", "install"]


class TestUnsupportedInstaller:
    """Tests for languages without a default recipe."""

    def test_entrypoint_raises(self, temp_dir: Path):
        """Strict resolution refuses and asks for a manifest."""
        with pytest.raises(UnsupportedLanguageError, match="roast.yml") as exc_info:
            GoInstaller().entrypoint(temp_dir, "gocli")

        assert exc_info.value.lang == PluginLang.GO
        assert exc_info.value.code == 4

    def test_dynamic_accepts_executable(self, temp_dir: Path):
        """Permissive resolution accepts a built executable."""
        binary = write_file(temp_dir / "bin" / "gocli", "#!/bin/sh\n", executable=True)

        assert GoInstaller().entrypoint(temp_dir, "gocli", try_dynamic=True) == binary

    def test_dynamic_ignores_non_executable(self, temp_dir: Path):
        """A file without the executable bit is not accepted."""
        write_file(temp_dir / "gocli", "not a binary")

        with pytest.raises(UnsupportedLanguageError):
            GoInstaller().entrypoint(temp_dir, "gocli", try_dynamic=True)

    def test_dynamic_uses_language_extension(self, temp_dir: Path):
        """The conventional extension of the language is tried."""
        script = write_file(temp_dir / "tool.js", "#!/usr/bin/env node\n", executable=True)

        assert (
            get_installer(PluginLang.JAVASCRIPT).entrypoint(temp_dir, "tool", try_dynamic=True)
            == script
        )

    @pytest.mark.asyncio
    async def test_install_runs_nothing(self, temp_dir: Path, fake_pip: AsyncMock):
        """No process starts for an unsupported language."""
        with pytest.raises(UnsupportedLanguageError):
            await GoInstaller().install(temp_dir, "gocli")

        fake_pip.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_install_dynamic_returns_prebuilt(self, temp_dir: Path, fake_pip: AsyncMock):
        """A prebuilt executable installs without running any process."""
        binary = write_file(temp_dir / "gocli", "#!/bin/sh\n", executable=True)

        exec_path = await GoInstaller().install(temp_dir, "gocli", try_dynamic=True)

        assert exec_path == binary
        fake_pip.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_install_dynamic_without_binary_raises(self, temp_dir: Path):
        """Permissive installation still refuses when nothing is built."""
        with pytest.raises(UnsupportedLanguageError):
            await GoInstaller().install(temp_dir, "gocli", try_dynamic=True)
