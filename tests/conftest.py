"""Shared fixtures for roast tests."""

import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import yaml

from roast.core.context import NetworkContext
from roast.registry.base import RepositoryError
from roast.registry.git import GitRepository
from roast.utils.process import CommandResult


def write_file(path: Path, content: str, executable: bool = False) -> Path:
    """Write a file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    if executable:
        path.chmod(0o755)
    return path


def write_manifest(plugin_dir: Path, **plugin: object) -> Path:
    """Write a roast.yml manifest into a plugin directory."""
    return write_file(plugin_dir / "roast.yml", yaml.safe_dump({"plugin": plugin}))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp(prefix="roast_test_"))
    yield path
    if path.exists():
        shutil.rmtree(path)


@pytest.fixture
def context(temp_dir: Path) -> NetworkContext:
    """Network context rooted in the temporary directory."""
    return NetworkContext(temp_dir / "home", "regtest")


@pytest.fixture
def upstream(temp_dir: Path) -> Path:
    """A plugin repository as it exists on the remote side.

    Layout:
        summary/   Python plugin found by convention, with requirements
        helpme/    Python plugin with a manifest and a README
        gocli/     Go plugin without a manifest (no install recipe)
        broken/    Manifest whose install script fails
    """
    root = temp_dir / "upstream" / "plugins"

    write_file(root / "summary" / "summary.py", "#!/usr/bin/env python3\nprint('summary')\n")
    write_file(root / "summary" / "requirements.txt", "pyln-client\n")
    write_file(root / "summary" / "README.md", "# Summary plugin\n\nPrints a summary.\n")

    write_manifest(
        root / "helpme", name="helpme", version="0.1.0", lang="python", main="helpme.py"
    )
    write_file(root / "helpme" / "helpme.py", "#!/usr/bin/env python3\n")
    write_file(root / "helpme" / "README.md", "# Helpme plugin\n\nHelps new node operators.\n")

    write_file(root / "gocli" / "go.mod", "module example.com/gocli\n")
    write_file(root / "gocli" / "main.go", "package main\n")

    write_manifest(root / "broken", name="broken", install="exit 3", main="broken.py")
    write_file(root / "broken" / "broken.py", "")

    return root


class FakeGitRemote:
    """Stands in for the git executable.

    Clones and pulls copy the remote directory (the repository URL is a local
    path); the head commit is whatever ``head`` is set to at that time.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.head = "0" * 40
        self.fail: set[str] = set()

    def advance(self) -> str:
        """Simulate a new commit on the remote."""
        self.head = f"{int(self.head, 16) + 1:040x}"
        return self.head

    async def run(
        self, repo: GitRepository, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> CommandResult:
        self.calls.append(list(args))
        command = "git " + " ".join(args)

        if args[0] in self.fail:
            if args[0] == "clone":
                # Leave a partial checkout behind, as an interrupted clone would
                Path(args[2]).mkdir(parents=True, exist_ok=True)
            raise RepositoryError(f"Git command failed: {command}", name=repo.name, url=repo.url)

        stdout = ""
        if args[0] == "clone":
            dest = Path(args[2])
            shutil.copytree(Path(args[1]), dest)
            write_file(dest / ".git" / "HEAD", self.head)
        elif args[0] == "pull":
            shutil.copytree(Path(repo.url), cwd, dirs_exist_ok=True)
            write_file(cwd / ".git" / "HEAD", self.head)
        elif args[:2] == ["rev-parse", "HEAD"]:
            stdout = (cwd / ".git" / "HEAD").read_text() + "\n"
        elif args[:2] == ["rev-parse", "--abbrev-ref"]:
            stdout = "main\n"
        return CommandResult(command=command, returncode=0, stdout=stdout)


@pytest.fixture
def fake_git(monkeypatch: pytest.MonkeyPatch) -> FakeGitRemote:
    """Replace git invocations of GitRepository with FakeGitRemote."""
    remote = FakeGitRemote()

    async def _run_git(repo, args, cwd=None, check=True):
        return await remote.run(repo, args, cwd=cwd, check=check)

    monkeypatch.setattr(GitRepository, "_run_git", _run_git)
    return remote


@pytest.fixture
def fake_pip(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Replace the package manager invocations of the installers."""
    mock = AsyncMock(return_value=CommandResult(command="pip", returncode=0))
    monkeypatch.setattr("roast.core.installer.run_command", mock)
    return mock
