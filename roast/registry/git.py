"""Git-hosted plugin repository."""

from __future__ import annotations

import logging
from pathlib import Path

from roast.config.schemas import RepositoryInfo
from roast.registry.base import Repository, RepositoryError
from roast.utils.filesystem import ensure_directory, remove_directory
from roast.utils.process import CommandResult, ProcessExecutionError, run_command

logger = logging.getLogger(__name__)

GIT = "git"


class GitRepository(Repository):
    """Repository cloned from a git remote.

    URL format:
    - https://github.com/user/plugins.git
    - ssh://git@github.com/user/plugins.git
    - git@github.com:user/plugins.git
    - file:///srv/git/plugins or /srv/git/plugins (local remotes)
    - Any of the above prefixed with ``git+``

    Uses the system `git` command for all operations. The checkout keeps its
    ``.git`` directory so later upgrades can pull.
    """

    kind = "git"

    def __init__(
        self,
        name: str,
        url: str,
        path: Path,
        branch: str | None = None,
        git_head: str | None = None,
    ):
        """Initialize the git repository.

        Args:
            name: Local name
            url: Git remote URL
            path: Checkout directory
            branch: Branch checked out, once known
            git_head: Commit checked out, once known

        Raises:
            RepositoryError: If the URL is not a supported git remote
        """
        super().__init__(name, self._parse_url(url), path)
        self._branch = branch
        self._git_head = git_head

    @staticmethod
    def _parse_url(url: str) -> str:
        """Validate a git URL and strip the ``git+`` prefix.

        Raises:
            RepositoryError: If the URL scheme is not supported
        """
        url = url.strip()
        if url.startswith("git+"):
            url = url[4:]
        if not url.startswith(("https://", "ssh://", "git@", "file://", "/")):
            raise RepositoryError(
                f"Invalid Git URL scheme: must be https://, ssh://, git@, file:// "
                f"or an absolute path: {url}",
                url=url,
            )
        return url

    @property
    def branch(self) -> str | None:
        return self._branch

    @property
    def git_head(self) -> str | None:
        return self._git_head

    async def _run_git(
        self, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> CommandResult:
        """Run a git command.

        Args:
            args: Git command arguments (without 'git')
            cwd: Working directory
            check: Whether to raise on non-zero exit

        Returns:
            Finished command

        Raises:
            RepositoryError: If the command fails and check=True, or git is
                not installed
        """
        try:
            return await run_command([GIT, *args], cwd=cwd, check=check)
        except ProcessExecutionError as e:
            logger.error("Git command failed: git %s", " ".join(args))
            raise RepositoryError(
                f"Git command failed for repository `{self.name}`: {e.message}",
                name=self.name,
                url=self.url,
            ) from e

    async def _read_head(self) -> None:
        result = await self._run_git(["rev-parse", "HEAD"], cwd=self.path)
        self._git_head = result.stdout.strip() or None
        result = await self._run_git(
            ["rev-parse", "--abbrev-ref", "HEAD"], cwd=self.path, check=False
        )
        if result.ok and result.stdout.strip():
            self._branch = result.stdout.strip()

    async def init(self) -> None:
        logger.info("Cloning repository %s from %s", self.name, self.url)
        try:
            ensure_directory(self.path.parent)
        except OSError as e:
            raise RepositoryError(
                f"Cannot create {self.path.parent}: {e}", name=self.name, url=self.url
            ) from e

        try:
            await self._run_git(["clone", self.url, str(self.path)])
            await self._read_head()
        except RepositoryError:
            if remove_directory(self.path):
                logger.debug("Removed partial checkout %s", self.path)
            raise

        logger.debug("Repository %s at %s (%s)", self.name, self._git_head, self._branch)
        self.rescan()

    async def upgrade(self) -> bool:
        if not self.is_healthy():
            raise RepositoryError(
                f"Checkout of repository `{self.name}` is missing: {self.path}",
                name=self.name,
                url=self.url,
            )

        previous = self._git_head
        logger.info("Pulling repository %s", self.name)
        await self._run_git(["pull", "--ff-only"], cwd=self.path)
        await self._read_head()
        self.rescan()

        changed = previous != self._git_head
        if changed:
            logger.info("Repository %s moved from %s to %s", self.name, previous, self._git_head)
        else:
            logger.info("Repository %s is up to date", self.name)
        return changed

    def is_healthy(self) -> bool:
        return (self.path / ".git").is_dir()

    def to_info(self) -> RepositoryInfo:
        return RepositoryInfo(
            kind=self.kind,
            name=self.name,
            url=self.url,
            path=str(self.path),
            branch=self._branch,
            git_head=self._git_head,
        )

    @classmethod
    def from_info(cls, info: RepositoryInfo) -> GitRepository:
        return cls(
            info.name,
            info.url,
            Path(info.path),
            branch=info.branch,
            git_head=info.git_head,
        )
