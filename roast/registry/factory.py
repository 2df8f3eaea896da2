"""Repository factory."""

import logging
from pathlib import Path

from roast.config.schemas import RepositoryInfo
from roast.registry.base import Repository, RepositoryError
from roast.registry.git import GitRepository

logger = logging.getLogger(__name__)

# Repository kinds known to the manager, keyed by RepositoryInfo.kind
REPOSITORY_KINDS: dict[str, type[Repository]] = {
    GitRepository.kind: GitRepository,
}


def create_repository(name: str, url: str, repositories_dir: Path) -> Repository:
    """Create a repository for a remote URL.

    Every supported URL is a git remote today.

    Args:
        name: Local name
        url: Remote URL
        repositories_dir: Directory holding all checkouts

    Returns:
        Repository instance (not yet initialized)

    Raises:
        RepositoryError: If the URL is not supported
    """
    logger.debug("Creating repository %s for URL: %s", name, url)
    return GitRepository(name, url, repositories_dir / name)


def repository_from_info(info: RepositoryInfo) -> Repository:
    """Rebuild a repository from its persisted descriptor.

    Raises:
        RepositoryError: If the descriptor kind is unknown
    """
    cls = REPOSITORY_KINDS.get(info.kind)
    if cls is None:
        raise RepositoryError(
            f"Unsupported repository kind `{info.kind}` for `{info.name}`",
            name=info.name,
            url=info.url,
        )
    return cls.from_info(info)
