"""Filesystem utilities for roast."""

import os
import shutil
import tempfile
from pathlib import Path

# Never copied from a checkout into an install directory
COPY_IGNORE = (".git", "__pycache__", "*.pyc")


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists

    Returns:
        The directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def copy_directory(src: Path, dest: Path) -> Path:
    """Copy a directory recursively, replacing the destination.

    Version control metadata and bytecode caches are left behind.

    Args:
        src: Source directory path
        dest: Destination directory path

    Returns:
        Path to the copied directory
    """
    if dest.exists():
        shutil.rmtree(dest)
    shutil.copytree(src, dest, ignore=shutil.ignore_patterns(*COPY_IGNORE), symlinks=True)
    return dest


def remove_directory(path: Path) -> bool:
    """Remove a directory and its contents.

    Args:
        path: Directory path to remove

    Returns:
        True if the directory was removed, False if it didn't exist
    """
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def write_text_file(path: Path, content: str) -> None:
    """Write content to a text file, replacing it atomically.

    The content goes to a temporary file in the same directory first, so a
    crash never leaves a half-written file behind.

    Args:
        path: Path to the file
        content: Content to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def is_executable(path: Path) -> bool:
    """Check whether a path is a regular file the current user may execute."""
    return path.is_file() and os.access(path, os.X_OK)
