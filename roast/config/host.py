"""Structured editing of the node daemon's configuration file.

The node reads a line-oriented file:

    # comment
    network=bitcoin
    log-level=debug
    include /home/user/.roast/bitcoin/roast.conf

roast owns a private fragment with one ``plugin=<path>`` directive per
installed plugin, and adds a single ``include`` line for that fragment to the
node's primary file. Lines roast does not own are kept byte-for-byte,
including lines it cannot parse.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from roast.config.parser import ConfigError
from roast.utils.filesystem import write_text_file

logger = logging.getLogger(__name__)

INCLUDE_KEY = "include"
PLUGIN_KEY = "plugin"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_INCLUDE_PATTERN = re.compile(r"^include(?:\s+|\s*=\s*)(.*)$")


@dataclass
class ConfigLine:
    """A single line of a host config file.

    ``key`` is None for blank lines, comments and lines that failed to parse;
    those are only ever written back verbatim.
    """

    raw: str
    key: str | None = None
    value: str | None = None

    @property
    def is_directive(self) -> bool:
        return self.key is not None and self.key != INCLUDE_KEY

    @property
    def is_include(self) -> bool:
        return self.key == INCLUDE_KEY

    @classmethod
    def directive(cls, key: str, value: str | None) -> ConfigLine:
        raw = key if value is None else f"{key}={value}"
        return cls(raw=raw, key=key, value=value)

    @classmethod
    def include(cls, path: str) -> ConfigLine:
        return cls(raw=f"{INCLUDE_KEY} {path}", key=INCLUDE_KEY, value=path)


def parse_line(raw: str) -> ConfigLine | None:
    """Parse one line; returns None if the line is malformed."""
    line = raw.strip()
    if not line or line.startswith("#"):
        return ConfigLine(raw=raw)

    match = _INCLUDE_PATTERN.match(line)
    if match:
        target = match.group(1).strip()
        if not target:
            return None
        return ConfigLine(raw=raw, key=INCLUDE_KEY, value=target)

    if "=" in line:
        key, value = line.split("=", 1)
        key = key.strip()
        if not _KEY_PATTERN.match(key):
            return None
        return ConfigLine(raw=raw, key=key, value=value.strip())

    if _KEY_PATTERN.match(line) and line != INCLUDE_KEY:
        return ConfigLine(raw=raw, key=line, value=None)
    return None


def _same_path(a: str, b: str) -> bool:
    return Path(a).expanduser() == Path(b).expanduser()


class HostConfig:
    """Editor for a node configuration file.

    Call ``parse()`` before reading or editing, and ``flush()`` to write the
    changes back.
    """

    def __init__(self, path: Path, create_if_missing: bool = False, header: str | None = None):
        """Initialize the editor.

        Args:
            path: Configuration file path
            create_if_missing: Treat a missing file as empty instead of an error
            header: Comment written at the top when the file is created
        """
        self._path = path
        self._create_if_missing = create_if_missing
        self._header = header
        self._lines: list[ConfigLine] = []
        self._exists = False

    @property
    def path(self) -> Path:
        """Get the configuration file path."""
        return self._path

    def parse(self) -> list[str]:
        """Read the file from disk.

        Malformed lines are logged and preserved; they never abort parsing.

        Returns:
            Warnings for lines that could not be parsed

        Raises:
            ConfigError: If the file is missing (and may not be created),
                is a directory, or cannot be read as UTF-8 text
        """
        self._lines = []
        if not self._path.exists():
            if not self._create_if_missing:
                raise ConfigError(f"Configuration file not found: {self._path}", self._path)
            self._exists = False
            return []
        if self._path.is_dir():
            raise ConfigError(f"Configuration path is a directory: {self._path}", self._path)

        try:
            content = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read {self._path}: {e}", self._path) from e

        self._exists = True
        warnings = []
        for lineno, raw in enumerate(content.splitlines(), start=1):
            parsed = parse_line(raw)
            if parsed is None:
                warning = f"{self._path}:{lineno}: ignoring malformed line {raw.strip()!r}"
                logger.warning(warning)
                warnings.append(warning)
                parsed = ConfigLine(raw=raw)
            self._lines.append(parsed)
        logger.debug("Parsed %d line(s) from %s", len(self._lines), self._path)
        return warnings

    @property
    def directives(self) -> list[tuple[str, str | None]]:
        """All key/value directives, in file order (include lines excluded)."""
        return [(line.key, line.value) for line in self._lines if line.is_directive]  # type: ignore[misc]

    @property
    def includes(self) -> list[str]:
        """Paths of all included sub-configs, in file order."""
        return [line.value for line in self._lines if line.is_include and line.value]

    def get(self, key: str) -> list[str | None]:
        """Get every value set for a key."""
        return [line.value for line in self._lines if line.is_directive and line.key == key]

    def has_directive(self, key: str, value: str | None) -> bool:
        return any(
            line.is_directive and line.key == key and line.value == value for line in self._lines
        )

    def add_directive(self, key: str, value: str | None) -> bool:
        """Append a directive unless the exact key/value pair is already present.

        Returns:
            True if the directive was added
        """
        if not _KEY_PATTERN.match(key) or key == INCLUDE_KEY:
            raise ConfigError(f"Invalid directive key: {key!r}", self._path)
        if self.has_directive(key, value):
            return False
        self._lines.append(ConfigLine.directive(key, value))
        return True

    def remove_directive(self, key: str, value: str | None = None) -> int:
        """Remove directives for a key (only those matching ``value`` if given).

        Returns:
            Number of lines removed
        """
        before = len(self._lines)
        self._lines = [
            line
            for line in self._lines
            if not (line.is_directive and line.key == key and (value is None or line.value == value))
        ]
        return before - len(self._lines)

    def has_include(self, path: str | Path) -> bool:
        return any(_same_path(existing, str(path)) for existing in self.includes)

    def add_include(self, path: str | Path) -> bool:
        """Include a sub-config, unless it is already included.

        Returns:
            True if the include line was added
        """
        if self.has_include(path):
            return False
        self._lines.append(ConfigLine.include(str(path)))
        return True

    def remove_include(self, path: str | Path) -> bool:
        """Remove the include line(s) for a sub-config.

        Returns:
            True if anything was removed
        """
        before = len(self._lines)
        self._lines = [
            line
            for line in self._lines
            if not (line.is_include and line.value and _same_path(line.value, str(path)))
        ]
        return len(self._lines) != before

    def render(self) -> str:
        """Render the file content."""
        lines = [line.raw for line in self._lines]
        return "\n".join(lines) + "\n" if lines else ""

    def flush(self) -> None:
        """Write the configuration back to disk.

        Raises:
            ConfigError: If the file cannot be written
        """
        if not self._exists and self._header:
            self._lines.insert(0, ConfigLine(raw=self._header))
        try:
            write_text_file(self._path, self.render())
        except OSError as e:
            raise ConfigError(f"Cannot write {self._path}: {e}", self._path) from e
        self._exists = True
        logger.debug("Flushed configuration to %s", self._path)

    def __repr__(self) -> str:
        return f"HostConfig(path={self._path!r}, lines={len(self._lines)})"
