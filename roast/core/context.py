"""Network context: where the state of one network lives on disk.

Each network (bitcoin, testnet, regtest, ...) gets its own root directory:

    <data_dir>/<network>/
        storage.json        # storage snapshot
        roast.conf          # config fragment included by the node
        repositories/<name> # repository checkouts
        plugins/<name>      # installed plugin copies
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_NETWORK = "bitcoin"
DATA_DIR_ENV = "ROAST_HOME"
NETWORK_ENV = "ROAST_NETWORK"

_NETWORK_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def default_data_dir() -> Path:
    """Get the data directory: $ROAST_HOME, or ~/.roast."""
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".roast"


@dataclass(frozen=True)
class NetworkContext:
    """Filesystem roots for one network."""

    data_dir: Path
    network: str = DEFAULT_NETWORK

    def __post_init__(self) -> None:
        if not _NETWORK_PATTERN.match(self.network):
            raise ValueError(f"Invalid network name: {self.network!r}")
        object.__setattr__(self, "data_dir", Path(self.data_dir).expanduser().resolve())

    @classmethod
    def default(cls, network: str | None = None, data_dir: Path | None = None) -> "NetworkContext":
        """Build a context from arguments, falling back to the environment."""
        network = network or os.environ.get(NETWORK_ENV) or DEFAULT_NETWORK
        return cls(data_dir=data_dir or default_data_dir(), network=network)

    @property
    def root(self) -> Path:
        return self.data_dir / self.network

    @property
    def storage_path(self) -> Path:
        return self.root / "storage.json"

    @property
    def fragment_path(self) -> Path:
        return self.root / "roast.conf"

    @property
    def repositories_dir(self) -> Path:
        return self.root / "repositories"

    @property
    def plugins_dir(self) -> Path:
        return self.root / "plugins"

    def repository_path(self, name: str) -> Path:
        return self.repositories_dir / name

    def plugin_path(self, name: str) -> Path:
        return self.plugins_dir / name
