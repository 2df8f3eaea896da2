"""Tests for roast.core.storage module."""

import json
from pathlib import Path

import pytest

from roast.config.schemas import InstalledPlugin, ManagerConfig, RepositoryInfo, StorageSnapshot
from roast.core.storage import FileStorage, StorageError


@pytest.fixture
def snapshot() -> StorageSnapshot:
    return StorageSnapshot(
        config=ManagerConfig(
            network="regtest",
            data_dir="/data",
            plugins=[
                InstalledPlugin(
                    name="summary",
                    repository="lightning",
                    path="/data/regtest/plugins/summary",
                    exec_path="/data/regtest/plugins/summary/summary.py",
                )
            ],
        ),
        repositories=[
            RepositoryInfo(kind="git", name="lightning", url="https://x/y.git", path="/r")
        ],
    )


class TestFileStorage:
    """Tests for FileStorage."""

    def test_load_missing_returns_none(self, temp_dir: Path):
        """An absent snapshot means empty state, not an error."""
        storage = FileStorage(temp_dir)

        assert storage.exists() is False
        assert storage.load() is None

    def test_store_then_load(self, temp_dir: Path, snapshot: StorageSnapshot):
        """A stored snapshot loads back equal."""
        storage = FileStorage(temp_dir / "regtest")

        storage.store(snapshot)

        assert storage.exists()
        assert storage.load() == snapshot

    def test_store_writes_json(self, temp_dir: Path, snapshot: StorageSnapshot):
        """The snapshot file is plain JSON."""
        storage = FileStorage(temp_dir)
        storage.store(snapshot)

        data = json.loads(storage.path.read_text())

        assert data["config"]["network"] == "regtest"
        assert data["repositories"][0]["kind"] == "git"

    def test_invalid_json_raises(self, temp_dir: Path):
        """Unparseable content is a StorageError."""
        (temp_dir / "storage.json").write_text("{broken")

        with pytest.raises(StorageError, match="Invalid JSON"):
            FileStorage(temp_dir).load()

    def test_invalid_schema_raises(self, temp_dir: Path):
        """Valid JSON with the wrong shape is a StorageError."""
        (temp_dir / "storage.json").write_text('{"repositories": []}')

        with pytest.raises(StorageError, match="Invalid storage snapshot"):
            FileStorage(temp_dir).load()

    def test_store_failure_raises(self, temp_dir: Path, snapshot: StorageSnapshot):
        """Write errors surface as StorageError."""
        storage = FileStorage(temp_dir)
        storage.path.mkdir()

        with pytest.raises(StorageError, match="Cannot write"):
            storage.store(snapshot)

    def test_error_code(self):
        """StorageError carries its own exit code."""
        assert StorageError("x").code == 7
