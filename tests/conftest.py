"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from video_catalog import CatalogStore
from video_server import app


def write_file(path: Path, data: bytes = b"") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture
def video_root(tmp_path: Path) -> Path:
    """A root with ``a.mp4``, ``sub/b.mkv`` and a non-video ``notes.txt``."""
    root = tmp_path / "videos"
    write_file(root / "a.mp4", b"0123456789")
    write_file(root / "sub" / "b.mkv", b"mkv-bytes")
    write_file(root / "notes.txt", b"not a video")
    return root


@pytest.fixture
def store(video_root: Path) -> CatalogStore:
    s = CatalogStore(str(video_root))
    s.load()
    return s


@pytest.fixture
def client(store: CatalogStore):
    app.config.update(TESTING=True, CATALOG=store)
    with app.test_client() as c:
        yield c
    app.config.pop("CATALOG", None)
