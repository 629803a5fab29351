from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from .helpers import FakeExtractor, FakeProbe


@pytest.fixture
def app_module(tmp_path, monkeypatch):
    monkeypatch.setenv("MEDIA_ROOT", str(tmp_path))
    monkeypatch.delenv("STORAGE_DIR", raising=False)
    monkeypatch.delenv("CATALOG_PATH", raising=False)
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    if "app" in sys.modules:
        module = importlib.reload(sys.modules["app"])
    else:
        module = importlib.import_module("app")
    module.STATE["probe"] = FakeProbe()
    module.STATE["extractor"] = FakeExtractor()
    yield module


@pytest.fixture
def client(app_module):
    with TestClient(app_module.app) as test_client:
        yield test_client


@pytest.fixture
def storage(tmp_path):
    d = tmp_path / "videos"
    d.mkdir()
    return d


@pytest.fixture
def staged(tmp_path):
    """Factory writing a file into a staging dir, as the upload route does."""
    incoming = tmp_path / "incoming"
    incoming.mkdir()
    counter = {"n": 0}

    def _make(data: bytes = b"0" * 32) -> Path:
        counter["n"] += 1
        p = incoming / f"upload_{counter['n']}.tmp"
        p.write_bytes(data)
        return p

    return _make
