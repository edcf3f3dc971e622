from __future__ import annotations

from pathlib import Path

import pytest

from devmem.config import DevMemConfig
from devmem.context import MemoryContext
from devmem.store import MemoryStore


@pytest.fixture(autouse=True)
def _isolate_memory_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DEVMEM_HOME", str(tmp_path / "memory-home"))
    monkeypatch.setenv("DEVMEM_CONFIG", str(tmp_path / "config.json"))


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "workspace" / "demo-app"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def context(tmp_path: Path) -> MemoryContext:
    return MemoryContext(DevMemConfig(memory_root=str(tmp_path / "memory-root")))


@pytest.fixture
def store(project_dir: Path, context: MemoryContext) -> MemoryStore:
    return MemoryStore(project_dir, context=context)
