from __future__ import annotations

import threading
from pathlib import Path

from .config import DevMemConfig, load_config
from .errors import ProjectNotFoundError
from .fs_paths import ProjectPaths


class MemoryContext:
    """Process-wide owner of the memory root and per-project locks.

    Build one per process and hand it to every store; nothing in devmem reads
    the memory root from module globals.
    """

    def __init__(self, config: DevMemConfig | None = None) -> None:
        self.config = config or load_config()
        self.memory_root = self.config.memory_root_path
        self._locks_guard = threading.Lock()
        self._locks: dict[Path, threading.RLock] = {}

    @property
    def projects_root(self) -> Path:
        return self.memory_root / "Projects"

    def project_paths(self, project_path: str | Path) -> ProjectPaths:
        project = Path(project_path).expanduser()
        if not project.is_dir():
            raise ProjectNotFoundError(str(project_path))
        name = project.resolve().name
        return ProjectPaths(root=self.projects_root / name)

    def lock_for(self, path: Path) -> threading.RLock:
        key = Path(path).expanduser().resolve()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock
