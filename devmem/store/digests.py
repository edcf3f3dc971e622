from __future__ import annotations

import base64
import datetime as dt
import hashlib
import json
import logging
from pathlib import Path

from ..errors import RecordError
from ..fs_paths import atomic_write_text
from .types import FileDigest
from .utils import now

logger = logging.getLogger(__name__)


def compute_hash(content: str) -> str:
    digest = hashlib.sha256(content.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def _mtime(path: Path) -> dt.datetime:
    return dt.datetime.fromtimestamp(path.stat().st_mtime).astimezone()


class FileDigestCache:
    """file_digests.json: per-file summaries keyed by absolute path.

    A cached digest is served only while the file's modification time still
    equals the cached ``last_modified``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._digests: dict[str, FileDigest] | None = None

    @property
    def digests(self) -> dict[str, FileDigest]:
        if self._digests is None:
            self._digests = self._load()
        return self._digests

    def reload(self) -> None:
        self._digests = self._load()

    def get(self, file_path: str | Path) -> FileDigest | None:
        key = str(Path(file_path).expanduser().resolve())
        digest = self.digests.get(key)
        if digest is None:
            return None
        target = Path(key)
        if not target.exists():
            return None
        if digest.last_modified is None or _mtime(target) != digest.last_modified:
            return None
        digest.last_read = now()
        return digest

    def update(self, file_path: str | Path, content: str) -> FileDigest:
        target = Path(file_path).expanduser().resolve()
        stat = target.stat()
        digest = FileDigest(
            path=str(target),
            size=stat.st_size,
            lines=len(content.split("\n")),
            last_modified=_mtime(target),
            hash=compute_hash(content),
            last_read=now(),
        )
        self.digests[str(target)] = digest
        self.save()
        return digest

    def save(self) -> None:
        payload = {key: digest.to_dict() for key, digest in self.digests.items()}
        atomic_write_text(self.path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")

    def _load(self) -> dict[str, FileDigest]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("file digest cache unreadable: %s", self.path, exc_info=exc)
            return {}
        if not isinstance(data, dict):
            return {}
        digests: dict[str, FileDigest] = {}
        for key, value in data.items():
            try:
                digests[str(key)] = FileDigest.from_dict(value)
            except RecordError:
                continue
        return digests
