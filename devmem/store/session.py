from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path

from ..errors import RecordError
from ..fs_paths import atomic_write_text
from .types import ContextUsage, SessionState
from .utils import now

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"{now():%Y-%m-%d_%H-%M}"


class SessionStateManager:
    """Owns session_state.json for one project.

    Every read-modify-write goes through ``update`` while holding the
    project's lock, so two callers in one process cannot lose each other's
    changes. There is no locking across processes.
    """

    def __init__(self, path: Path, lock: threading.RLock) -> None:
        self.path = path
        self._lock = lock

    def load(self) -> SessionState:
        with self._lock:
            return self._read()

    def save(self, state: SessionState) -> SessionState:
        with self._lock:
            state.last_activity = now()
            self._write(state)
            return state

    def update(self, mutate: Callable[[SessionState], None]) -> SessionState:
        with self._lock:
            state = self._read()
            mutate(state)
            state.last_activity = now()
            self._write(state)
            return state

    def start_new_session(
        self,
        *,
        tokens_limit: int = 200000,
        warning_threshold: int = 150000,
        critical_threshold: int = 180000,
    ) -> SessionState:
        started = now()
        state = SessionState(
            session_id=new_session_id(),
            started=started,
            last_activity=started,
            context_usage=ContextUsage(
                tokens_used=0,
                tokens_limit=tokens_limit,
                warning_threshold=warning_threshold,
                critical_threshold=critical_threshold,
            ),
        )
        with self._lock:
            self._write(state)
        return state

    def update_token_usage(self, tokens_used: int) -> SessionState:
        def _apply(state: SessionState) -> None:
            state.context_usage.tokens_used = tokens_used

        return self.update(_apply)

    def _read(self) -> SessionState:
        if not self.path.exists():
            started = now()
            return SessionState(
                session_id=new_session_id(), started=started, last_activity=started
            )
        try:
            return SessionState.from_dict(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, RecordError) as exc:
            logger.warning("session state unreadable, starting fresh: %s", self.path, exc_info=exc)
            started = now()
            return SessionState(
                session_id=new_session_id(), started=started, last_activity=started
            )

    def _write(self, state: SessionState) -> None:
        atomic_write_text(
            self.path, json.dumps(state.to_dict(), ensure_ascii=False, indent=2) + "\n"
        )
