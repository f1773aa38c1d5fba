"""Browser session liveness and file ownership.

Clients heartbeat while a page is open. A session that stops heartbeating
is evicted by the sweeper and every file it caused to exist is deleted.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass
class ClientSession:
    id: str
    last_heartbeat: float
    created_at: float
    files: list[str] = field(default_factory=list)
    leaving: bool = False


class SessionStore:
    """Thread-safe session registry."""

    def __init__(
        self,
        leaving_age_s: float = 600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: dict[str, ClientSession] = {}
        self._lock = threading.Lock()
        self._leaving_age = leaving_age_s
        self._clock = clock

    def heartbeat(self, session_id: str, leaving: bool = False) -> ClientSession:
        """Create or refresh a session.

        ``leaving`` backdates the heartbeat so the next sweep evicts the
        session. Owned files are kept either way.
        """
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ClientSession(id=session_id, last_heartbeat=now, created_at=now)
                self._sessions[session_id] = session
            session.last_heartbeat = now - self._leaving_age if leaving else now
            session.leaving = leaving
            return replace(session, files=list(session.files))

    def add_files(self, session_id: str, paths: list[str]) -> ClientSession:
        """Append files to a session's ownership list, creating it if needed."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ClientSession(id=session_id, last_heartbeat=now, created_at=now)
                self._sessions[session_id] = session
            for path in paths:
                if path not in session.files:
                    session.files.append(path)
            return replace(session, files=list(session.files))

    def get(self, session_id: str) -> ClientSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session, files=list(session.files)) if session else None

    def evict_idle(self, idle_timeout_s: float) -> list[ClientSession]:
        """Remove sessions idle longer than ``idle_timeout_s`` and return them."""
        with self._lock:
            now = self._clock()
            idle = [s for s in self._sessions.values() if now - s.last_heartbeat > idle_timeout_s]
            for session in idle:
                del self._sessions[session.id]
            return idle

    def owned_files(self) -> set[str]:
        """Files owned by sessions that are still alive."""
        with self._lock:
            return {path for s in self._sessions.values() for path in s.files}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
