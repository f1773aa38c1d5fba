"""Short-lived download links for finished videos.

A link points at a private copy of the output in the temp-artifact
directory. Once its validity window has passed the link answers "expired"
even if the file is still on disk; the copy is removed on that access or
by the next sweep, whichever comes first.
"""

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from reelgen.exceptions import ArtifactExpiredError, ArtifactNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ArtifactLink:
    """A temporary public URL for one artifact file."""

    id: str
    source_path: str  # composed output
    file_path: str  # copy served through the link
    public_path: str
    filename: str
    expires_at: float
    created_at: float
    accessed: bool = False

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "tempUrlId": self.id,
            "url": self.public_path,
            "filename": self.filename,
            "expiresAt": datetime.fromtimestamp(self.expires_at, tz=timezone.utc).isoformat(),
        }


class ArtifactLinkStore:
    """Thread-safe link registry with a fixed validity window."""

    def __init__(
        self,
        ttl_s: float = 300.0,
        public_prefix: str = "/api/artifact",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._links: dict[str, ArtifactLink] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_s
        self._prefix = public_prefix.rstrip("/")
        self._clock = clock

    @staticmethod
    def new_id() -> str:
        return f"temp-{uuid.uuid4().hex}"

    def mint(
        self,
        source_path: str,
        file_path: str,
        filename: str,
        link_id: str | None = None,
    ) -> ArtifactLink:
        """Register a link for ``file_path``, valid for the store's TTL."""
        now = self._clock()
        link_id = link_id or self.new_id()
        link = ArtifactLink(
            id=link_id,
            source_path=source_path,
            file_path=file_path,
            public_path=f"{self._prefix}/{link_id}",
            filename=filename,
            expires_at=now + self._ttl,
            created_at=now,
        )
        with self._lock:
            self._links[link_id] = link
        logger.info(f"[ARTIFACT] Minted {link_id} for {filename}, ttl={self._ttl:.0f}s")
        return link

    def resolve(self, link_id: str) -> ArtifactLink:
        """Return a servable link and mark it accessed.

        Raises:
            ArtifactNotFoundError: Unknown id, or the backing file is gone
            ArtifactExpiredError: At or past the expiry time
        """
        with self._lock:
            link = self._links.get(link_id)
            if link is None:
                raise ArtifactNotFoundError()
            if link.is_expired(self._clock()):
                del self._links[link_id]
            elif not os.path.isfile(link.file_path):
                del self._links[link_id]
                logger.warning(f"[ARTIFACT] Backing file missing for {link_id}, evicted")
                raise ArtifactNotFoundError()
            else:
                link.accessed = True
                return link

        _remove_quietly(link.file_path)
        raise ArtifactExpiredError()

    def get(self, link_id: str) -> ArtifactLink | None:
        with self._lock:
            return self._links.get(link_id)

    def evict_expired(self) -> list[ArtifactLink]:
        """Remove expired links and return them so their files can be reaped."""
        with self._lock:
            now = self._clock()
            expired = [link for link in self._links.values() if link.is_expired(now)]
            for link in expired:
                del self._links[link.id]
            return expired

    def live_files(self) -> set[str]:
        """Backing files of links that are still valid."""
        with self._lock:
            now = self._clock()
            return {link.file_path for link in self._links.values() if not link.is_expired(now)}

    def __len__(self) -> int:
        with self._lock:
            return len(self._links)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[ARTIFACT] Could not delete expired artifact {path}: {e}")
