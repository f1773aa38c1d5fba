"""Periodic reclamation of sessions, artifact links and working files.

Each cycle:
1. Evicts sessions idle past the threshold and queues their files
2. Evicts expired artifact links and queues their backing copies
3. Scans the working directories for files older than their max age
   (short for intermediate/temp directories, long elsewhere), skipping
   files that belong to running jobs, live sessions or live links
4. De-duplicates the queue and deletes it; a failed deletion is logged
   and the cycle carries on

It also prunes finished jobs and expired in-process rate counters.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from reelgen.config import Settings
from reelgen.services.artifact_links import ArtifactLinkStore
from reelgen.services.job_tracker import JobTracker
from reelgen.services.rate_limiter import CounterBackend
from reelgen.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    deleted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class SweepReport:
    sessions_evicted: int = 0
    links_evicted: int = 0
    jobs_pruned: int = 0
    counters_pruned: int = 0
    files_deleted: int = 0
    failures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionsEvicted": self.sessions_evicted,
            "linksEvicted": self.links_evicted,
            "jobsPruned": self.jobs_pruned,
            "filesDeleted": self.files_deleted,
            "failures": self.failures,
        }


@dataclass(frozen=True)
class ScanRoot:
    """A working directory covered by the age-based pass."""

    path: Path
    max_age_s: float
    prune_empty_dirs: bool = False


def delete_files(paths: list[str]) -> CleanupResult:
    """Delete each path once. Already-missing files count as done."""
    result = CleanupResult()
    for path in dict.fromkeys(paths):
        try:
            os.remove(path)
            result.deleted.append(path)
        except FileNotFoundError:
            result.missing.append(path)
        except IsADirectoryError:
            logger.warning(f"[SWEEP] Skipping directory {path}")
            result.failed.append(path)
        except OSError as e:
            logger.warning(f"[SWEEP] Failed to delete {path}: {e}")
            result.failed.append(path)
    return result


def find_aged_files(root: ScanRoot, now: float) -> list[str]:
    """Regular files under ``root`` whose mtime is older than its max age."""
    if not root.path.is_dir():
        return []
    aged: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root.path):
        for name in filenames:
            path = os.path.join(dirpath, name)
            try:
                stat = os.stat(path)
            except FileNotFoundError:
                continue
            if now - stat.st_mtime > root.max_age_s:
                aged.append(path)
    return aged


def prune_empty_dirs(root: Path) -> int:
    """Remove empty subdirectories below ``root`` (never ``root`` itself)."""
    removed = 0
    if not root.is_dir():
        return removed
    for dirpath, _dirnames, filenames in os.walk(root, topdown=False):
        if Path(dirpath) == root or filenames:
            continue
        try:
            os.rmdir(dirpath)
            removed += 1
        except OSError:
            # Not empty
            continue
    return removed


class ResourceSweeper:
    """Runs the reclamation cycle on a fixed interval."""

    def __init__(
        self,
        settings: Settings,
        sessions: SessionStore,
        links: ArtifactLinkStore,
        jobs: JobTracker,
        counters: CounterBackend | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.sessions = sessions
        self.links = links
        self.jobs = jobs
        self.counters = counters
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def scan_roots(self) -> list[ScanRoot]:
        s = self.settings
        return [
            ScanRoot(s.uploads_path, s.general_max_age_s),
            ScanRoot(s.videos_path, s.general_max_age_s),
            ScanRoot(s.temp_artifacts_path, s.intermediate_max_age_s),
            ScanRoot(s.temp_clips_path, s.intermediate_max_age_s, prune_empty_dirs=True),
        ]

    def _protected(self) -> tuple[set[str], tuple[str, ...]]:
        """Files and job directories the age pass must not touch."""
        files = self.sessions.owned_files() | self.links.live_files()
        job_prefixes: list[str] = []
        for job_id in self.jobs.active_ids():
            files.add(str(self.settings.videos_path / f"video_{job_id}.mp4"))
            job_prefixes.append(str(self.settings.temp_clips_path / job_id) + os.sep)
        return files, tuple(job_prefixes)

    def run_once(self) -> SweepReport:
        """One full reclamation cycle."""
        report = SweepReport()
        queue: list[str] = []

        for session in self.sessions.evict_idle(self.settings.session_idle_timeout_s):
            logger.info(f"[SWEEP] Evicting idle session {session.id} ({len(session.files)} files)")
            queue.extend(session.files)
            report.sessions_evicted += 1

        for link in self.links.evict_expired():
            queue.append(link.file_path)
            report.links_evicted += 1

        protected_files, protected_prefixes = self._protected()
        now = self._clock()
        for root in self.scan_roots:
            for path in find_aged_files(root, now):
                if path in protected_files or path.startswith(protected_prefixes):
                    continue
                queue.append(path)

        cleanup = delete_files(queue)
        report.files_deleted = len(cleanup.deleted)
        report.failures = cleanup.failed

        for root in self.scan_roots:
            if root.prune_empty_dirs:
                prune_empty_dirs(root.path)

        report.jobs_pruned = self.jobs.prune()
        if self.counters is not None:
            report.counters_pruned = self.counters.prune()

        if report.files_deleted or report.sessions_evicted or report.links_evicted or report.failures:
            logger.info(
                f"[SWEEP] sessions={report.sessions_evicted} links={report.links_evicted} "
                f"jobs={report.jobs_pruned} files={report.files_deleted} failed={len(report.failures)}"
            )
        return report

    async def run_forever(self) -> None:
        interval = self.settings.sweep_interval_s
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("[SWEEP] Cycle failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run_forever())
            logger.info(f"[SWEEP] Started, interval={self.settings.sweep_interval_s:.0f}s")

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
