"""Tests for the periodic resource sweep."""

import asyncio
import os
from unittest.mock import MagicMock, patch

import pytest

from reelgen.services.artifact_links import ArtifactLinkStore
from reelgen.services.job_tracker import JobTracker
from reelgen.services.resource_sweeper import ResourceSweeper, delete_files, prune_empty_dirs
from reelgen.services.session_store import SessionStore


@pytest.fixture
def stores(clock):
    return (
        SessionStore(leaving_age_s=600, clock=clock),
        ArtifactLinkStore(ttl_s=300, clock=clock),
        JobTracker(grace_period_s=30, clock=clock),
    )


@pytest.fixture
def sweeper(settings, stores, local_counters, clock):
    sessions, links, jobs = stores
    return ResourceSweeper(settings, sessions, links, jobs, local_counters, clock=clock)


@pytest.fixture
def aged_file(make_file, clock):
    """Create a file whose mtime is ``age`` seconds before the fake clock."""

    def _make(path, age: float):
        make_file(path)
        mtime = clock.now - age
        os.utime(path, (mtime, mtime))
        return path

    return _make


class TestSessionReclamation:
    """Idle sessions and their files."""

    def test_idle_session_files_deleted_once(self, sweeper, stores, settings, make_file, clock):
        """Every file of an idle session is deleted exactly once."""
        sessions, _, _ = stores
        shared = make_file(settings.uploads_path / "shared.jpg")
        own = make_file(settings.uploads_path / "own.jpg")
        sessions.add_files("s1", [str(shared), str(own)])
        sessions.add_files("s2", [str(shared)])
        clock.advance(301)

        with patch("reelgen.services.resource_sweeper.os.remove", wraps=os.remove) as remove:
            report = sweeper.run_once()

        removed = [c.args[0] for c in remove.call_args_list]
        assert sorted(removed) == sorted([str(shared), str(own)])
        assert report.sessions_evicted == 2
        assert report.files_deleted == 2
        assert not shared.exists() and not own.exists()

    def test_active_session_untouched(self, sweeper, stores, settings, make_file, clock):
        """Sessions within the idle threshold keep their files."""
        sessions, _, _ = stores
        upload = make_file(settings.uploads_path / "keep.jpg")
        sessions.add_files("s1", [str(upload)])
        clock.advance(100)

        report = sweeper.run_once()

        assert report.sessions_evicted == 0
        assert upload.exists()

    def test_leaving_session_reclaimed_next_sweep(self, sweeper, stores, settings, make_file):
        """A leaving signal makes the very next sweep reclaim the session."""
        sessions, _, _ = stores
        upload = make_file(settings.uploads_path / "bye.jpg")
        sessions.add_files("s1", [str(upload)])
        sessions.heartbeat("s1", leaving=True)

        report = sweeper.run_once()

        assert report.sessions_evicted == 1
        assert not upload.exists()

    def test_repeat_sweep_is_idempotent(self, sweeper, stores, settings, make_file, clock):
        """Already-deleted files are not failures on later sweeps."""
        sessions, _, _ = stores
        upload = make_file(settings.uploads_path / "gone.jpg")
        sessions.add_files("s1", [str(upload)])
        upload.unlink()
        clock.advance(301)

        report = sweeper.run_once()

        assert report.sessions_evicted == 1
        assert report.failures == []


class TestLinkReclamation:
    """Expired artifact links."""

    def test_expired_link_file_deleted(self, sweeper, stores, settings, make_file, clock):
        """Expired links are evicted along with their backing copy."""
        _, links, _ = stores
        copy = make_file(settings.temp_artifacts_path / "temp-1.mp4")
        link = links.mint("/videos/v.mp4", str(copy), "v.mp4", link_id="temp-1")
        clock.advance(300)

        report = sweeper.run_once()

        assert report.links_evicted == 1
        assert links.get(link.id) is None
        assert not copy.exists()


class TestAgePass:
    """Fallback age-based cleanup of working directories."""

    def test_thresholds_per_directory(self, sweeper, settings, aged_file):
        """Temp directories use the short threshold, others the long one."""
        old_clip = aged_file(settings.temp_clips_path / "job_x" / "clip_000.mp4", 301)
        young_clip = aged_file(settings.temp_clips_path / "job_y" / "clip_000.mp4", 200)
        recent_upload = aged_file(settings.uploads_path / "recent.jpg", 600)
        stale_upload = aged_file(settings.uploads_path / "stale.jpg", 1801)
        stale_video = aged_file(settings.videos_path / "video_old.mp4", 1801)

        sweeper.run_once()

        assert not old_clip.exists()
        assert young_clip.exists()
        assert recent_upload.exists()
        assert not stale_upload.exists()
        assert not stale_video.exists()

    def test_running_job_files_protected(self, sweeper, stores, settings, aged_file):
        """Intermediates and output of a running job survive the age pass."""
        _, _, jobs = stores
        jobs.create("job_live")
        clip = aged_file(settings.temp_clips_path / "job_live" / "clip_000.mp4", 3600)
        output = aged_file(settings.videos_path / "video_job_live.mp4", 3600)

        sweeper.run_once()

        assert clip.exists()
        assert output.exists()

    def test_live_session_and_link_files_protected(self, sweeper, stores, settings, aged_file):
        """Files owned by a live session or a live link are skipped."""
        sessions, links, _ = stores
        upload = aged_file(settings.uploads_path / "owned.jpg", 3600)
        sessions.add_files("s1", [str(upload)])
        copy = aged_file(settings.temp_artifacts_path / "temp-2.mp4", 600)
        links.mint("/videos/v.mp4", str(copy), "v.mp4")

        sweeper.run_once()

        assert upload.exists()
        assert copy.exists()

    def test_empty_job_dirs_pruned(self, sweeper, settings, aged_file):
        """Emptied per-job directories are removed, the root is kept."""
        aged_file(settings.temp_clips_path / "job_old" / "clip_000.mp4", 400)

        sweeper.run_once()

        assert not (settings.temp_clips_path / "job_old").exists()
        assert settings.temp_clips_path.exists()


class TestFailuresAndHousekeeping:
    """Deletion failures and store pruning."""

    def test_failure_logged_and_sweep_continues(self, sweeper, stores, settings, make_file, clock, caplog):
        """One undeletable file does not stop the others."""
        sessions, _, _ = stores
        stuck = make_file(settings.uploads_path / "stuck.jpg")
        other = make_file(settings.uploads_path / "other.jpg")
        sessions.add_files("s1", [str(stuck), str(other)])
        clock.advance(301)
        real_remove = os.remove

        def remove(path):
            if path == str(stuck):
                raise PermissionError("read-only")
            real_remove(path)

        with patch("reelgen.services.resource_sweeper.os.remove", side_effect=remove):
            report = sweeper.run_once()

        assert report.failures == [str(stuck)]
        assert not other.exists()
        assert "Failed to delete" in caplog.text

    def test_prunes_jobs_and_counters(self, sweeper, stores, local_counters, clock):
        """Finished jobs and expired counters are pruned."""
        _, _, jobs = stores
        jobs.create("done")
        jobs.complete("done", {})
        local_counters.increment("ip", "1.1.1.1")
        clock.advance(8 * 24 * 3600)

        report = sweeper.run_once()

        assert report.jobs_pruned == 1
        assert report.counters_pruned == 3

    def test_delete_files_deduplicates(self, tmp_path, make_file):
        """Duplicates in the queue are deleted once."""
        path = str(make_file(tmp_path / "a.txt"))

        result = delete_files([path, path, path])

        assert result.deleted == [path]
        assert result.missing == []

    def test_prune_empty_dirs_keeps_non_empty(self, tmp_path, make_file):
        """Only empty subdirectories are removed."""
        (tmp_path / "empty" / "nested").mkdir(parents=True)
        make_file(tmp_path / "full" / "x.txt")

        assert prune_empty_dirs(tmp_path) == 2
        assert (tmp_path / "full").exists()


class TestPeriodicLoop:
    """Background scheduling."""

    @pytest.mark.asyncio
    async def test_runs_on_interval_until_stopped(self, settings, stores):
        """The loop sweeps repeatedly and stops cleanly."""
        sessions, links, jobs = stores
        fast = settings.model_copy(update={"sweep_interval_s": 0.01})
        sweeper = ResourceSweeper(fast, sessions, links, jobs)
        sweeper.run_once = MagicMock()

        sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert sweeper.run_once.call_count >= 2

    @pytest.mark.asyncio
    async def test_cycle_errors_do_not_kill_loop(self, settings, stores, caplog):
        """A failing cycle is logged and the next one still runs."""
        sessions, links, jobs = stores
        fast = settings.model_copy(update={"sweep_interval_s": 0.01})
        sweeper = ResourceSweeper(fast, sessions, links, jobs)
        calls = []

        def cycle():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("disk full")

        sweeper.run_once = cycle

        sweeper.start()
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert len(calls) >= 2
        assert "Cycle failed" in caplog.text
