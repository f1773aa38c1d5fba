"""Tests for the generation job tracker."""

import pytest

from reelgen.services.job_tracker import JobStatus, JobTracker


@pytest.fixture
def tracker(clock):
    return JobTracker(grace_period_s=30, clock=clock)


class TestJobLifecycle:
    """initializing -> processing -> completed | error."""

    def test_create_starts_at_zero(self, tracker, clock):
        """New jobs are initializing at 0%."""
        job = tracker.create("job1")

        assert job.status == JobStatus.INITIALIZING
        assert job.progress == 0
        assert job.created_at == clock.now
        assert tracker.get("job1").id == "job1"

    def test_generated_ids_are_unique(self, tracker):
        """Ids are generated when not supplied."""
        assert tracker.create().id != tracker.create().id

    def test_duplicate_id_rejected(self, tracker):
        """The same id cannot be inserted twice."""
        tracker.create("job1")
        with pytest.raises(ValueError):
            tracker.create("job1")

    def test_progress_moves_to_processing(self, tracker):
        """The first progress update switches status to processing."""
        tracker.create("job1")

        assert tracker.update_progress("job1", 25, "Processing video... 25% complete")

        job = tracker.get("job1")
        assert job.status == JobStatus.PROCESSING
        assert job.progress == 25
        assert job.message == "Processing video... 25% complete"

    def test_progress_never_decreases(self, tracker):
        """Out-of-order updates cannot move progress backwards."""
        tracker.create("job1")
        tracker.update_progress("job1", 60, "a")
        tracker.update_progress("job1", 40, "b")

        assert tracker.get("job1").progress == 60

    def test_progress_below_100_until_complete(self, tracker):
        """Only completion reports 100%."""
        tracker.create("job1")
        tracker.update_progress("job1", 100, "almost")

        assert tracker.get("job1").progress == 99

    def test_complete(self, tracker):
        """Completion stores the result descriptor."""
        tracker.create("job1")

        assert tracker.complete("job1", {"url": "/api/artifact/temp-1"})

        job = tracker.get("job1")
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.result == {"url": "/api/artifact/temp-1"}
        assert job.to_dict()["result"]["url"] == "/api/artifact/temp-1"

    def test_fail(self, tracker):
        """Failure stores the error text."""
        tracker.create("job1")

        assert tracker.fail("job1", "FFmpeg failed with exit code 1")

        job = tracker.get("job1")
        assert job.status == JobStatus.ERROR
        assert job.error == "FFmpeg failed with exit code 1"
        assert job.message == "Video processing failed"
        assert "result" not in job.to_dict()

    def test_exactly_one_terminal_state(self, tracker):
        """Once terminal, no further transitions or progress are accepted."""
        tracker.create("job1")
        tracker.fail("job1", "boom")

        assert not tracker.complete("job1", {"url": "x"})
        assert not tracker.fail("job1", "again")
        assert not tracker.update_progress("job1", 50, "late")

        job = tracker.get("job1")
        assert job.status == JobStatus.ERROR
        assert job.error == "boom"

    def test_unknown_job(self, tracker):
        """Unknown ids are not found and cannot be mutated."""
        assert tracker.get("missing") is None
        assert not tracker.update_progress("missing", 10, "x")
        assert not tracker.complete("missing", {})

    def test_snapshots_are_detached(self, tracker):
        """Mutating a returned record does not change the store."""
        tracker.create("job1")
        snapshot = tracker.get("job1")
        snapshot.progress = 90

        assert tracker.get("job1").progress == 0


class TestGracePeriod:
    """Terminal records are reclaimed after the grace period."""

    def test_visible_during_grace(self, tracker, clock):
        """A finished job can still be polled within the grace period."""
        tracker.create("job1")
        tracker.complete("job1", {})
        clock.advance(29)

        assert tracker.get("job1") is not None

    def test_gone_after_grace(self, tracker, clock):
        """After the grace period the job is not found."""
        tracker.create("job1")
        tracker.complete("job1", {})
        clock.advance(30)

        assert tracker.get("job1") is None
        assert len(tracker) == 0

    def test_prune_only_finished(self, tracker, clock):
        """Prune removes expired terminal jobs and keeps running ones."""
        tracker.create("running")
        tracker.create("done")
        tracker.fail("done", "x")
        clock.advance(3600)

        assert tracker.prune() == 1
        assert tracker.get("running") is not None
        assert tracker.active_ids() == ["running"]
