"""
Tests for scriptreel.pipeline.poller
"""

import asyncio

import httpx
import pytest

from scriptreel import metrics
from scriptreel.pipeline.errors import EndpointUnresolved, RemoteRejected
from scriptreel.pipeline.models import StatusReport, VideoJob, VideoStatus
from scriptreel.pipeline.poller import StatusPoller
from scriptreel.pipeline.prober import ProbeAttempt


def _job(**overrides):
    fields = {"sanitized_text": "Hi", "avatar_id": "a", "voice_id": "v", "external_video_id": "vid-1"}
    fields.update(overrides)
    return VideoJob(**fields)


def _report(status, **kwargs):
    return StatusReport(video_id="vid-1", status=status, **kwargs)


def _unresolved():
    return EndpointUnresolved("video_status", [ProbeAttempt(tag="v2_video", url="u", method="GET", status_code=404)])


def _scripted_fetch(outcomes):
    """Fetcher returning (or raising) the scripted outcomes in order."""
    queue = list(outcomes)
    calls = []

    async def fetch(video_id):
        calls.append(video_id)
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    fetch.calls = calls
    return fetch


class TestRun:
    def test_completes_within_three_ticks(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([
            _report(VideoStatus.PROCESSING),
            _report(VideoStatus.PROCESSING),
            _report(VideoStatus.COMPLETED, video_url="https://cdn/x.mp4", thumbnail_url="https://cdn/x.jpg"),
        ])

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.COMPLETED
        assert job.asset_url == "https://cdn/x.mp4"
        assert job.thumbnail_url == "https://cdn/x.jpg"
        assert job.ticks == 3
        assert sleeps.calls == [3, 5, 5]

    def test_failed_report_is_terminal(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([_report(VideoStatus.FAILED, error="voice unavailable")])

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.FAILED
        assert job.error_reason == "voice unavailable"

    def test_tick_budget_ends_undetermined_not_failed(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([_report(VideoStatus.PROCESSING)] * 12)

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.UNDETERMINED
        assert job.ticks == 12
        assert len(fetch.calls) == 12
        assert sleeps.calls == [3] + [5] * 11
        assert metrics.get_counter("poll.undetermined") == 1

    def test_ambiguous_streak_ends_undetermined(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([_unresolved(), _unresolved(), _unresolved()])

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.UNDETERMINED
        assert job.ticks == 3
        assert job.ambiguous_streak == 3

    def test_definitive_answer_resets_streak(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([
            _unresolved(),
            _unresolved(),
            _report(VideoStatus.PENDING),
            _unresolved(),
            httpx.ConnectError("reset"),
            _report(VideoStatus.COMPLETED, video_url="https://cdn/y.mp4"),
        ])

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.COMPLETED
        assert job.ticks == 6
        assert job.ambiguous_streak == 0

    def test_completed_without_url_is_ambiguous(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([
            _report(VideoStatus.COMPLETED),
            _report(VideoStatus.COMPLETED, video_url="https://cdn/x.mp4"),
        ])

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.COMPLETED
        assert job.asset_url == "https://cdn/x.mp4"
        assert job.ticks == 2

    def test_repeated_completed_without_url_ends_undetermined(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([_report(VideoStatus.COMPLETED)] * 3)

        status = asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())

        assert status == VideoStatus.UNDETERMINED
        assert job.asset_url is None
        assert job.ambiguous_streak == 3

    def test_created_job_moves_to_pending_before_first_tick(self, sleeps):
        job = _job()
        seen = []

        async def fetch(video_id):
            seen.append(job.status)
            return _report(VideoStatus.COMPLETED, video_url="u")

        asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())
        assert seen == [VideoStatus.PENDING]

    def test_abandon_stops_further_ticks(self, sleeps):
        job = _job()
        calls = []

        async def fetch(video_id):
            calls.append(video_id)
            poller.abandon()
            return _report(VideoStatus.PROCESSING)

        poller = StatusPoller(job, fetch, sleep=sleeps)
        status = asyncio.run(poller.run())

        assert len(calls) == 1
        assert poller.abandoned
        assert status == VideoStatus.PROCESSING

    def test_remote_rejection_propagates(self, sleeps):
        job = _job()
        fetch = _scripted_fetch([RemoteRejected("Unauthorized", status_code=401)])

        with pytest.raises(RemoteRejected):
            asyncio.run(StatusPoller(job, fetch, sleep=sleeps).run())


class TestTick:
    def test_terminal_job_is_not_rechecked(self):
        job = _job(status=VideoStatus.COMPLETED, asset_url="u")
        fetch = _scripted_fetch([])

        status = asyncio.run(StatusPoller(job, fetch).tick())

        assert status == VideoStatus.COMPLETED
        assert fetch.calls == []
        assert job.ticks == 0

    def test_undetermined_job_can_be_ticked_again(self):
        job = _job(status=VideoStatus.UNDETERMINED, ticks=12)
        fetch = _scripted_fetch([_report(VideoStatus.COMPLETED, video_url="https://cdn/z.mp4")])

        status = asyncio.run(StatusPoller(job, fetch).tick())

        assert status == VideoStatus.COMPLETED
        assert job.ticks == 13

    def test_job_without_external_id_rejected(self):
        with pytest.raises(ValueError):
            StatusPoller(_job(external_video_id=None), _scripted_fetch([]))
