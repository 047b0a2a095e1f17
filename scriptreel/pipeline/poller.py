"""
Video status poller — bounded state machine over HeyGen status checks.

HeyGen has no push notification, and the status endpoint is often not
queryable for a while after creation. The poller therefore keeps two
budgets and gives up with UNDETERMINED (not FAILED) when either runs out:

  - total ticks                     (MAX_TICKS)
  - consecutive ambiguous signals   (MAX_AMBIGUOUS_STREAK)

Ambiguous = no status endpoint resolved, a transport failure, or a
"completed" answer that carries no video URL. Any other answer from a
resolved status endpoint counts as definitive and resets the streak,
pending/processing included, not only completed/failed.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from .. import metrics
from .errors import EndpointUnresolved
from .models import StatusReport, VideoJob, VideoStatus

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

INITIAL_DELAY = 3   # seconds before the first tick
POLL_INTERVAL = 5   # seconds between ticks
MAX_TICKS = 12
MAX_AMBIGUOUS_STREAK = 3

StatusFetcher = Callable[[str], Awaitable[StatusReport]]


class StatusPoller:
    """
    One poller per job. Ticks never overlap.

    Usage:
        poller = StatusPoller(job, heygen.get_video_status)
        final = await poller.run()          # full bounded loop
        state = await poller.tick()         # single manual re-check
        poller.abandon()                    # stop scheduling more ticks
    """

    def __init__(
        self,
        job: VideoJob,
        fetch_status: StatusFetcher,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        initial_delay: float = INITIAL_DELAY,
        interval: float = POLL_INTERVAL,
        max_ticks: int = MAX_TICKS,
        max_ambiguous: int = MAX_AMBIGUOUS_STREAK,
    ):
        if not job.external_video_id:
            raise ValueError(f"Job {job.job_id} has no external video id to poll")
        self.job = job
        self._fetch_status = fetch_status
        self._sleep = sleep
        self.initial_delay = initial_delay
        self.interval = interval
        self.max_ticks = max_ticks
        self.max_ambiguous = max_ambiguous
        self._lock = asyncio.Lock()
        self._abandoned = False

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def abandon(self):
        """Stop after the current tick; the job is left as it is."""
        self._abandoned = True

    def _exhausted(self) -> bool:
        return (
            self.job.ticks >= self.max_ticks
            or self.job.ambiguous_streak >= self.max_ambiguous
        )

    def _ambiguous(self, reason: str):
        job = self.job
        job.ambiguous_streak += 1
        job.status = VideoStatus.PROCESSING
        metrics.inc_counter("poll.ambiguous")
        logger.info(
            f"[{job.job_id}] ambiguous status signal ({reason}) — "
            f"streak {job.ambiguous_streak}/{self.max_ambiguous}"
        )

    async def tick(self) -> VideoStatus:
        """
        One status check. Terminal jobs are left untouched.

        Raises:
            RemoteRejected: the status endpoint gave a definitive error.
        """
        async with self._lock:
            job = self.job
            if job.status in (VideoStatus.COMPLETED, VideoStatus.FAILED):
                return job.status

            job.ticks += 1
            metrics.inc_counter("poll.ticks")

            try:
                report = await self._fetch_status(job.external_video_id)
            except EndpointUnresolved:
                self._ambiguous("status endpoint unresolved")
                return job.status
            except httpx.TransportError as e:
                self._ambiguous(f"transport error: {e}")
                return job.status

            if report.status == VideoStatus.COMPLETED and not report.video_url:
                self._ambiguous("completed without a video url")
                return job.status

            job.ambiguous_streak = 0

            if report.status == VideoStatus.COMPLETED:
                job.status = VideoStatus.COMPLETED
                job.asset_url = report.video_url
                job.thumbnail_url = report.thumbnail_url
                metrics.inc_counter("poll.completed")
                logger.info(f"[{job.job_id}] video completed after {job.ticks} tick(s): {job.asset_url}")
            elif report.status == VideoStatus.FAILED:
                job.status = VideoStatus.FAILED
                job.error_reason = report.error or "Video generation failed"
                metrics.inc_counter("poll.failed")
                logger.warning(f"[{job.job_id}] video failed: {job.error_reason}")
            else:
                job.status = VideoStatus.PROCESSING
                logger.info(f"[{job.job_id}] still {report.status.value} (tick {job.ticks}/{self.max_ticks})")

            return job.status

    async def run(self) -> VideoStatus:
        """
        Poll until completed/failed, abandoned, or a budget runs out
        (→ UNDETERMINED). Returns the job's final status.
        """
        job = self.job
        if job.status == VideoStatus.CREATED:
            job.status = VideoStatus.PENDING

        await self._sleep(self.initial_delay)

        while not self._abandoned:
            status = await self.tick()
            if status in (VideoStatus.COMPLETED, VideoStatus.FAILED):
                return status

            if self._exhausted():
                job.status = VideoStatus.UNDETERMINED
                metrics.inc_counter("poll.undetermined")
                logger.warning(
                    f"[{job.job_id}] no definitive status after {job.ticks} tick(s) "
                    f"(ambiguous streak {job.ambiguous_streak}) — marking undetermined"
                )
                return job.status

            await self._sleep(self.interval)

        logger.info(f"[{job.job_id}] polling abandoned at tick {job.ticks}")
        return job.status
