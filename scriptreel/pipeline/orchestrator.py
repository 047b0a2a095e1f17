"""
VideoGenerationService — script → HeyGen video orchestrator.

  Step 1: Sanitize the script (strip [HOOK], **BODY:**, emphasis)
  Step 2: Build the render request (avatar, voice, dimensions)
  Step 3: Create the video (endpoint probing)
  Step 4: Poll status (bounded; may end UNDETERMINED)
  Step 5: Store the finished video (best-effort)
"""

import asyncio
import logging
from typing import Optional, Union

from .. import metrics
from .errors import EndpointUnresolved, RemoteRejected, Undetermined, ValidationError
from .models import AspectRatio, VideoJob, VideoStatus
from .poller import StatusPoller
from .request_builder import build_video_request
from .sanitize import sanitize_script
from .storage import ScriptStore
from .heygen import HeyGenClient

logger = logging.getLogger(__name__)

MAX_TRACKED_JOBS = 500  # finished jobs beyond this are forgotten, oldest first


class VideoGenerationService:
    """
    Owns every VideoJob it creates; nothing else mutates them.

    Usage:
        service = VideoGenerationService()

        job = await service.generate_video(1, script_text, avatar_id=..., user_id=...)
        if job.status == VideoStatus.UNDETERMINED:
            job = await service.check_again(job.job_id)
    """

    def __init__(
        self,
        heygen: Optional[HeyGenClient] = None,
        store: Optional[ScriptStore] = None,
        sleep=asyncio.sleep,
        max_jobs: int = MAX_TRACKED_JOBS,
        **poller_options,
    ):
        self.heygen = heygen or HeyGenClient()
        self.store = store or ScriptStore()
        self._sleep = sleep
        self._poller_options = poller_options
        self.max_jobs = max_jobs
        self._jobs: dict[str, VideoJob] = {}
        self._pollers: dict[str, StatusPoller] = {}
        self._polling: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    def get_job(self, job_id: str) -> VideoJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise LookupError(f"Video job {job_id} not found")
        return job

    def _poller_for(self, job: VideoJob) -> StatusPoller:
        poller = self._pollers.get(job.job_id)
        if poller is None:
            poller = StatusPoller(
                job, self.heygen.get_video_status, sleep=self._sleep, **self._poller_options
            )
            self._pollers[job.job_id] = poller
        return poller

    def _fail(self, job: VideoJob, error: Exception, operation: str = "create_video"):
        job.status = VideoStatus.FAILED
        job.error_reason = str(error)
        if isinstance(error, RemoteRejected):
            job.error_hint = error.hint
        logger.error(f"[{job.job_id}] {operation} failed: {error}")
        metrics.inc_counter("videos.failed")
        metrics.record_error(operation, type(error).__name__, str(error), job_id=job.job_id)

    def _unresolved(self, job: VideoJob, error: EndpointUnresolved):
        """No create endpoint answered. Retryable, so the job is not failed."""
        job.status = VideoStatus.UNDETERMINED
        job.error_reason = str(error)
        logger.warning(f"[{job.job_id}] {error}; job left undetermined")
        metrics.inc_counter("videos.unresolved")
        metrics.record_error("create_video", type(error).__name__, str(error), job_id=job.job_id)

    def _persist(self, job: VideoJob):
        """Bookkeeping only; a storage failure never downgrades COMPLETED."""
        if not job.user_id:
            return
        try:
            self.store.save_video(job.user_id, job)
        except Exception as e:
            logger.warning(f"[{job.job_id}] video completed but could not be stored: {e}")

    def _finish(self, job: VideoJob):
        """Runs once per terminal job: count, store, and release its poller."""
        if job.status not in (VideoStatus.COMPLETED, VideoStatus.FAILED):
            return
        if self._pollers.pop(job.job_id, None) is None:
            return
        if job.status == VideoStatus.COMPLETED:
            metrics.inc_counter("videos.completed")
            self._persist(job)

    def _forget_finished(self):
        """Drop the oldest completed/failed jobs once more than max_jobs are tracked."""
        excess = len(self._jobs) - self.max_jobs
        if excess <= 0:
            return
        finished = [
            job_id for job_id, job in self._jobs.items()
            if job.status in (VideoStatus.COMPLETED, VideoStatus.FAILED)
        ]
        for job_id in finished[:excess]:
            del self._jobs[job_id]
            self._pollers.pop(job_id, None)

    # ── Video creation ───────────────────────────────────────────────────

    def prepare_job(
        self,
        script_id: int,
        script_text: str,
        avatar_id: Optional[str] = None,
        voice_id: Optional[str] = None,
        aspect_ratio: Union[AspectRatio, str, None] = None,
        user_id: Optional[str] = None,
    ) -> VideoJob:
        """
        Steps 1–2 without any I/O. The job is registered in CREATED state.

        Raises:
            ValidationError: nothing speakable left after sanitizing.
        """
        request = build_video_request(
            sanitize_script(script_text), avatar_id, voice_id, aspect_ratio
        )
        job = VideoJob(
            source_script_id=script_id,
            sanitized_text=request.text,
            avatar_id=request.avatar_id,
            voice_id=request.voice_id,
            aspect_ratio=request.aspect_ratio,
            user_id=user_id,
        )
        self._jobs[job.job_id] = job
        self._forget_finished()
        logger.info(
            f"[{job.job_id}] prepared script {script_id}: avatar={job.avatar_id} "
            f"voice={job.voice_id} {job.aspect_ratio.value} ({len(job.sanitized_text)} chars)"
        )
        return job

    async def _create(self, job: VideoJob, title: Optional[str] = None):
        request = build_video_request(
            job.sanitized_text, job.avatar_id, job.voice_id, job.aspect_ratio, title=title
        )

        try:
            job.external_video_id = await self.heygen.create_video(request)
        except RemoteRejected as e:
            self._fail(job, e)
            raise
        except EndpointUnresolved as e:
            self._unresolved(job, e)
            raise

        job.status = VideoStatus.PENDING
        job.error_reason = None
        logger.info(f"[{job.job_id}] created HeyGen video {job.external_video_id}, polling")

    async def _poll(self, job: VideoJob):
        self._polling.add(job.job_id)
        try:
            await self._poller_for(job).run()
        except RemoteRejected as e:
            self._fail(job, e, operation="video_status")
            self._finish(job)
            raise
        finally:
            self._polling.discard(job.job_id)
        self._finish(job)

    async def run_job(self, job: VideoJob, title: Optional[str] = None) -> VideoJob:
        """
        Steps 3–5 for a prepared job.

        Raises:
            RemoteRejected: creation or a status check was refused (job FAILED).
            EndpointUnresolved: no create endpoint resolved (job UNDETERMINED).
        """
        await self._create(job, title)
        await self._poll(job)
        return job

    async def generate_video(
        self,
        script_id: int,
        script_text: str,
        avatar_id: Optional[str] = None,
        voice_id: Optional[str] = None,
        aspect_ratio: Union[AspectRatio, str, None] = None,
        user_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> VideoJob:
        """
        Full flow. Returns the job in COMPLETED, FAILED or UNDETERMINED
        (or wherever it stopped if abandoned).

        Raises:
            ValidationError, RemoteRejected, EndpointUnresolved
        """
        job = self.prepare_job(script_id, script_text, avatar_id, voice_id, aspect_ratio, user_id)
        return await self.run_job(job, title=title)

    async def start_video(self, *args, **kwargs) -> VideoJob:
        """
        Validate synchronously, then run creation + polling in the background.
        Validation errors surface to the caller immediately.
        """
        title = kwargs.pop("title", None)
        job = self.prepare_job(*args, **kwargs)
        self._spawn(job, self.run_job(job, title=title))
        return job

    def _spawn(self, job: VideoJob, work):
        task = asyncio.create_task(self._run_background(job, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_background(self, job: VideoJob, work):
        try:
            await work
        except (RemoteRejected, EndpointUnresolved):
            pass  # recorded on the job by _create / _poll
        except Exception as e:
            logger.error(f"[{job.job_id}] background video job crashed: {e}", exc_info=True)
            self._fail(job, e, operation="background")

    # ── Manual re-check / abandon ────────────────────────────────────────

    async def check_again(self, job_id: str) -> VideoJob:
        """
        One status tick, typically after UNDETERMINED. A non-terminal answer
        leaves the job UNDETERMINED again unless a poll loop is still running.

        A job whose creation never resolved an endpoint retries creation
        instead and, once created, is polled in the background again.

        Raises:
            RemoteRejected: the status or create call was refused (job FAILED).
            EndpointUnresolved: creation still has no endpoint.
        """
        job = self.get_job(job_id)
        if job.status in (VideoStatus.COMPLETED, VideoStatus.FAILED):
            return job

        if not job.external_video_id:
            if job.status != VideoStatus.UNDETERMINED:
                raise ValidationError(f"Video job {job_id} is still being created")
            await self._create(job)
            self._spawn(job, self._poll(job))
            return job

        poller = self._poller_for(job)
        try:
            status = await poller.tick()
        except RemoteRejected as e:
            self._fail(job, e, operation="video_status")
            self._finish(job)
            raise

        if status == VideoStatus.PROCESSING and job_id not in self._polling:
            job.status = VideoStatus.UNDETERMINED
        self._finish(job)
        return job

    def abandon(self, job_id: str) -> VideoJob:
        job = self.get_job(job_id)
        poller = self._pollers.get(job_id)
        if poller is not None:
            poller.abandon()
        logger.info(f"[{job_id}] abandoned at status {job.status.value}")
        return job


def ensure_complete(job: VideoJob) -> str:
    """
    Asset URL of a finished job.

    Raises:
        RemoteRejected: HeyGen refused or failed the render.
        EndpointUnresolved: no create endpoint resolved yet; retryable.
        Undetermined: no definitive answer yet — offer "check again".
    """
    if job.status == VideoStatus.COMPLETED and job.asset_url:
        return job.asset_url
    if job.status == VideoStatus.FAILED:
        raise RemoteRejected(job.error_reason or "Video generation failed", hint=job.error_hint)
    if job.status == VideoStatus.UNDETERMINED and not job.external_video_id:
        raise EndpointUnresolved("create_video", [])
    raise Undetermined(job.job_id, job.ticks)
