"""
Transcode orchestration and job lifecycle management.

Runs each encode as an asyncio task that owns one encoder process,
deduplicates concurrent requests for the same (asset, profile) pair and
keeps finished jobs around for status queries.

Job retention: live jobs are always kept; finished jobs are kept in LRU
order up to MAX_RETAINED_JOBS and the least recently used are evicted.
"""

import os
import uuid
import asyncio
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from starlette.concurrency import run_in_threadpool

from .catalog import AssetCatalog
from .config import ServerConfig
from .errors import InternalError, NotFound, TranscodeFailure
from .logging_setup import log_exception
from .models import DEFAULT_PROFILE, JobState, TranscodeJob, TranscodeProfile, TranscodeStatus
from .pipeline.transcode import FFmpegRunner
from .pipeline.util import ensure_dir, remove_file, tail_text

logger = logging.getLogger("video_server")


class TranscodeOrchestrator:
    """Manages transcode jobs and their encoder processes"""

    def __init__(self, config: ServerConfig, catalog: AssetCatalog, runner: Optional[FFmpegRunner] = None):
        self.config = config
        self.catalog = catalog
        self.runner = runner or FFmpegRunner(config.FFMPEG_PATH, config.FFPROBE_PATH)
        self._lock = threading.Lock()
        self._jobs: "OrderedDict[str, TranscodeJob]" = OrderedDict()
        self._active: Dict[Tuple[str, TranscodeProfile], str] = {}
        self._slots = asyncio.Semaphore(config.MAX_CONCURRENT_TRANSCODES)
        self._closed = False
        self.stats = {
            'jobs_started': 0,
            'jobs_succeeded': 0,
            'jobs_failed': 0,
            'total_processing_time': 0.0,
            'start_time': datetime.now()
        }

    async def request_transcode(self, asset_id: str, profile: TranscodeProfile = DEFAULT_PROFILE) -> TranscodeJob:
        """
        Return the live job for (asset, profile), starting one if none exists.

        Args:
            asset_id: Catalog id of the source video
            profile: Encoder profile

        Returns:
            The existing queued/running job, or a newly created one

        Raises:
            NotFound: if the asset is not in the catalog
        """
        asset = await run_in_threadpool(self.catalog.get_asset, asset_id)
        key = (asset.id, profile)

        with self._lock:
            if self._closed:
                raise InternalError("Transcoder is shutting down")

            job_id = self._active.get(key)
            if job_id is not None:
                job = self._jobs[job_id]
                logger.info(f"Joining transcode job {job.id} for {asset.id}")
                return job

            job_id = uuid.uuid4().hex
            output_path = self.catalog.transcoded_path_for(asset.id, profile.container)
            stem, ext = os.path.splitext(output_path)
            job = TranscodeJob(
                id=job_id,
                source_asset_id=asset.id,
                profile=profile,
                output_path=output_path,
                partial_path=f"{stem}.{job_id}.part{ext}",
            )
            self._jobs[job.id] = job
            self._active[key] = job.id
            self.catalog.set_transcode_status(asset.id, TranscodeStatus.PENDING)
            job.task = asyncio.create_task(self._run_job(job, asset.path), name=f"transcode-{job.id}")
            job.task.add_done_callback(lambda _task, job=job: self._on_task_done(job))
            self.stats['jobs_started'] += 1
            self._evict_finished()

        logger.info(f"Queued transcode job {job.id} for {asset.id} ({profile.name})")
        return job

    def get_job(self, job_id: str) -> TranscodeJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFound("Transcode job not found")
            self._jobs.move_to_end(job_id)
            return job

    def get_status(self, job_id: str) -> Dict[str, Any]:
        """Snapshot of a job's current state"""
        return self.get_job(job_id).to_dict()

    def list_jobs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [job.to_dict() for job in self._jobs.values()]

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> TranscodeJob:
        """
        Wait for a job to reach a terminal state.

        Raises:
            NotFound: if the job is unknown
            asyncio.TimeoutError: if timeout elapses first
        """
        job = self.get_job(job_id)
        await asyncio.wait_for(job.finished.wait(), timeout=timeout)
        return job

    async def cancel(self, job_id: str, reason: str = "Transcode cancelled") -> bool:
        """
        Terminate a queued or running job and wait until it is reconciled.

        Returns:
            True if the job was live and has been cancelled, False if it had already finished
        """
        job = self.get_job(job_id)
        if job.state.is_terminal or job.task is None:
            return False

        job.cancel_reason = reason
        job.task.cancel()
        await job.finished.wait()
        return True

    async def shutdown(self) -> None:
        """Terminate every live job, delete partial output and forget all jobs"""
        with self._lock:
            self._closed = True
            live = [job for job in self._jobs.values() if not job.state.is_terminal and job.task]

        if live:
            logger.info(f"Stopping {len(live)} transcode job(s)")
        for job in live:
            job.cancel_reason = "Server shutting down"
            job.task.cancel()
        await asyncio.gather(*(job.task for job in live), return_exceptions=True)

        with self._lock:
            self._jobs.clear()
            self._active.clear()
        logger.info("Transcode orchestrator stopped")

    async def _run_job(self, job: TranscodeJob, source_path: str) -> None:
        try:
            async with self._slots:
                job.mark_running()
                logger.info(f"Transcoding {job.source_asset_id} (job {job.id})")
                await self._encode(job, source_path)
                await self._promote_output(job)

            self.catalog.set_transcode_status(job.source_asset_id, TranscodeStatus.READY, job.output_path)
            job.mark_succeeded()
            self.stats['jobs_succeeded'] += 1
            logger.info(f"Transcode job {job.id} succeeded in {job.get_elapsed_time():.1f}s -> {job.output_path}")

        except asyncio.CancelledError:
            await self._fail(job, job.cancel_reason or "Transcode cancelled")
            raise
        except TranscodeFailure as e:
            await self._fail(job, e.details or e.message)
        except Exception as e:
            log_exception(logger, f"Unexpected error in transcode job {job.id}")
            await self._fail(job, f"Unexpected error: {e}")
        finally:
            self.stats['total_processing_time'] += job.get_elapsed_time()
            self._release(job)

    def _on_task_done(self, job: TranscodeJob) -> None:
        # A task cancelled before its first step never runs _run_job
        if not job.finished.is_set():
            self._mark_failed(job, job.cancel_reason or "Transcode cancelled")
            self._release(job)

    def _release(self, job: TranscodeJob) -> None:
        with self._lock:
            if self._active.get(job.key) == job.id:
                del self._active[job.key]
            self._evict_finished()
        job.finished.set()

    async def _encode(self, job: TranscodeJob, source_path: str) -> None:
        await run_in_threadpool(ensure_dir, os.path.dirname(job.partial_path))
        command = self.runner.build_command(source_path, job.partial_path, job.profile)
        logger.debug(f"Encoder command for job {job.id}: {' '.join(command)}")

        try:
            process = await self.runner.start(command)
        except OSError as e:
            raise TranscodeFailure("Failed to transcode video", f"Could not start encoder: {e}") from e

        job.process = process
        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.config.TRANSCODE_TIMEOUT_SEC
            )
        except asyncio.TimeoutError:
            await self.runner.terminate(process)
            raise TranscodeFailure(
                "Failed to transcode video",
                f"Encoder timed out after {self.config.TRANSCODE_TIMEOUT_SEC}s",
            )
        except asyncio.CancelledError:
            await self.runner.terminate(process)
            raise
        finally:
            job.process = None

        if process.returncode != 0:
            raise TranscodeFailure(
                "Failed to transcode video",
                f"Encoder exited with code {process.returncode}: {tail_text(stderr)}",
            )

    async def _promote_output(self, job: TranscodeJob) -> None:
        """Move a verified partial output to its final name"""
        if not await self.runner.validate_output(job.partial_path):
            raise TranscodeFailure("Failed to transcode video", "Encoder produced no usable output")
        try:
            await run_in_threadpool(os.replace, job.partial_path, job.output_path)
        except OSError as e:
            raise TranscodeFailure("Failed to transcode video", f"Could not store output: {e}") from e

    async def _fail(self, job: TranscodeJob, error: str) -> None:
        self._mark_failed(job, error)
        if await run_in_threadpool(remove_file, job.partial_path):
            logger.info(f"Removed partial output {job.partial_path}")

    def _mark_failed(self, job: TranscodeJob, error: str) -> None:
        job.mark_failed(error)
        self.catalog.set_transcode_status(job.source_asset_id, TranscodeStatus.FAILED)
        self.stats['jobs_failed'] += 1
        logger.error(f"Transcode job {job.id} failed: {error}")

    def _evict_finished(self) -> None:
        """Drop least recently used finished jobs beyond the retention bound. Caller holds the lock."""
        excess = len(self._jobs) - self.config.MAX_RETAINED_JOBS
        if excess <= 0:
            return
        for job_id in [jid for jid, job in self._jobs.items() if job.state.is_terminal][:excess]:
            del self._jobs[job_id]

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics"""
        uptime = (datetime.now() - self.stats['start_time']).total_seconds()
        finished = self.stats['jobs_succeeded'] + self.stats['jobs_failed']
        with self._lock:
            active = len(self._active)
            retained = len(self._jobs)

        return {
            'jobs_started': self.stats['jobs_started'],
            'jobs_succeeded': self.stats['jobs_succeeded'],
            'jobs_failed': self.stats['jobs_failed'],
            'active_jobs': active,
            'retained_jobs': retained,
            'total_processing_time': self.stats['total_processing_time'],
            'average_processing_time': (
                self.stats['total_processing_time'] / finished if finished > 0 else 0
            ),
            'uptime_seconds': uptime,
        }
