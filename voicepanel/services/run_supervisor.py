# voicepanel/services/run_supervisor.py
import asyncio
import uuid
import traceback
from typing import Dict, Any, Optional, Callable, Awaitable, List
from datetime import datetime, timedelta, timezone
from enum import Enum
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunJob:
    job_id: str
    run_id: str
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    message: str = ""
    error: Optional[str] = None
    result: Any = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class RunSupervisor:
    """
    Owns the asyncio tasks that execute test runs.

    Tasks are kept referenced until they finish, and any exception escaping a
    run is recorded on its job and logged with a traceback instead of being
    lost with a fire-and-forget task.
    """

    def __init__(self, retention: timedelta = timedelta(hours=24)):
        self.jobs: Dict[str, RunJob] = {}
        self.running_tasks: Dict[str, asyncio.Task] = {}
        self.retention = retention

    def submit(self, run_id: Any, work: Callable[[], Awaitable[Any]]) -> RunJob:
        """Schedule `work` on the running event loop and return its job record"""
        self.cleanup_finished()

        job = RunJob(
            job_id=str(uuid.uuid4()),
            run_id=str(run_id),
            status=JobStatus.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        self.jobs[job.job_id] = job

        task = asyncio.create_task(self._process_job(job, work))
        self.running_tasks[job.job_id] = task
        logger.info(f"Scheduled job {job.job_id} for test {run_id}")
        return job

    async def _process_job(self, job: RunJob, work: Callable[[], Awaitable[Any]]):
        try:
            job.status = JobStatus.PROCESSING
            job.started_at = datetime.now(timezone.utc)
            job.message = "Collecting responses..."

            job.result = await work()

            job.status = JobStatus.COMPLETED
            job.completed_at = datetime.now(timezone.utc)
            job.message = "Run finished"
            logger.info(f"Job {job.job_id} for test {job.run_id} finished")
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.completed_at = datetime.now(timezone.utc)
            job.error = "cancelled"
            job.message = "Run task was cancelled"
            logger.warning(f"Job {job.job_id} for test {job.run_id} was cancelled")
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.completed_at = datetime.now(timezone.utc)
            job.error = str(e)
            job.message = f"Run failed: {str(e)}"
            logger.error(f"Job {job.job_id} for test {job.run_id} failed: {e}")
            logger.error(f"Job {job.job_id} traceback: {traceback.format_exc()}")
        finally:
            self.running_tasks.pop(job.job_id, None)

    def cleanup_finished(self) -> int:
        """Drop finished jobs older than the retention window"""
        cutoff = datetime.now(timezone.utc) - self.retention
        stale = [
            job_id for job_id, job in self.jobs.items()
            if job.is_finished and job.created_at < cutoff
        ]
        for job_id in stale:
            del self.jobs[job_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} old jobs")
        return len(stale)

    def get_job(self, job_id: str) -> Optional[RunJob]:
        return self.jobs.get(job_id)

    def jobs_for_run(self, run_id: Any) -> List[RunJob]:
        return [job for job in self.jobs.values() if job.run_id == str(run_id)]

    def is_running(self, run_id: Any) -> bool:
        return any(not job.is_finished for job in self.jobs_for_run(run_id))

    async def wait_all(self) -> None:
        """Wait for every in-flight job, e.g. before the event loop shuts down"""
        tasks = list(self.running_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self.running_tasks.values()):
            task.cancel()
        await self.wait_all()
