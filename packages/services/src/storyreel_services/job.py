"""Job management service for background generation runs."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Coroutine, Optional

from .exceptions import RunInProgressError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Job status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


@dataclass
class Job:
    """Represents an async job."""

    id: str
    type: str
    project_id: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    total: int = 0
    percent: int = 0
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "project_id": self.project_id,
            "status": self.status.value,
            "progress": self.progress,
            "total": self.total,
            "percent": self.percent,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.metadata,
        }


class JobService:
    """Service for managing async jobs.

    At most one active job is allowed per project, since a project's asset
    tree has a single writer.
    """

    def __init__(self):
        """Initialize the job service."""
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def active_job(self, project_id: str) -> Optional[Job]:
        """The pending or running job for a project, if any."""
        for job in self._jobs.values():
            if job.project_id == project_id and job.status.is_active:
                return job
        return None

    def ensure_idle(self, project_id: str) -> None:
        """Raise if the project has a pending or running job.

        Raises:
            RunInProgressError: If the project already has an active job
        """
        active = self.active_job(project_id)
        if active is not None:
            raise RunInProgressError(
                f"Project '{project_id}' already has an active job ({active.id})"
            )

    def create_job(
        self,
        job_type: str,
        project_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Job:
        """Create a new job.

        Args:
            job_type: Type of job (e.g., "generate", "regenerate")
            project_id: Project the job works on
            metadata: Additional metadata

        Returns:
            Created job

        Raises:
            RunInProgressError: If the project already has an active job
        """
        if project_id is not None:
            self.ensure_idle(project_id)

        job = Job(
            id=str(uuid.uuid4()),
            type=job_type,
            project_id=project_id,
            metadata=metadata or {},
        )
        self._jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get job by ID.

        Returns:
            Job or None if not found
        """
        return self._jobs.get(job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        job_type: Optional[str] = None,
        project_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs with optional filtering.

        Returns:
            Tuple of (jobs, total_count)
        """
        jobs = list(self._jobs.values())

        if status:
            jobs = [j for j in jobs if j.status == status]
        if job_type:
            jobs = [j for j in jobs if j.type == job_type]
        if project_id:
            jobs = [j for j in jobs if j.project_id == project_id]

        # Newest first
        jobs.sort(key=lambda j: j.created_at, reverse=True)

        total = len(jobs)
        return jobs[offset:offset + limit], total

    async def run_job(self, job: Job, coro: Coroutine) -> Job:
        """Run a job's coroutine and track its status.

        The coroutine's return value is stored on the job, converted with
        ``to_dict()`` when it has one.

        Returns:
            Updated job
        """
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()

        try:
            result = await coro
            job.status = JobStatus.COMPLETED
            job.result = result.to_dict() if hasattr(result, "to_dict") else result
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            job.error = "Job was cancelled"
        except Exception as e:
            logger.exception("Job %s failed", job.id)
            job.status = JobStatus.FAILED
            job.error = str(e)
        finally:
            job.completed_at = datetime.now()

        return job

    def start_job(self, job: Job, coro: Coroutine) -> asyncio.Task:
        """Start a job in the background.

        Returns:
            The asyncio Task
        """
        async def wrapped():
            return await self.run_job(job, coro)

        task = asyncio.create_task(wrapped())
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        return task

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a running job.

        Returns:
            True if cancelled, False if not found or not cancellable
        """
        job = self._jobs.get(job_id)
        if not job or not job.status.is_active:
            return False

        task = self._tasks.get(job_id)
        if task and not task.done():
            task.cancel()

        job.status = JobStatus.CANCELLED
        job.completed_at = datetime.now()
        return True

    def update_progress(self, job_id: str, progress: int, total: int, percent: Optional[int] = None) -> None:
        """Update job progress."""
        job = self._jobs.get(job_id)
        if job:
            job.progress = progress
            job.total = total
            if percent is not None:
                job.percent = percent


# Global job service instance
_job_service: Optional[JobService] = None


def get_job_service() -> JobService:
    """Get the global job service instance."""
    global _job_service
    if _job_service is None:
        _job_service = JobService()
    return _job_service
