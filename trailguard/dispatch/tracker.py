"""Local tracking of dispatched jobs."""

from collections.abc import Callable
from datetime import datetime, timedelta

from trailguard.audit.models import utc_now
from trailguard.dispatch.models import DispatchJob, JobStatus


class JobTracker:
    """Keeps DispatchJob handles for a limited time.

    Handles are process-local. Entries older than the TTL are dropped by
    cleanup(); unknown ids simply return None.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._jobs: dict[str, DispatchJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def track(self, job: DispatchJob) -> None:
        self._jobs[job.job_id] = job

    def get(self, job_id: str) -> DispatchJob | None:
        return self._jobs.get(job_id)

    def update_status(self, job_id: str, status: JobStatus) -> DispatchJob | None:
        """Move a job to a new status. Returns None for unknown jobs."""
        job = self._jobs.get(job_id)
        if job is None:
            return None
        updated = job.model_copy(update={"status": status, "updated_at": self._clock()})
        self._jobs[job_id] = updated
        return updated

    def cleanup(self) -> int:
        """Drop jobs dispatched longer ago than the TTL.

        Returns:
            Number of jobs removed
        """
        cutoff = self._clock() - self._ttl
        expired = [job_id for job_id, job in self._jobs.items() if job.dispatched_at < cutoff]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)
