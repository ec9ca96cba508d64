"""
Background planning jobs.

A job wraps one PlanningService run in an asyncio task so clients can poll
progress instead of holding a request open. Cancellation and timeouts end
the job as failed; no partial layout is kept. Finished jobs are forgotten
after a TTL or, oldest first, once too many have accumulated.
"""
import asyncio
import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from polyplan.services.configuration import PlannerConfiguration
from polyplan.services.exceptions import PlanningError
from polyplan.services.planning_service import PlanningInputs, PlanningService

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Status of a planning job."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PlanningJob:
    """State of one background run."""
    id: str
    status: JobStatus = JobStatus.PROCESSING
    progress_pct: int = 0
    result_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    finished_at: Optional[float] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status != JobStatus.PROCESSING

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "progress_pct": self.progress_pct,
            "result_id": self.result_id,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }


class PlanningJobManager:
    """
    Tracks background planning jobs for one process.

    ``submit`` must be called from a running event loop. Running jobs are
    never evicted.

    Args:
        service: Planning service the jobs run through
        ttl_seconds: How long a finished job stays pollable
        max_finished: Finished jobs kept before the oldest is dropped
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        service: PlanningService,
        ttl_seconds: float = 3600,
        max_finished: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service = service
        self.ttl_seconds = ttl_seconds
        self.max_finished = max_finished
        self._clock = clock
        self._jobs: OrderedDict[str, PlanningJob] = OrderedDict()

    def __len__(self) -> int:
        self._evict()
        return len(self._jobs)

    def _evict(self) -> None:
        now = self._clock()
        finished = sorted(
            (job for job in self._jobs.values() if job.finished_at is not None),
            key=lambda job: job.finished_at,
        )
        expired = [job for job in finished if job.finished_at + self.ttl_seconds <= now]
        kept = finished[len(expired):]
        overflow = kept[:max(len(kept) - self.max_finished, 0)]
        for job in expired + overflow:
            del self._jobs[job.id]
        if expired or overflow:
            logger.debug(f"Evicted {len(expired) + len(overflow)} finished planning job(s)")

    def submit(
        self,
        inputs: PlanningInputs,
        configuration: PlannerConfiguration,
        warnings: Sequence[str] = (),
    ) -> PlanningJob:
        self._evict()
        job = PlanningJob(id=str(uuid.uuid4()))
        self._jobs[job.id] = job
        job.task = asyncio.create_task(self._run(job, inputs, configuration, warnings))
        logger.info(f"Submitted planning job {job.id}")
        return job

    async def _run(
        self,
        job: PlanningJob,
        inputs: PlanningInputs,
        configuration: PlannerConfiguration,
        warnings: Sequence[str],
    ) -> None:
        def report(pct: int) -> None:
            job.progress_pct = pct

        try:
            plan = await self.service.run(
                inputs,
                configuration,
                warnings,
                cancel_event=job.cancel_event,
                progress=report,
            )
        except PlanningError as e:
            job.status = JobStatus.FAILED
            job.error_message = str(e)
            logger.warning(f"Planning job {job.id} failed: {e}")
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error_message = f"Planning failed: {e}"
            logger.exception(f"Planning job {job.id} raised an unexpected error")
        else:
            job.result_id = plan.result_id
            job.progress_pct = 100
            job.status = JobStatus.COMPLETED
            logger.info(f"Planning job {job.id} completed as {plan.result_id[:12]}")
        finally:
            job.finished_at = self._clock()

    def get(self, job_id: str) -> Optional[PlanningJob]:
        self._evict()
        return self._jobs.get(job_id)

    def cancel(self, job_id: str) -> bool:
        """
        Request cancellation of a running job.

        Returns:
            False when the job is unknown or already finished
        """
        job = self._jobs.get(job_id)
        if job is None or job.done:
            return False
        job.cancel_event.set()
        logger.info(f"Cancellation requested for planning job {job_id}")
        return True

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for their workers to stop."""
        pending = [job for job in self._jobs.values() if not job.done and job.task is not None]
        for job in pending:
            job.cancel_event.set()
        if pending:
            await asyncio.gather(*(job.task for job in pending), return_exceptions=True)
