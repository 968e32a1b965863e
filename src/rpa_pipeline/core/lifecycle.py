# ABOUTME: Job lifecycle state machine with validated transitions and the retry cap
# ABOUTME: The only place job status, retry_count and lifecycle timestamps are changed

from rpa_pipeline.config import MAX_RETRY_CEILING
from rpa_pipeline.core.models import JobStatus, utcnow
from rpa_pipeline.persistence.models import Job
from rpa_pipeline.utils.logging import get_logger
from rpa_pipeline.utils.retry import PipelineError

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.RETRYING}
    ),
    JobStatus.RETRYING: frozenset({JobStatus.PROCESSING}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class InvalidTransitionError(PipelineError):
    """Raised when a status change is not an edge of the lifecycle graph."""

    def __init__(self, current: JobStatus, target: JobStatus):
        super().__init__(f"Invalid job transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def is_terminal(status: JobStatus) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def transition(job: Job, target: JobStatus, *, error_message: str | None = None) -> Job:
    """Move a job along one lifecycle edge, stamping started/completed timestamps."""
    current = JobStatus(job.status)
    target = JobStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)

    job.status = target
    if target is JobStatus.PROCESSING:
        job.started_at = utcnow()
        job.error_message = None
    elif target in TERMINAL_STATUSES:
        job.completed_at = utcnow()
    if error_message is not None:
        job.error_message = error_message

    logger.info(
        "Job status changed",
        job_id=str(job.id),
        from_status=current.value,
        to_status=target.value,
        retry_count=job.retry_count,
    )
    return job


def request_retry(job: Job, reason: str, max_retries: int = MAX_RETRY_CEILING) -> JobStatus:
    """Retry a processing job, or fail it once the retry cap is reached.

    The cap never exceeds the retry_count ceiling. At the cap the count is
    left unchanged and the job goes straight to Failed.
    """
    cap = min(max_retries, MAX_RETRY_CEILING)
    if job.retry_count >= cap:
        transition(job, JobStatus.FAILED, error_message=f"Retry limit ({cap}) reached: {reason}")
        return JobStatus.FAILED

    transition(job, JobStatus.RETRYING, error_message=reason)
    job.retry_count += 1
    return JobStatus.RETRYING
