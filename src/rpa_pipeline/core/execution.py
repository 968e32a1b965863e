# ABOUTME: Execution stage - runs a job's handler and drives its lifecycle to a terminal state
# ABOUTME: Status writes and the follow-up publish (retry or notification) commit together

import asyncio
import uuid

from sqlmodel.ext.asyncio.session import AsyncSession

from rpa_pipeline.core.anomalies import detect_anomalies
from rpa_pipeline.core.context import AppContext
from rpa_pipeline.core.handlers import HandlerRegistry, job_secrets
from rpa_pipeline.core.lifecycle import is_terminal, request_retry, transition
from rpa_pipeline.core.models import (
    ExecutionRequest,
    JobNotification,
    JobStatus,
    ProcessingResult,
    utcnow,
)
from rpa_pipeline.persistence.models import Job
from rpa_pipeline.queue.channels import JOB_EXECUTION, NOTIFICATIONS
from rpa_pipeline.utils.logging import get_logger, with_job_context
from rpa_pipeline.utils.redaction import redact
from rpa_pipeline.utils.retry import JobNotFoundError, transport_retry
from rpa_pipeline.workflow.engine import WorkflowInitializationError

ERROR_MESSAGE_LIMIT = 4000


class ExecutionService:
    """Consumes execution requests; safe to receive the same request more than once."""

    def __init__(self, ctx: AppContext, registry: HandlerRegistry, cancel_event: asyncio.Event | None = None):
        self.ctx = ctx
        self.registry = registry
        self.cancel_event = cancel_event or asyncio.Event()
        self.logger = get_logger(__name__)

    async def handle(self, request: ExecutionRequest) -> None:
        with with_job_context(request.job_id, pipeline="execution") as logger:
            job = await self._begin(request.job_id, logger)
            if job is None:
                return

            handler = self.registry.for_label(job.job_type)
            secrets = job_secrets(job)
            try:
                result = await handler.run(job, self.cancel_event)
            except WorkflowInitializationError as e:
                logger.error("Workflow could not start", error=str(e))
                await self._finish(
                    job.id,
                    JobStatus.FAILED,
                    ProcessingResult(success=False, message="Workflow initialization failed", errors=[str(e)]),
                )
                return
            except asyncio.CancelledError:
                logger.warning("Execution cancelled while running")
                await asyncio.shield(
                    self._finish(
                        job.id,
                        JobStatus.CANCELLED,
                        ProcessingResult(success=False, cancelled=True, message="Execution cancelled"),
                    )
                )
                raise
            except Exception as e:
                await self._retry(job.id, redact(f"{type(e).__name__}: {e}", secrets), logger)
                return

            if result.cancelled:
                status = JobStatus.CANCELLED
            elif result.success:
                status = JobStatus.COMPLETED
            else:
                status = JobStatus.FAILED
            await self._finish(job.id, status, result)

    @transport_retry()
    async def _begin(self, job_id: uuid.UUID, logger) -> Job | None:
        """Move the job to processing. Returns None when there is nothing to run."""
        async with self.ctx.db.session() as session:
            job = await session.get(Job, job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} does not exist")

            if is_terminal(job.status):
                logger.info("Job already finished, skipping redelivery", status=JobStatus(job.status).value)
                return None

            if job.status == JobStatus.PROCESSING:
                # A previous consumer died mid-run
                logger.warning("Recovering job left in processing")
                if request_retry(job, "Execution interrupted", self.ctx.config.max_retries) is JobStatus.FAILED:
                    job.processing_result = ProcessingResult(
                        success=False, message="Execution failed after retries", errors=[job.error_message or ""]
                    )
                    await self._stage_notification(session, job)
                    session.add(job)
                    return None

            transition(job, JobStatus.PROCESSING)
            session.add(job)
        return job

    @transport_retry()
    async def _retry(self, job_id: uuid.UUID, reason: str, logger) -> None:
        async with self.ctx.db.session() as session:
            job = await self._load(session, job_id)
            status = request_retry(job, reason, self.ctx.config.max_retries)
            if status is JobStatus.RETRYING:
                delay = self.ctx.config.retry_backoff_seconds * 2 ** (job.retry_count - 1)
                await self.ctx.broker.publish(
                    JOB_EXECUTION,
                    ExecutionRequest(job_id=job.id, retry_count=job.retry_count),
                    priority=job.priority,
                    delay_seconds=delay,
                    session=session,
                )
                logger.warning("Execution failed, retry scheduled", retry_count=job.retry_count, delay_seconds=delay)
            else:
                job.processing_result = ProcessingResult(
                    success=False, message="Execution failed after retries", errors=[job.error_message or reason]
                )
                await self._stage_notification(session, job)
                logger.error("Execution failed, retries exhausted", error=reason)
            session.add(job)

    @transport_retry()
    async def _finish(self, job_id: uuid.UUID, status: JobStatus, result: ProcessingResult) -> None:
        async with self.ctx.db.session() as session:
            job = await self._load(session, job_id)
            secrets = job_secrets(job)
            errors = [redact(error, secrets) for error in [*result.errors, *detect_anomalies(job, result)]]
            result = result.model_copy(update={"errors": errors})

            error_message = None
            if status is not JobStatus.COMPLETED and result.errors:
                error_message = "; ".join(result.errors)[:ERROR_MESSAGE_LIMIT]
            job.processing_result = result
            transition(job, status, error_message=error_message)
            await self._stage_notification(session, job)
            session.add(job)

        self.logger.info(
            "Job finished", job_id=str(job_id), status=status.value, success=result.success, errors=len(result.errors)
        )

    async def _load(self, session: AsyncSession, job_id: uuid.UUID) -> Job:
        job = await session.get(Job, job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} does not exist")
        return job

    async def _stage_notification(self, session: AsyncSession, job: Job) -> None:
        """Queue the one notification for a terminal job inside the caller's transaction."""
        if job.notified_at is not None:
            return
        job.notified_at = utcnow()
        notification = JobNotification(
            job_id=job.id,
            status=JobStatus(job.status),
            subject=job.subject,
            job_type=job.job_type,
            result=job.processing_result,
            recipient_email=job.sender,
        )
        await self.ctx.broker.publish(NOTIFICATIONS, notification, priority=job.priority, session=session)
