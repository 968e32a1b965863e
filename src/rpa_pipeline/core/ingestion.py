# ABOUTME: Ingestion stage - filters, classifies and extracts inbound messages into jobs
# ABOUTME: The new job and its execution request are committed in one transaction

import json
import re
from typing import Any

from rpa_pipeline.core.context import AppContext
from rpa_pipeline.core.models import (
    ClassificationResult,
    ExecutionRequest,
    InboundMessage,
    JobStatus,
)
from rpa_pipeline.extraction.classifier import Classifier
from rpa_pipeline.extraction.extractor import Extractor
from rpa_pipeline.persistence.models import (
    METADATA_MAX_LENGTH,
    SENDER_MAX_LENGTH,
    SUBJECT_MAX_LENGTH,
    Job,
)
from rpa_pipeline.queue.channels import JOB_EXECUTION
from rpa_pipeline.utils.logging import get_logger, with_async_operation_context, with_pipeline_context

HIGH_PRIORITY = 1
NORMAL_PRIORITY = 5
LOW_PRIORITY = 9


def priority_from_subject(subject: str) -> int:
    upper = subject.upper()
    if "URGENT" in upper or "HIGH PRIORITY" in upper:
        return HIGH_PRIORITY
    if "LOW PRIORITY" in upper:
        return LOW_PRIORITY
    return NORMAL_PRIORITY


def build_metadata(message: InboundMessage, classification: ClassificationResult) -> dict[str, Any]:
    """Job metadata kept under the column limit by dropping the matched signals first."""
    metadata: dict[str, Any] = {
        "source_message_id": message.message_id,
        "received_at": message.received_at.isoformat(),
        "classification": {
            "label": classification.label,
            "confidence": classification.confidence,
            **classification.metadata,
        },
    }
    if len(json.dumps(metadata, default=str)) > METADATA_MAX_LENGTH:
        metadata["classification"] = {
            "label": classification.label,
            "confidence": classification.confidence,
            "method": classification.method,
        }
    if len(json.dumps(metadata, default=str)) > METADATA_MAX_LENGTH:
        metadata["source_message_id"] = message.message_id[:200]
    return metadata


class IngestionService:
    """Turns raw inbound messages into pending jobs queued for execution."""

    def __init__(self, ctx: AppContext, classifier: Classifier | None = None, extractor: Extractor | None = None):
        self.ctx = ctx
        self.classifier = classifier or Classifier()
        self.extractor = extractor or Extractor()
        self.allowed_senders = {sender.lower() for sender in ctx.config.allowed_senders}
        self.subject_patterns = [re.compile(p, re.IGNORECASE) for p in ctx.config.subject_patterns]
        self.logger = get_logger(__name__)

    def accepts(self, message: InboundMessage) -> bool:
        """Sender allow-list and subject patterns; an empty filter accepts everything."""
        if self.allowed_senders and message.sender.lower() not in self.allowed_senders:
            return False
        if self.subject_patterns and not any(p.search(message.subject) for p in self.subject_patterns):
            return False
        return True

    @with_async_operation_context("ingest_message")
    async def ingest(self, message: InboundMessage) -> Job | None:
        """Create a pending job for a message and queue its execution.

        Returns None for filtered messages. A redelivered message returns
        the job created the first time.
        """
        with with_pipeline_context("ingestion", source_message_id=message.message_id) as logger:
            if not self.accepts(message):
                logger.info("Message filtered out", sender=message.sender)
                return None

            existing = await self.ctx.db.find_job_by_source(message.message_id)
            if existing is not None:
                logger.info("Message already ingested", job_id=str(existing.id))
                return existing

            classification = self.classifier.classify(message.subject, message.body)
            outcome = self.extractor.extract(message.body, classification.label)

            job = Job(
                source_id=message.message_id,
                subject=message.subject[:SUBJECT_MAX_LENGTH],
                sender=message.sender[:SENDER_MAX_LENGTH],
                recipients=message.recipients,
                body=message.body,
                status=JobStatus.PENDING,
                job_type=classification.label,
                priority=priority_from_subject(message.subject),
                extracted_credentials=outcome.credentials,
                job_card=outcome.job_card,
                payload_json=outcome.payload,
                metadata_json=build_metadata(message, classification),
            )

            async with self.ctx.db.session() as session:
                session.add(job)
                await self.ctx.broker.publish(
                    JOB_EXECUTION, ExecutionRequest(job_id=job.id), priority=job.priority, session=session
                )

            logger.info(
                "Job created",
                job_id=str(job.id),
                job_type=job.job_type,
                confidence=classification.confidence,
                priority=job.priority,
            )
            return job

    async def handle(self, message: InboundMessage) -> None:
        """Channel handler for raw-ingestion messages."""
        await self.ingest(message)
