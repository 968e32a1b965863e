# ABOUTME: Persistence models for jobs and the durable channel store
# ABOUTME: Job rows carry lifecycle state and typed blobs, channel rows back the message broker

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlmodel import JSON, Column, Field, SQLModel

from rpa_pipeline.core.models import (
    Credentials,
    DomainPayload,
    JobCardInfo,
    JobStatus,
    ProcessingResult,
    utcnow,
)
from rpa_pipeline.persistence.json_types import PydanticJson

SUBJECT_MAX_LENGTH = 255
SENDER_MAX_LENGTH = 500
METADATA_MAX_LENGTH = 1000


class Job(SQLModel, table=True):
    """A unit of work created from one inbound message."""

    __tablename__ = "job"  # type: ignore[assignment]

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, description="Immutable job identifier")
    source_id: str | None = Field(
        default=None, index=True, unique=True, description="Transport message id the job was created from"
    )
    subject: str = Field(default="", max_length=SUBJECT_MAX_LENGTH, description="Message subject")
    sender: str = Field(default="", max_length=SENDER_MAX_LENGTH, description="Sender address")
    recipients: list[str] = Field(default_factory=list, sa_column=Column(JSON), description="Original recipients")
    body: str = Field(default="", description="Full message body")
    status: JobStatus = Field(default=JobStatus.PENDING, index=True, description="Lifecycle state")
    job_type: str | None = Field(default=None, max_length=50, description="Classification label")
    priority: int = Field(default=5, description="1 is most urgent, 9 least")
    retry_count: int = Field(default=0, ge=0, le=5, description="Retry transitions taken so far")

    extracted_credentials: Credentials | None = Field(
        default=None,
        sa_column=Column(PydanticJson(Credentials)),
        description="Credentials found in the message",
    )
    job_card: JobCardInfo | None = Field(
        default=None,
        sa_column=Column(PydanticJson(JobCardInfo)),
        description="Job card reference found in the message",
    )
    payload_json: DomainPayload | None = Field(
        default=None,
        sa_column=Column(PydanticJson(DomainPayload)),
        description="Typed payload routed by the classification label",
    )
    processing_result: ProcessingResult | None = Field(
        default=None,
        sa_column=Column(PydanticJson(ProcessingResult)),
        description="Outcome of the last execution",
    )
    error_message: str | None = Field(default=None, description="Redacted failure summary")
    metadata_json: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON), description="Classification details and ingestion context"
    )

    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp")
    started_at: datetime | None = Field(default=None, description="Last time execution started")
    completed_at: datetime | None = Field(default=None, description="Terminal transition timestamp")
    notified_at: datetime | None = Field(default=None, description="When the terminal notification was staged")


class QueueChannel(SQLModel, table=True):
    """Declared channel; declarations persist so channels survive restarts."""

    __tablename__ = "queue_channel"  # type: ignore[assignment]

    name: str = Field(primary_key=True, description="Channel name")
    durable: bool = Field(default=True, description="Messages survive process restarts")
    dead_letter_channel: str | None = Field(default=None, description="Where rejected messages are routed")
    declared_at: datetime = Field(default_factory=utcnow, description="First declaration timestamp")


class QueueMessage(SQLModel, table=True):
    """A persistent message waiting on, or leased from, a channel."""

    __tablename__ = "queue_message"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True, description="Insertion order")
    message_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex, index=True, unique=True, description="Envelope identifier"
    )
    channel: str = Field(index=True, description="Current channel")
    body: str = Field(description="JSON payload")
    persistent: bool = Field(default=True, description="Delivery mode flag carried in the envelope")
    priority: int = Field(default=5, description="Lower values are fetched first")
    state: str = Field(default="ready", index=True, description="ready or leased")
    created_at: datetime = Field(default_factory=utcnow, description="Publish timestamp")
    available_at: datetime = Field(default_factory=utcnow, description="Not fetchable before this time")
    lease_expires_at: datetime | None = Field(default=None, description="Redelivery deadline while leased")
    delivery_count: int = Field(default=0, description="Times the message was fetched")
    source_channel: str | None = Field(default=None, description="Original channel of a dead-lettered message")
    dead_letter_reason: str | None = Field(default=None, description="Why the message was rejected")
