# ABOUTME: Channel names and the envelope every queued message travels in
# ABOUTME: One channel per pipeline stage plus the shared dead-letter channel

from datetime import datetime
from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError

from rpa_pipeline.utils.retry import MessageDecodeError

RAW_INGESTION = "raw-ingestion"
JOB_EXECUTION = "job-execution"
NOTIFICATIONS = "notifications"
DEAD_LETTER = "dead-letter"

STAGE_CHANNELS = (RAW_INGESTION, JOB_EXECUTION, NOTIFICATIONS)
ALL_CHANNELS = (*STAGE_CHANNELS, DEAD_LETTER)

M = TypeVar("M", bound=BaseModel)


class MessageEnvelope(BaseModel):
    """A fetched message; the payload stays JSON text until a consumer decodes it."""

    message_id: str
    channel: str
    body: str
    timestamp: datetime
    persistent: bool = True
    delivery_count: int = 0
    source_channel: str | None = None
    dead_letter_reason: str | None = Field(default=None, description="Set only on dead-letter messages")

    def decode(self, model: type[M]) -> M:
        try:
            return model.model_validate_json(self.body)
        except ValidationError as e:
            raise MessageDecodeError(f"{model.__name__} payload rejected: {e.error_count()} validation error(s)") from e
