# ABOUTME: Durable delivery channels between the pipeline stages
# ABOUTME: Database-backed broker with leases, acknowledgements and dead-lettering

from .broker import MessageBroker
from .channels import (
    ALL_CHANNELS,
    DEAD_LETTER,
    JOB_EXECUTION,
    NOTIFICATIONS,
    RAW_INGESTION,
    MessageEnvelope,
)

__all__ = [
    "ALL_CHANNELS",
    "DEAD_LETTER",
    "JOB_EXECUTION",
    "NOTIFICATIONS",
    "RAW_INGESTION",
    "MessageBroker",
    "MessageEnvelope",
]
