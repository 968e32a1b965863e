# ABOUTME: Database operations and data persistence layer
# ABOUTME: Job records plus the tables behind the durable delivery channels

"""
Persistence Layer: Save and retrieve jobs and channel messages

This layer handles:
- SQLModel tables for jobs, channel declarations and queued messages
- Typed JSON columns for payloads and processing results
- Database connection and transaction management

Data Flow: extraction/ data → Job rows ↔ queue/ channels → core/ stages
"""

from .json_types import PydanticJson
from .manager import DatabaseManager, JobSummary
from .models import Job, QueueChannel, QueueMessage

__all__ = [
    "DatabaseManager",
    "Job",
    "JobSummary",
    "PydanticJson",
    "QueueChannel",
    "QueueMessage",
]
