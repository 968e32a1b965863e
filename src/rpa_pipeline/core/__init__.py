# ABOUTME: Business logic and orchestration layer
# ABOUTME: Job lifecycle, stage services and the value objects they exchange

"""
Core Layer: Job lifecycle and stage orchestration

This layer handles:
- Domain models shared by every stage
- The job lifecycle state machine and retry cap
- Ingestion, execution and notification stage services
- Job type handlers and post-execution anomaly checks

Data Flow: extraction/ output → core/ ingestion → queue/ → core/ execution → workflow/ → core/ notification
"""

from .models import (
    ClassificationResult,
    ExecutionRequest,
    InboundMessage,
    JobNotification,
    JobStatus,
    JobType,
    ProcessingResult,
)

# Stage services import persistence and queue; use:
# from rpa_pipeline.core.execution import ExecutionService

__all__ = [
    "ClassificationResult",
    "ExecutionRequest",
    "InboundMessage",
    "JobNotification",
    "JobStatus",
    "JobType",
    "ProcessingResult",
]
