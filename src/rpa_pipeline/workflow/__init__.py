# ABOUTME: Fixed-sequence automation workflows and the engine that runs them
# ABOUTME: Pipeline Stage 3: typed payload → step records + final screenshot

"""
Workflow Layer: Execute a job's automation steps

This layer handles:
- The engine: one session per run, isolated step failures, guaranteed cleanup
- Step tables per job type (estimation, job card entry)
- The session protocol, a dry-run session and the connectivity pre-flight

The Playwright adapter lives in workflow.playwright_session and is imported
only by live workers, so nothing here requires a browser.
"""

from .engine import (
    StepInputMissing,
    StepSpec,
    WorkflowDefinition,
    WorkflowEngine,
    WorkflowInitializationError,
)
from .estimation import build_estimation_workflow
from .job_card import JobCardInput, build_job_card_workflow
from .session import (
    AutomationSession,
    ConnectivityCheck,
    ConnectivityError,
    DryRunSession,
    DryRunSessionFactory,
    SelectorNotFoundError,
    SessionFactory,
)

__all__ = [
    "AutomationSession",
    "ConnectivityCheck",
    "ConnectivityError",
    "DryRunSession",
    "DryRunSessionFactory",
    "JobCardInput",
    "SelectorNotFoundError",
    "SessionFactory",
    "StepInputMissing",
    "StepSpec",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowInitializationError",
    "build_estimation_workflow",
    "build_job_card_workflow",
]
