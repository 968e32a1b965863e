# ABOUTME: Job type handlers that turn a persisted job into a ProcessingResult
# ABOUTME: Registry keyed by classification label with a general fallback

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Protocol

from rpa_pipeline.core.models import (
    CostingData,
    CostingPayload,
    CredentialPayload,
    Credentials,
    CredentialUpdateData,
    EstimationPayload,
    GeneralData,
    JobType,
    ProcessingResult,
)
from rpa_pipeline.persistence.models import Job
from rpa_pipeline.workflow.engine import WorkflowDefinition, WorkflowEngine
from rpa_pipeline.workflow.job_card import JobCardInput


class JobHandler(Protocol):
    async def run(self, job: Job, cancel_event: asyncio.Event | None = None) -> ProcessingResult: ...


def job_secrets(job: Job) -> list[str]:
    """Every password carried by a job, for redaction."""
    secrets = []
    if job.extracted_credentials and job.extracted_credentials.password:
        secrets.append(job.extracted_credentials.password)
    payload = job.payload_json
    if isinstance(payload, EstimationPayload):
        for login in (payload.company_login, payload.user_login):
            if login and login.password:
                secrets.append(login.password)
    elif isinstance(payload, CredentialPayload) and payload.credentials.password:
        secrets.append(payload.credentials.password)
    return secrets


class EstimationHandler:
    def __init__(self, engine: WorkflowEngine, workflow: WorkflowDefinition):
        self.engine = engine
        self.workflow = workflow

    async def run(self, job: Job, cancel_event: asyncio.Event | None = None) -> ProcessingResult:
        payload = job.payload_json
        if not isinstance(payload, EstimationPayload):
            return ProcessingResult(success=False, message="No estimation data in request", errors=["Missing payload"])
        return await self.engine.execute(
            self.workflow, payload, run_id=str(job.id)[:8], secrets=job_secrets(job), cancel_event=cancel_event
        )


class JobCardHandler:
    def __init__(self, engine: WorkflowEngine, workflow: WorkflowDefinition):
        self.engine = engine
        self.workflow = workflow

    async def run(self, job: Job, cancel_event: asyncio.Event | None = None) -> ProcessingResult:
        credentials = job.extracted_credentials or Credentials()
        errors = []
        if not credentials.system_url:
            errors.append("No system URL in request")
        if not credentials.username or not credentials.password:
            errors.append("No login credentials in request")
        if job.job_card is None:
            errors.append("No job number in request")
        if errors:
            return ProcessingResult(success=False, message="Job card entry cannot start", errors=errors)

        return await self.engine.execute(
            self.workflow,
            JobCardInput(credentials=credentials, job_card=job.job_card),
            run_id=str(job.id)[:8],
            secrets=job_secrets(job),
            cancel_event=cancel_event,
        )


class CredentialUpdateHandler:
    async def run(self, job: Job, cancel_event: asyncio.Event | None = None) -> ProcessingResult:
        payload = job.payload_json
        credentials = payload.credentials if isinstance(payload, CredentialPayload) else job.extracted_credentials
        if credentials is None or not credentials.username:
            return ProcessingResult(
                success=False, message="Credential update incomplete", errors=["No username in request"]
            )
        return ProcessingResult(
            success=True,
            message=f"Credentials recorded for {credentials.username}",
            data=CredentialUpdateData(
                username=credentials.username,
                system_url=credentials.system_url,
                password_received=bool(credentials.password),
            ),
        )


class CostingHandler:
    async def run(self, job: Job, cancel_event: asyncio.Event | None = None) -> ProcessingResult:
        amounts = job.payload_json.amounts if isinstance(job.payload_json, CostingPayload) else []
        total = sum(amounts, Decimal("0"))
        return ProcessingResult(
            success=True,
            message=f"Costing request with {len(amounts)} amount(s), total {total}",
            data=CostingData(amounts=amounts, total=total),
        )


class GeneralHandler:
    async def run(self, job: Job, cancel_event: asyncio.Event | None = None) -> ProcessingResult:
        return ProcessingResult(
            success=True,
            message="Request recorded for manual follow-up",
            data=GeneralData(job_type=job.job_type or JobType.UNKNOWN.value, summary=job.subject[:200]),
        )


class HandlerRegistry:
    """Maps classification labels to handlers; unknown labels get the general handler."""

    def __init__(self, handlers: dict[str, JobHandler] | None = None, default: JobHandler | None = None):
        self.handlers: dict[str, JobHandler] = dict(handlers or {})
        self.default = default or GeneralHandler()

    def register(self, label: JobType | str, handler: JobHandler) -> None:
        self.handlers[label.value if isinstance(label, JobType) else label] = handler

    def for_label(self, label: str | None) -> JobHandler:
        return self.handlers.get(label or "", self.default)


def build_default_registry(
    engine: WorkflowEngine,
    estimation: WorkflowDefinition,
    job_card: WorkflowDefinition,
    job_card_engine: WorkflowEngine | None = None,
) -> HandlerRegistry:
    """Job card runs log in to the URL named in the request, so they may use an engine without pre-flight."""
    registry = HandlerRegistry()
    registry.register(JobType.ERP_ESTIMATION, EstimationHandler(engine, estimation))
    registry.register(JobType.JOB_CARD_ENTRY, JobCardHandler(job_card_engine or engine, job_card))
    registry.register(JobType.CREDENTIAL_UPDATE, CredentialUpdateHandler())
    registry.register(JobType.COSTING_REQUEST, CostingHandler())
    return registry
