# ABOUTME: Fixed-sequence workflow engine with per-step failure isolation
# ABOUTME: One session per run, step records for every step, guaranteed session cleanup

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rpa_pipeline.core.models import ProcessingResult, StepOutcome, WorkflowRunData, WorkflowStep, utcnow
from rpa_pipeline.utils.logging import get_logger
from rpa_pipeline.utils.redaction import redact
from rpa_pipeline.utils.retry import PipelineError
from rpa_pipeline.workflow.session import AutomationSession, SessionFactory

StepExecutor = Callable[[AutomationSession, Any], Awaitable[StepOutcome]]
PreflightCheck = Callable[[AutomationSession], Awaitable[None]]


class WorkflowInitializationError(PipelineError):
    """Raised when the session for a run cannot be acquired."""

    pass


class StepInputMissing(PipelineError):
    """Raised by a step whose slice of the payload is absent."""

    pass


def _whole_payload(payload: Any) -> Any:
    return payload


@dataclass(frozen=True)
class StepSpec:
    number: int
    action: str
    description: str
    executor: StepExecutor
    payload_slice: Callable[[Any], Any] = _whole_payload


@dataclass(frozen=True)
class WorkflowDefinition:
    """Ordered step table for one job type."""

    name: str
    steps: tuple[StepSpec, ...] = field(default_factory=tuple)

    def __post_init__(self):
        numbers = [spec.number for spec in self.steps]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"Workflow {self.name} steps must be numbered 1..N in order, got {numbers}")

    def new_records(self) -> list[WorkflowStep]:
        return [
            WorkflowStep(step_number=spec.number, description=spec.description, action=spec.action)
            for spec in self.steps
        ]


class WorkflowEngine:
    """Runs a workflow definition against one automation session."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        step_delay: float = 1.0,
        preflight: PreflightCheck | None = None,
        screenshot_dir: Path | None = None,
    ):
        self.session_factory = session_factory
        self.step_delay = step_delay
        self.preflight = preflight
        self.screenshot_dir = screenshot_dir
        self.logger = get_logger(__name__)

    async def execute(
        self,
        workflow: WorkflowDefinition,
        payload: Any,
        *,
        run_id: str = "run",
        secrets: Iterable[str] = (),
        cancel_event: asyncio.Event | None = None,
    ) -> ProcessingResult:
        """Run every step in order.

        Raises:
            WorkflowInitializationError: the session could not be opened
            ConnectivityError: the pre-flight check found no reachable entry URL
        """
        secrets = [s for s in secrets if s]
        log = self.logger.bind(workflow=workflow.name, run_id=run_id)
        records = workflow.new_records()

        try:
            session = await self.session_factory.open()
        except Exception as e:
            raise WorkflowInitializationError(
                redact(f"Could not open automation session: {type(e).__name__}: {e}", secrets)
            ) from e

        cancelled = False
        screenshot: bytes | None = None
        try:
            if self.preflight is not None:
                await self.preflight(session)

            last_index = len(workflow.steps) - 1
            for index, (spec, record) in enumerate(zip(workflow.steps, records, strict=True)):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    break

                await self._run_step(session, spec, record, payload, secrets, log)

                if index < last_index and await self._pace(cancel_event):
                    cancelled = True
                    break

            screenshot = await self._capture(session, log)
        finally:
            try:
                await session.close()
            except Exception as e:
                log.warning("Session close failed", error=redact(str(e), secrets))

        return self._aggregate(workflow, records, screenshot, cancelled, run_id, log)

    async def _run_step(self, session, spec: StepSpec, record: WorkflowStep, payload, secrets, log) -> None:
        record.mark_running()
        log.info("Step started", step=spec.number, action=spec.action)
        try:
            outcome = await spec.executor(session, spec.payload_slice(payload))
        except Exception as e:
            record.mark_failed(redact(f"{type(e).__name__}: {e}", secrets))
        else:
            if outcome.success:
                record.mark_completed(redact(outcome.message, secrets))
            else:
                record.mark_failed(redact(outcome.message or "Step reported failure", secrets))

        if record.is_completed:
            log.info("Step completed", step=spec.number, action=spec.action)
        else:
            log.warning("Step failed", step=spec.number, action=spec.action, error=record.error_message)

    async def _pace(self, cancel_event: asyncio.Event | None) -> bool:
        """Wait between steps. Returns True when cancellation arrived meanwhile."""
        if cancel_event is None:
            if self.step_delay > 0:
                await asyncio.sleep(self.step_delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=self.step_delay)
        except TimeoutError:
            return False
        return True

    async def _capture(self, session: AutomationSession, log) -> bytes | None:
        try:
            return await session.screenshot()
        except Exception as e:
            log.warning("Final screenshot failed", error=str(e))
            return None

    def _aggregate(
        self,
        workflow: WorkflowDefinition,
        records: list[WorkflowStep],
        screenshot: bytes | None,
        cancelled: bool,
        run_id: str,
        log,
    ) -> ProcessingResult:
        completed = sum(1 for record in records if record.is_completed)
        total = len(records)
        errors = [
            f"Step {record.step_number} ({record.action}) failed: {record.error_message}"
            for record in records
            if record.error_message
        ]
        if cancelled:
            message = f"{workflow.name} cancelled after {completed}/{total} steps completed"
        else:
            message = f"{workflow.name} finished: {completed}/{total} steps completed"

        data = WorkflowRunData(
            workflow=workflow.name,
            steps=records,
            completed_steps=completed,
            total_steps=total,
            screenshot=screenshot,
            screenshot_path=self._store_screenshot(screenshot, workflow.name, run_id, log),
        )
        log.info("Workflow finished", completed_steps=completed, total_steps=total, cancelled=cancelled)
        return ProcessingResult(success=not cancelled, cancelled=cancelled, message=message, errors=errors, data=data)

    def _store_screenshot(self, screenshot: bytes | None, workflow: str, run_id: str, log) -> str | None:
        if screenshot is None or self.screenshot_dir is None:
            return None
        path = self.screenshot_dir / f"{workflow}_{run_id}_{utcnow():%Y%m%d_%H%M%S}.png"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(screenshot)
        except OSError as e:
            log.warning("Could not write screenshot", path=str(path), error=str(e))
            return None
        return str(path)
