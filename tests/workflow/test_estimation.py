# ABOUTME: Tests for the sixteen-step estimation workflow against scripted sessions
# ABOUTME: Step table shape, selector fallbacks, missing inputs and process selection

from __future__ import annotations

from collections.abc import Sequence

import pytest

from rpa_pipeline.core.models import EstimationPayload, JobDetails, JobSize, StepStatus, WastageFinishing
from rpa_pipeline.extraction.extractor import Extractor
from rpa_pipeline.workflow import estimation, processes
from rpa_pipeline.workflow.engine import StepInputMissing, WorkflowEngine
from rpa_pipeline.workflow.estimation import build_estimation_workflow
from rpa_pipeline.workflow.processes import ProcessDefinition
from rpa_pipeline.workflow.session import DryRunSession, SelectorNotFoundError


class ScriptedSession(DryRunSession):
    """Dry-run session where some selectors are absent and some elements carry text."""

    def __init__(self, missing: Sequence[str] = (), texts: dict[str, str] | None = None):
        super().__init__("http://erp.local/")
        self.missing = set(missing)
        self.texts = texts or {}

    def _available(self, selectors: Sequence[str]) -> list[str]:
        return [s for s in selectors if s not in self.missing]

    async def click_first(self, selectors: Sequence[str]) -> str:
        available = self._available(selectors)
        if not available:
            raise SelectorNotFoundError(selectors)
        self._record("click", available[0])
        return available[0]

    async def fill_first(self, selectors: Sequence[str], value: str) -> str:
        available = self._available(selectors)
        if not available:
            raise SelectorNotFoundError(selectors)
        self._record("fill", available[0])
        return available[0]

    async def is_present(self, selectors: Sequence[str]) -> bool:
        return bool(self._available(selectors))

    async def read_text(self, selectors: Sequence[str]) -> str | None:
        for selector in selectors:
            if selector in self.texts:
                return self.texts[selector]
        return None


class ValueRecordingSession(ScriptedSession):
    """Keeps filled values so form contents can be checked."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.values: dict[str, str] = {}

    async def fill_first(self, selectors: Sequence[str], value: str) -> str:
        used = await super().fill_first(selectors, value)
        self.values[used] = value
        return used

    async def select_first(self, selectors: Sequence[str], value: str) -> str:
        used = await super().select_first(selectors, value)
        self.values[used] = value
        return used


class ScriptedFactory:
    def __init__(self, session: ScriptedSession):
        self.session = session

    async def open(self) -> ScriptedSession:
        return self.session


@pytest.fixture
def payload(estimation_body) -> EstimationPayload:
    return Extractor().extract_estimation(estimation_body)


async def _run(payload, session: ScriptedSession, secrets=("123",)):
    engine = WorkflowEngine(ScriptedFactory(session), step_delay=0)
    return await engine.execute(build_estimation_workflow("2025-2026"), payload, secrets=secrets)


def test_step_table_has_sixteen_ordered_steps():
    workflow = build_estimation_workflow()

    assert workflow.name == "erp-estimation"
    assert [spec.number for spec in workflow.steps] == list(range(1, 17))
    assert workflow.steps[0].action == "navigate"
    assert workflow.steps[-1].action == "capture_results"


@pytest.mark.asyncio
async def test_full_run_completes_every_step(payload):
    session = ScriptedSession()

    result = await _run(payload, session)

    assert result.success
    assert result.data.completed_steps == 16
    assert ("goto", "http://erp.local/") in session.actions
    assert ("select", estimation.FINANCIAL_YEAR[0], "2025-2026") in session.actions
    assert ("fill", estimation.QUANTITY[0]) in session.actions
    assert session.closed


@pytest.mark.asyncio
async def test_filled_values_never_reach_action_log(payload):
    session = ScriptedSession()

    await _run(payload, session)

    assert all("123" not in part for action in session.actions for part in action)


@pytest.mark.asyncio
async def test_selector_fallback_uses_next_candidate(payload):
    session = ScriptedSession(missing=[estimation.COMPANY_NAME[0]])

    result = await _run(payload, session)

    assert ("fill", estimation.COMPANY_NAME[1]) in session.actions
    assert result.data.steps[1].status == StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_missing_company_login_fails_only_that_step(payload):
    payload = payload.model_copy(update={"company_login": None})

    result = await _run(payload, ScriptedSession())

    steps = result.data.steps
    assert steps[1].status == StepStatus.FAILED
    assert "Company login details not provided" in steps[1].error_message
    assert all(step.is_completed for step in steps[2:])
    assert result.data.completed_steps == 15


@pytest.mark.asyncio
async def test_unfindable_element_is_recorded_and_run_continues(payload):
    session = ScriptedSession(missing=estimation.MENU)

    result = await _run(payload, session)

    assert result.data.steps[3].status == StepStatus.FAILED
    assert "No element matched any of" in result.data.steps[3].error_message
    assert result.data.steps[4].is_completed


@pytest.mark.asyncio
async def test_zero_quantity_is_a_step_failure():
    payload = EstimationPayload(job_details=JobDetails(client="A", content="Pillow Box", quantity=0))

    outcome = await estimation.enter_quantity(ScriptedSession(), payload.job_details)

    assert outcome.success is False
    assert outcome.message == "Quantity missing or zero"


@pytest.mark.asyncio
async def test_fill_size_skips_absent_fields():
    session = ScriptedSession(missing=["#oflap", "[name='oflap']", "#pflap", "[name='pflap']"])

    outcome = await estimation.fill_size(session, EstimationPayload(job_size=JobSize(height=1, length=2, width=3)))

    assert outcome.success
    assert outcome.message == "Filled size fields: Height, Length, Width"


@pytest.mark.asyncio
async def test_add_processes_reports_missing_controls():
    session = ScriptedSession(missing=estimation.PROCESS_ADD)

    outcome = await estimation.add_processes(session, JobDetails(content="Reverse Tuck In", client="Akrati Offset"))

    assert outcome.success is False
    assert "not added: Die Cutting" in outcome.message


@pytest.mark.asyncio
async def test_add_processes_selection():
    session = ScriptedSession()

    outcome = await estimation.add_processes(session, JobDetails(content="Reverse Tuck In", client="Akrati Offset"))

    assert outcome.success
    assert outcome.message == (
        "Added processes: Die Cutting, Creasing, Gluing, Window Patching, UV Coating, Lamination"
    )


@pytest.mark.asyncio
async def test_capture_results_reads_cost_summary():
    session = ScriptedSession(texts={"#costSummary": "  Total: 12,500.00  "})

    outcome = await estimation.capture_results(session, None)

    assert outcome.message == "Cost summary: Total: 12,500.00"


@pytest.mark.asyncio
async def test_close_popup_when_absent():
    session = ScriptedSession(missing=estimation.POPUP_CLOSE)

    outcome = await estimation.close_popup(session, None)

    assert outcome.success
    assert outcome.message == "No quotation popup open"


@pytest.mark.asyncio
async def test_fill_details_includes_wastage_and_finishing(payload):
    session = ValueRecordingSession()

    outcome = await estimation.fill_details(session, payload)

    assert outcome.success
    assert session.values["#PlanMakeReadyWastage"] == "100"
    assert session.values["#PlanWastageType"] == "Standard"
    assert session.values["#PlanPrintingGrain"] == "Length"
    assert session.values["#PlanOnlineCoating"] == "Varnish"
    assert [session.values[f"#Trimming{side}"] for side in estimation.SIDES] == ["5", "5", "5", "5"]
    assert [session.values[f"#Striping{side}"] for side in estimation.SIDES] == ["2", "2", "2", "2"]
    assert "TrimmingTop" in outcome.message


@pytest.mark.asyncio
async def test_malformed_margins_fall_back_to_zero():
    session = ValueRecordingSession()
    payload = EstimationPayload(wastage_finishing=WastageFinishing(make_ready_sheets=50, trimming="5/5", striping=""))

    outcome = await estimation.fill_details(session, payload)

    assert outcome.success
    assert session.values["#PlanMakeReadyWastage"] == "50"
    assert [session.values[f"#Trimming{side}"] for side in estimation.SIDES] == ["0", "0", "0", "0"]
    assert [session.values[f"#Striping{side}"] for side in estimation.SIDES] == ["0", "0", "0", "0"]
    assert "#PlanWastageType" not in session.values


@pytest.mark.asyncio
async def test_fill_details_without_any_detail_groups():
    with pytest.raises(StepInputMissing):
        await estimation.fill_details(ScriptedSession(), EstimationPayload())


@pytest.mark.asyncio
async def test_add_processes_searches_catalogue_names(monkeypatch):
    monkeypatch.setitem(
        processes.CONTENT_PROCESSES,
        "pillow box",
        (ProcessDefinition("uv coating", "Finishing", False, 10), ProcessDefinition("Hologram Sticker", "Special")),
    )
    session = ValueRecordingSession()

    outcome = await estimation.add_processes(session, JobDetails(content="Pillow Box"))

    assert outcome.success
    assert "UV Coating" in outcome.message
    assert outcome.message.endswith("not added: Hologram Sticker")
    assert "Hologram Sticker" not in session.values.values()
