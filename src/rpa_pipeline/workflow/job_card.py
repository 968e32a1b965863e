# ABOUTME: Four-step job card entry workflow for a credentialed web system
# ABOUTME: Logs in, opens the job card module, fills the card and checks the save result

from dataclasses import dataclass

from rpa_pipeline.core.models import Credentials, JobCardInfo, StepOutcome
from rpa_pipeline.workflow.engine import StepInputMissing, StepSpec, WorkflowDefinition
from rpa_pipeline.workflow.session import AutomationSession

WORKFLOW_NAME = "job-card-entry"

USERNAME = ("#username", "[name='username']", "[name='user']", "#user", "[placeholder*='username']")
PASSWORD = ("#password", "[name='password']", "[name='pass']", "#pass", "[type='password']")
LOGIN = ("#login", "button[type='submit']", "[type='submit']", ".login-button", "#loginBtn", "[value='Login']")
MODULE = ("#jobCard", "[data-module='job-card']", "text=Job Card")
SAVE = ("#save", "[type='submit']", ".save-button", "#saveBtn", "[value='Save']", "button:has-text('Save')")
SUCCESS = (".success", ".alert-success", "#success-message")
ERROR = (".error", ".alert-error", "#error-message")


@dataclass(frozen=True)
class JobCardInput:
    credentials: Credentials
    job_card: JobCardInfo


def form_selectors(field_name: str) -> tuple[str, ...]:
    return (
        f"#{field_name}",
        f"[name='{field_name}']",
        f"[id*='{field_name}']",
        f"[name*='{field_name}']",
        f"[placeholder*='{field_name}']",
    )


async def login(session: AutomationSession, credentials: Credentials) -> StepOutcome:
    if not credentials.username or not credentials.password:
        raise StepInputMissing("Username and password are required to log in")
    if credentials.system_url:
        session.base_url = credentials.system_url
    await session.goto(session.base_url)
    await session.fill_first(USERNAME, credentials.username)
    await session.fill_first(PASSWORD, credentials.password)
    await session.click_first(LOGIN)
    return StepOutcome(success=True, message=f"Logged in as {credentials.username}")


async def navigate_module(session: AutomationSession, _payload) -> StepOutcome:
    used = await session.click_first(MODULE)
    return StepOutcome(success=True, message=f"Job card module opened via {used}")


async def fill_form(session: AutomationSession, card: JobCardInfo) -> StepOutcome:
    values = {
        "jobNumber": card.job_number,
        "description": card.description,
        "customerName": card.customer_name,
        "estimatedCost": None if card.estimated_cost is None else f"{card.estimated_cost:.2f}",
    }
    filled = []
    for field_name, value in values.items():
        if value is None:
            continue
        selectors = form_selectors(field_name)
        if await session.is_present(selectors):
            await session.fill_first(selectors, value)
            filled.append(field_name)
    if "jobNumber" not in filled:
        return StepOutcome(success=False, message="Job number field not found")
    return StepOutcome(success=True, message=f"Filled {', '.join(filled)}")


async def validate(session: AutomationSession, _payload) -> StepOutcome:
    await session.click_first(SAVE)
    error = await session.read_text(ERROR)
    if error:
        return StepOutcome(success=False, message=f"System rejected the job card: {error.strip()}")
    success = await session.read_text(SUCCESS)
    return StepOutcome(success=True, message=(success or "Job card saved").strip())


def build_job_card_workflow() -> WorkflowDefinition:
    def credentials(p: JobCardInput) -> Credentials:
        return p.credentials

    def card(p: JobCardInput) -> JobCardInfo:
        return p.job_card

    return WorkflowDefinition(
        name=WORKFLOW_NAME,
        steps=(
            StepSpec(1, "login", "Log in to the target system", login, credentials),
            StepSpec(2, "navigate_module", "Open the job card module", navigate_module),
            StepSpec(3, "fill_form", "Fill the job card form", fill_form, card),
            StepSpec(4, "validate", "Save and confirm the job card", validate),
        ),
    )
