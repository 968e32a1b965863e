# ABOUTME: Sixteen-step estimation workflow for the ERP costing screens
# ABOUTME: Each step drives the session with selector fallbacks and reports StepOutcome

from functools import partial

from rpa_pipeline.core.models import (
    CompanyLogin,
    EstimationPayload,
    JobDetails,
    StepOutcome,
    UserLogin,
    WastageFinishing,
)
from rpa_pipeline.workflow.engine import StepInputMissing, StepSpec, WorkflowDefinition
from rpa_pipeline.workflow.processes import search_process, select_processes
from rpa_pipeline.workflow.session import AutomationSession, SelectorNotFoundError

WORKFLOW_NAME = "erp-estimation"

COMPANY_NAME = ("#inputEmail", "[name='inputEmail']", "[placeholder='Company Name']")
COMPANY_PASSWORD = ("#inputPassword", "[name='inputPassword']", "[type='password']")
COMPANY_SUBMIT = ("#BtnLogin", "[name='BtnLogin']", "[value='Login']")
FINANCIAL_YEAR = ("#SelFYearList", "[name='cars']")
USERNAME = ("#txt_user", "[name='txt_user']", "[placeholder='Username']")
USER_PASSWORD = ("#txt_password", "[name='txt_password']", "[placeholder='Password']")
USER_SUBMIT = ("#btnlogin", "[name='btnlogin']", "[value='Sign in']")
MENU = ("#Customleftsidebar1_Span", ".fa-bars", "i.fa.fa-bars")
ESTIMATION_LINK = (
    "a[href='DYnamicQty.aspx']",
    "a[href*='DYnamicQty']",
    "text=Estimation",
    ".nav-item a:has-text('Estimation')",
)
TOUR_SKIP = (".introjs-skipbutton", "a[role='button']:has-text('Skip')")
POPUP_CLOSE = (
    "span[onclick='closeNavLeft()']",
    ".fa-arrow-left",
    "i.fa.fa-arrow-left",
    "[onclick*='closeNavLeft']",
)
ADD_QUANTITY = (
    "#Add_Quantity_Button",
    "a.myButton:has-text('Add Quantity')",
    ".myButton:has-text('Add Quantity')",
)
QUANTITY = ("#txtqty1", "input[id='txtqty1']", "[placeholder='Enter Qty1']", ".forTextBox[placeholder*='Qty']")
ADD_CONTENT = ("#Add_Content_Button", "a.myButton:has-text('Add Content')", "[data-target='#largeModal']")
PLAN = ("#Plan41", "#Plan21", "#Plan31", "#Plan11", "#Plan51", ".planWindow.planme_btn")
PROCESS_SEARCH = ("#txtProcessSearch", "input[placeholder*='Process']", ".process-search input")
PROCESS_ADD = (".process-add", ".add-process", "button:has-text('+')")
SHOW_COST = ("button:has-text('Show Cost')", "#showCost", ".show-cost-button", "[data-action='show-cost']")
COST_SUMMARY = ("#costSummary", ".cost-summary", "#lblTotalCost")
SIDES = ("top", "bottom", "left", "right")

DISMISS_TOUR_SCRIPT = """
document.querySelectorAll(
  '.introjs-overlay, .introjs-tooltipReferenceLayer, .introjs-tooltip, .introjs-helperLayer'
).forEach(el => el.remove());
"""


def content_selectors(content: str) -> tuple[str, ...]:
    return (
        f".addcontentsize[title='{content}']",
        f"#AllContents .addcontentsize[title='{content}']",
        f".addcontentsize:has-text('{content}')",
    )


def field_selectors(field_id: str, name: str) -> tuple[str, ...]:
    return (f"#{field_id}", f"[name='{name.lower()}']")


def _require(value, what: str):
    if value is None:
        raise StepInputMissing(f"{what} not provided in the request")
    return value


async def navigate(session: AutomationSession, _payload) -> StepOutcome:
    await session.goto(session.base_url)
    return StepOutcome(success=True, message=f"Opened {session.base_url}")


async def company_login(session: AutomationSession, login: CompanyLogin | None) -> StepOutcome:
    login = _require(login, "Company login details")
    await session.fill_first(COMPANY_NAME, login.company_name)
    await session.fill_first(COMPANY_PASSWORD, login.password)
    await session.click_first(COMPANY_SUBMIT)
    return StepOutcome(success=True, message=f"Company login submitted for {login.company_name}")


async def user_login(financial_year: str, session: AutomationSession, login: UserLogin | None) -> StepOutcome:
    login = _require(login, "User login details")
    if await session.is_present(FINANCIAL_YEAR):
        await session.select_first(FINANCIAL_YEAR, financial_year)
    await session.fill_first(USERNAME, login.username)
    await session.fill_first(USER_PASSWORD, login.password)
    await session.click_first(USER_SUBMIT)
    return StepOutcome(success=True, message=f"User login submitted for {login.username}")


async def navigate_estimation(session: AutomationSession, _payload) -> StepOutcome:
    await session.click_first(MENU)
    await session.click_first(ESTIMATION_LINK)
    return StepOutcome(success=True, message="Estimation module opened")


async def handle_tour(session: AutomationSession, _payload) -> StepOutcome:
    if await session.is_present(TOUR_SKIP):
        await session.click_first(TOUR_SKIP)
    await session.evaluate(DISMISS_TOUR_SCRIPT)
    return StepOutcome(success=True, message="Tour guide dismissed")


async def close_popup(session: AutomationSession, _payload) -> StepOutcome:
    if not await session.is_present(POPUP_CLOSE):
        return StepOutcome(success=True, message="No quotation popup open")
    await session.click_first(POPUP_CLOSE)
    return StepOutcome(success=True, message="Quotation popup closed")


async def add_quantity(session: AutomationSession, _payload) -> StepOutcome:
    await session.click_first(ADD_QUANTITY)
    return StepOutcome(success=True, message="Quantity row added")


async def enter_quantity(session: AutomationSession, details: JobDetails | None) -> StepOutcome:
    details = _require(details, "Job details")
    if details.quantity <= 0:
        return StepOutcome(success=False, message="Quantity missing or zero")
    await session.fill_first(QUANTITY, str(details.quantity))
    return StepOutcome(success=True, message=f"Quantity {details.quantity} entered")


async def add_content(session: AutomationSession, _payload) -> StepOutcome:
    await session.click_first(ADD_CONTENT)
    return StepOutcome(success=True, message="Content picker opened")


async def select_content(session: AutomationSession, details: JobDetails | None) -> StepOutcome:
    details = _require(details, "Job details")
    if not details.content:
        return StepOutcome(success=False, message="Content type missing")
    await session.click_first(content_selectors(details.content))
    return StepOutcome(success=True, message=f"Content '{details.content}' selected")


async def click_plan(session: AutomationSession, _payload) -> StepOutcome:
    used = await session.click_first(PLAN)
    return StepOutcome(success=True, message=f"Plan window opened via {used}")


async def fill_size(session: AutomationSession, payload: EstimationPayload) -> StepOutcome:
    size = _require(payload.job_size, "Job size")
    values = {
        ("height", "Height"): size.height,
        ("length", "Length"): size.length,
        ("width", "Width"): size.width,
        ("oflap", "OFlap"): size.o_flap,
        ("pflap", "PFlap"): size.p_flap,
    }
    filled = await _fill_present(session, {key: str(value) for key, value in values.items()})
    return StepOutcome(success=bool(filled), message=f"Filled size fields: {', '.join(filled) or 'none'}")


async def fill_details(session: AutomationSession, payload: EstimationPayload) -> StepOutcome:
    inputs: dict[tuple[str, str], str] = {}
    choices: dict[tuple[str, str], str] = {}
    if payload.material:
        choices[("quality", "Quality")] = payload.material.quality
        inputs[("gsm", "GSM")] = str(payload.material.gsm)
        choices[("mill", "Mill")] = payload.material.mill
        choices[("finish", "Finish")] = payload.material.finish
    if payload.printing:
        inputs[("frontColors", "FrontColors")] = str(payload.printing.front_colors)
        inputs[("backColors", "BackColors")] = str(payload.printing.back_colors)
        inputs[("specialFront", "SpecialFront")] = str(payload.printing.special_front)
        inputs[("specialBack", "SpecialBack")] = str(payload.printing.special_back)
        choices[("style", "Style")] = payload.printing.style
        choices[("plate", "Plate")] = payload.printing.plate
    if not inputs and not choices and payload.wastage_finishing == WastageFinishing():
        raise StepInputMissing("Material, printing and wastage details not provided in the request")
    wastage_inputs, wastage_choices = _wastage_fields(payload.wastage_finishing)
    inputs.update(wastage_inputs)
    choices.update(wastage_choices)

    filled = await _fill_present(session, inputs)
    filled += await _fill_present(session, {k: v for k, v in choices.items() if v}, select=True)
    return StepOutcome(success=bool(filled), message=f"Filled detail fields: {', '.join(filled) or 'none'}")


def _sides(value: str) -> list[str]:
    """Split a T/B/L/R value; anything but four parts means no margins."""
    parts = [part.strip() for part in value.split("/")] if value else []
    return parts if len(parts) == 4 else ["0", "0", "0", "0"]


def _wastage_fields(
    wastage: WastageFinishing,
) -> tuple[dict[tuple[str, str], str], dict[tuple[str, str], str]]:
    inputs = {("PlanMakeReadyWastage", "MakeReady"): str(wastage.make_ready_sheets)}
    for prefix, value in (("Trimming", wastage.trimming), ("Striping", wastage.striping)):
        for side, amount in zip(SIDES, _sides(value), strict=True):
            inputs[(f"{prefix}{side}", f"{prefix}{side.title()}")] = amount
    choices = {
        ("PlanWastageType", "WastageType"): wastage.wastage_type,
        ("PlanPrintingGrain", "GrainDirection"): wastage.grain_direction,
        ("PlanOnlineCoating", "OnlineCoating"): wastage.online_coating,
    }
    return inputs, choices


async def add_processes(session: AutomationSession, details: JobDetails | None) -> StepOutcome:
    details = _require(details, "Job details")
    selection = select_processes(details.content, details.client)
    added, missing = [], []
    for process in selection.all:
        # The ERP only knows catalogue names
        entry = search_process(process.name)
        if entry is None:
            missing.append(process.name)
            continue
        try:
            await session.fill_first(PROCESS_SEARCH, entry.name)
            await session.click_first(PROCESS_ADD)
        except SelectorNotFoundError:
            missing.append(entry.name)
            continue
        added.append(entry.name)
    message = f"Added processes: {', '.join(added) or 'none'}"
    if missing:
        message += f"; not added: {', '.join(missing)}"
    return StepOutcome(success=bool(added), message=message)


async def show_cost(session: AutomationSession, _payload) -> StepOutcome:
    await session.click_first(SHOW_COST)
    return StepOutcome(success=True, message="Cost calculation requested")


async def capture_results(session: AutomationSession, _payload) -> StepOutcome:
    summary = await session.read_text(COST_SUMMARY)
    if summary:
        return StepOutcome(success=True, message=f"Cost summary: {summary.strip()}")
    return StepOutcome(success=True, message="Cost page ready for capture")


async def _fill_present(
    session: AutomationSession, values: dict[tuple[str, str], str], *, select: bool = False
) -> list[str]:
    """Fill the fields that exist on the page, returning the labels filled."""
    filled = []
    for (field_id, label), value in values.items():
        selectors = field_selectors(field_id, label)
        if not await session.is_present(selectors):
            continue
        if select:
            await session.select_first(selectors, value)
        else:
            await session.fill_first(selectors, value)
        filled.append(label)
    return filled


def build_estimation_workflow(financial_year: str = "2024-2025") -> WorkflowDefinition:
    """Step table for an estimation request; each step gets only its slice of the payload."""

    def company(p: EstimationPayload) -> CompanyLogin | None:
        return p.company_login

    def user(p: EstimationPayload) -> UserLogin | None:
        return p.user_login

    def details(p: EstimationPayload) -> JobDetails | None:
        return p.job_details

    return WorkflowDefinition(
        name=WORKFLOW_NAME,
        steps=(
            StepSpec(1, "navigate", "Open the ERP entry page", navigate),
            StepSpec(2, "company_login", "Log in with company credentials", company_login, company),
            StepSpec(3, "user_login", "Log in with user credentials", partial(user_login, financial_year), user),
            StepSpec(4, "navigate_estimation", "Open the estimation module", navigate_estimation),
            StepSpec(5, "handle_tour", "Dismiss the tour guide", handle_tour),
            StepSpec(6, "close_popup", "Close the quotation popup", close_popup),
            StepSpec(7, "add_quantity", "Add a quantity row", add_quantity),
            StepSpec(8, "enter_quantity", "Enter the order quantity", enter_quantity, details),
            StepSpec(9, "add_content", "Open the content picker", add_content),
            StepSpec(10, "select_content", "Select the content type", select_content, details),
            StepSpec(11, "click_plan", "Open the plan window", click_plan),
            StepSpec(12, "fill_size", "Fill the job size", fill_size),
            StepSpec(13, "fill_details", "Fill material, printing and wastage details", fill_details),
            StepSpec(14, "add_processes", "Add finishing processes", add_processes, details),
            StepSpec(15, "show_cost", "Calculate the cost", show_cost),
            StepSpec(16, "capture_results", "Capture the costing results", capture_results),
        ),
    )
