# ABOUTME: Business domain models for the core layer - jobs, payloads, steps and results
# ABOUTME: Pydantic value objects shared by extraction, workflow, persistence and channels

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Returns the current UTC timestamp."""

    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes, everything stored is UTC."""

    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class JobStatus(str, Enum):
    """Lifecycle states of a job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETRYING = "retrying"


class JobType(str, Enum):
    """Classification labels that route a job to its handler."""

    ERP_ESTIMATION = "erp-estimation-workflow"
    JOB_CARD_ENTRY = "job-card-entry"
    CREDENTIAL_UPDATE = "credential-update"
    COSTING_REQUEST = "costing-request"
    GENERAL_AUTOMATION = "general-automation"
    UNKNOWN = "unknown"


class StepStatus(str, Enum):
    """Execution state of a single workflow step."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ClassificationResult(BaseModel):
    """Label assigned to an inbound message with the evidence behind it."""

    label: str = Field(description="Job type label, 'unknown' when nothing matched")
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence score for the label (0.0-1.0)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Method and matched signals")

    @property
    def method(self) -> str:
        return str(self.metadata.get("method", "unknown"))


# --- Structured payload groups ---------------------------------------------------


class CompanyLogin(BaseModel):
    company_name: str = ""
    password: str = ""


class UserLogin(BaseModel):
    username: str = ""
    password: str = ""


class JobDetails(BaseModel):
    client: str = ""
    content: str = ""
    quantity: int = 0


class JobSize(BaseModel):
    """Carton dimensions in millimetres."""

    height: int = 0
    length: int = 0
    width: int = 0
    o_flap: int = 0
    p_flap: int = 0


class Material(BaseModel):
    quality: str = ""
    gsm: int = 0
    mill: str = ""
    finish: str = ""


class PrintingDetails(BaseModel):
    front_colors: int = 0
    back_colors: int = 0
    special_front: int = 0
    special_back: int = 0
    style: str = ""
    plate: str = ""


class WastageFinishing(BaseModel):
    make_ready_sheets: int = 0
    wastage_type: str = ""
    grain_direction: str = ""
    online_coating: str = ""
    trimming: str = ""
    striping: str = ""


class Credentials(BaseModel):
    """Login details found anywhere in a message."""

    username: str | None = None
    password: str | None = None
    system_url: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.username or self.password or self.system_url)


class JobCardInfo(BaseModel):
    """Job card reference; only built when a job number is present."""

    job_number: str
    description: str | None = None
    customer_name: str | None = None
    estimated_cost: Decimal | None = None


# --- Domain payloads (discriminated on kind) -------------------------------------


class EstimationPayload(BaseModel):
    """Estimation request data, each group present only when the message carried it."""

    kind: Literal["estimation"] = "estimation"
    company_login: CompanyLogin | None = None
    user_login: UserLogin | None = None
    job_details: JobDetails | None = None
    job_size: JobSize | None = None
    material: Material | None = None
    printing: PrintingDetails | None = None
    wastage_finishing: WastageFinishing = Field(default_factory=WastageFinishing)


class JobCardPayload(BaseModel):
    kind: Literal["job_card"] = "job_card"
    job_card: JobCardInfo | None = None


class CredentialPayload(BaseModel):
    kind: Literal["credentials"] = "credentials"
    credentials: Credentials = Field(default_factory=Credentials)


class CostingPayload(BaseModel):
    kind: Literal["costing"] = "costing"
    amounts: list[Decimal] = Field(default_factory=list)


class GenericPayload(BaseModel):
    kind: Literal["generic"] = "generic"


DomainPayload = Annotated[
    EstimationPayload | JobCardPayload | CredentialPayload | CostingPayload | GenericPayload,
    Field(discriminator="kind"),
]


class ExtractionOutcome(BaseModel):
    """Everything extracted from one message body for a given label."""

    credentials: Credentials
    job_card: JobCardInfo | None = None
    payload: DomainPayload = Field(default_factory=GenericPayload)


# --- Workflow steps and results --------------------------------------------------


class StepOutcome(BaseModel):
    """What a step executor reports back to the engine."""

    success: bool
    message: str = ""


class WorkflowStep(BaseModel):
    """Record of one step of a workflow run, mutated once when its executor runs."""

    step_number: int = Field(ge=1)
    description: str
    action: str
    status: StepStatus = StepStatus.NOT_STARTED
    is_completed: bool = False
    message: str | None = None
    error_message: str | None = None
    completed_at: datetime | None = None

    def mark_running(self) -> None:
        self.status = StepStatus.RUNNING

    def mark_completed(self, message: str = "") -> None:
        self.status = StepStatus.COMPLETED
        self.is_completed = True
        self.message = message or None
        self.completed_at = utcnow()

    def mark_failed(self, error: str) -> None:
        self.status = StepStatus.FAILED
        self.is_completed = False
        self.error_message = error
        self.completed_at = utcnow()


class WorkflowRunData(BaseModel):
    """Aggregated output of a fixed-sequence workflow run."""

    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    kind: Literal["workflow_run"] = "workflow_run"
    workflow: str
    steps: list[WorkflowStep] = Field(default_factory=list)
    completed_steps: int = 0
    total_steps: int = 0
    screenshot: bytes | None = Field(default=None, description="Final page capture (PNG)")
    screenshot_path: str | None = None


class CredentialUpdateData(BaseModel):
    """Credential update outcome; passwords are deliberately absent."""

    kind: Literal["credential_update"] = "credential_update"
    username: str | None = None
    system_url: str | None = None
    password_received: bool = False


class CostingData(BaseModel):
    kind: Literal["costing"] = "costing"
    amounts: list[Decimal] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class GeneralData(BaseModel):
    kind: Literal["general"] = "general"
    job_type: str
    summary: str = ""


ResultData = Annotated[
    WorkflowRunData | CredentialUpdateData | CostingData | GeneralData,
    Field(discriminator="kind"),
]


class ProcessingResult(BaseModel):
    """Outcome of executing one job, attached to the job and forwarded in its notification."""

    success: bool
    cancelled: bool = False
    message: str = ""
    errors: list[str] = Field(default_factory=list)
    data: ResultData | None = None
    processed_at: datetime = Field(default_factory=utcnow)

    @property
    def screenshot(self) -> bytes | None:
        if isinstance(self.data, WorkflowRunData):
            return self.data.screenshot
        return None


# --- Channel messages ------------------------------------------------------------


class InboundMessage(BaseModel):
    """Raw message as handed over by the mail transport."""

    message_id: str = Field(description="Transport identifier, used to drop redelivered duplicates")
    subject: str = ""
    sender: str = ""
    body: str = ""
    recipients: list[str] = Field(default_factory=list)
    received_at: datetime = Field(default_factory=utcnow)


class ExecutionRequest(BaseModel):
    """Asks the execution stage to run a job."""

    job_id: UUID
    retry_count: int = 0


class JobNotification(BaseModel):
    """Emitted exactly once per terminal job transition."""

    job_id: UUID
    status: JobStatus
    subject: str = ""
    job_type: str | None = None
    result: ProcessingResult | None = None
    recipient_email: str
