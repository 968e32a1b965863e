# ABOUTME: Builds typed payloads from message bodies using labeled-field lookups
# ABOUTME: Credentials and job card are always attempted, the domain payload follows the label

from rpa_pipeline.core.models import (
    CompanyLogin,
    CostingPayload,
    CredentialPayload,
    Credentials,
    EstimationPayload,
    ExtractionOutcome,
    GenericPayload,
    JobCardInfo,
    JobCardPayload,
    JobDetails,
    JobSize,
    JobType,
    Material,
    PrintingDetails,
    UserLogin,
    WastageFinishing,
)
from rpa_pipeline.extraction.fields import (
    find_amounts,
    find_field,
    find_field_after,
    first_token,
    parse_amount,
    parse_int,
)
from rpa_pipeline.utils.logging import get_logger


class Extractor:
    """Pure, lenient extraction; the same text always yields the same outcome."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def extract(self, text: str, label: str) -> ExtractionOutcome:
        """Run every extractor for a message body classified as label."""
        outcome = ExtractionOutcome(
            credentials=self.extract_credentials(text),
            job_card=self.extract_job_card(text),
            payload=self.extract_domain_payload(text, label),
        )
        self.logger.debug(
            "Extraction complete",
            label=label,
            payload_kind=outcome.payload.kind,
            has_credentials=not outcome.credentials.is_empty,
            has_job_card=outcome.job_card is not None,
        )
        return outcome

    def extract_credentials(self, text: str) -> Credentials:
        text = text or ""
        url = find_field(text, "url", "link", "system")
        return Credentials(
            username=first_token(find_field(text, "username", "user", "login")),
            password=first_token(find_field(text, "password", "pass", "pwd")),
            system_url=url if url and url.lower().startswith(("http://", "https://")) else None,
        )

    def extract_job_card(self, text: str) -> JobCardInfo | None:
        text = text or ""
        job_number = first_token(find_field(text, "job number", "job id", "job card"))
        if not job_number:
            return None
        return JobCardInfo(
            job_number=job_number,
            description=find_field(text, "description", "desc") or None,
            customer_name=find_field(text, "customer", "client") or None,
            estimated_cost=parse_amount(find_field(text, "cost", "amount", "price")),
        )

    def extract_domain_payload(self, text: str, label: str):
        text = text or ""
        try:
            job_type = JobType(label)
        except ValueError:
            return GenericPayload()

        if job_type is JobType.ERP_ESTIMATION:
            return self.extract_estimation(text)
        if job_type is JobType.JOB_CARD_ENTRY:
            return JobCardPayload(job_card=self.extract_job_card(text))
        if job_type is JobType.CREDENTIAL_UPDATE:
            return CredentialPayload(credentials=self.extract_credentials(text))
        if job_type is JobType.COSTING_REQUEST:
            return CostingPayload(amounts=find_amounts(text))
        return GenericPayload()

    def extract_estimation(self, text: str) -> EstimationPayload:
        return EstimationPayload(
            company_login=_company_login(text),
            user_login=_user_login(text),
            job_details=_job_details(text),
            job_size=_job_size(text),
            material=_material(text),
            printing=_printing(text),
            wastage_finishing=_wastage_finishing(text),
        )


def _company_login(text: str) -> CompanyLogin | None:
    name = find_field(text, "company name")
    password = find_field_after(text, "company log-in", "password")
    if not name or not password:
        return None
    return CompanyLogin(company_name=name, password=password)


def _user_login(text: str) -> UserLogin | None:
    username = find_field(text, "username")
    password = find_field_after(text, "user log-in", "password")
    if not username or not password:
        return None
    return UserLogin(username=username, password=password)


def _job_details(text: str) -> JobDetails | None:
    client = find_field(text, "client")
    content = find_field(text, "content")
    quantity = find_field(text, "quantity")
    if client is None and content is None and quantity is None:
        return None
    return JobDetails(client=client or "", content=content or "", quantity=parse_int(quantity))


def _job_size(text: str) -> JobSize | None:
    height = find_field(text, "height")
    length = find_field(text, "length")
    width = find_field(text, "width")
    if height is None and length is None and width is None:
        return None
    return JobSize(
        height=parse_int(height),
        length=parse_int(length),
        width=parse_int(width),
        o_flap=parse_int(find_field(text, "o.flap", "o flap", "oflap")),
        p_flap=parse_int(find_field(text, "p.flap", "p flap", "pflap")),
    )


def _material(text: str) -> Material | None:
    fields = {name: find_field(text, name) for name in ("quality", "gsm", "mill", "finish")}
    if all(value is None for value in fields.values()):
        return None
    return Material(
        quality=fields["quality"] or "",
        gsm=parse_int(fields["gsm"]),
        mill=fields["mill"] or "",
        finish=fields["finish"] or "",
    )


def _printing(text: str) -> PrintingDetails | None:
    front = find_field(text, "front colors", "front colours")
    back = find_field(text, "back colors", "back colours")
    if front is None and back is None:
        return None
    return PrintingDetails(
        front_colors=parse_int(front),
        back_colors=parse_int(back),
        special_front=parse_int(find_field(text, "special front")),
        special_back=parse_int(find_field(text, "special back")),
        style=find_field(text, "style") or "",
        plate=find_field(text, "plate") or "",
    )


def _wastage_finishing(text: str) -> WastageFinishing:
    return WastageFinishing(
        make_ready_sheets=parse_int(find_field(text, "make ready sheets")),
        wastage_type=find_field(text, "wastage type") or "",
        grain_direction=find_field(text, "grain direction") or "",
        online_coating=find_field(text, "online coating") or "",
        trimming=find_field(text, "trimming (t/b/l/r)", "trimming") or "",
        striping=find_field(text, "striping (t/b/l/r)", "striping") or "",
    )
