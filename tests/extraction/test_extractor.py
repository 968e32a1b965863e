# ABOUTME: Tests for labeled-field extraction of credentials, job cards and estimation groups
# ABOUTME: Covers the indusweb scenario, section-scoped passwords and group presence rules

from decimal import Decimal

import pytest

from rpa_pipeline.core.models import (
    CompanyLogin,
    CostingPayload,
    CredentialPayload,
    EstimationPayload,
    GenericPayload,
    JobCardPayload,
    JobDetails,
    JobSize,
    JobType,
)
from rpa_pipeline.extraction.extractor import Extractor
from rpa_pipeline.extraction.fields import find_amounts, find_field, find_field_after, parse_amount, parse_int

JOB_CARD_BODY = """Hi team,

Job Number: JC-1001
Description: Folding cartons
Customer: Acme Ltd
Cost: $1,250.50

URL: https://erp.example.com/login
Username: bob
Password: s3cret
"""


@pytest.fixture
def extractor() -> Extractor:
    return Extractor()


class TestEstimationExtraction:
    def test_indusweb_scenario(self, extractor, estimation_body):
        payload = extractor.extract_estimation(estimation_body)

        assert payload.company_login == CompanyLogin(company_name="indusweb", password="123")
        assert payload.job_details == JobDetails(client="Akrati Offset", content="Reverse Tuck In", quantity=10000)

    def test_full_form_groups(self, extractor, estimation_body):
        payload = extractor.extract_estimation(estimation_body)

        assert payload.user_login is not None
        assert payload.user_login.username == "admin"
        assert payload.job_size == JobSize(height=100, length=150, width=50, o_flap=20, p_flap=15)
        assert payload.material is not None
        assert (payload.material.quality, payload.material.gsm, payload.material.mill) == ("SBS", 300, "ITC")
        assert payload.printing is not None
        assert payload.printing.front_colors == 4
        assert payload.printing.special_front == 1
        assert payload.printing.plate == "New"
        assert payload.wastage_finishing.make_ready_sheets == 100
        assert payload.wastage_finishing.grain_direction == "Length"
        assert payload.wastage_finishing.trimming == "5/5/5/5"

    def test_passwords_follow_their_section_header(self, extractor):
        body = (
            "Company Log-in:\nCompany Name: acme\nPassword: firstpw\n\n"
            "User Log-in:\nUsername: bob\nPassword: secondpw\n"
        )

        outcome = extractor.extract(body, JobType.ERP_ESTIMATION.value)

        assert outcome.payload.company_login.password == "firstpw"
        assert outcome.payload.user_login.password == "secondpw"
        # Plain credential lookup keeps the first occurrence
        assert outcome.credentials.password == "firstpw"

    def test_job_size_absent_without_dimensions(self, extractor):
        payload = extractor.extract_estimation("O.Flap: 20\nP.Flap: 10")

        assert payload.job_size is None

    def test_job_size_present_with_one_dimension(self, extractor):
        payload = extractor.extract_estimation("Width: 30")

        assert payload.job_size == JobSize(width=30)

    def test_missing_groups_are_none_and_wastage_defaults(self, extractor):
        payload = extractor.extract_estimation("nothing useful here")

        assert payload.company_login is None
        assert payload.user_login is None
        assert payload.job_details is None
        assert payload.material is None
        assert payload.printing is None
        assert payload.wastage_finishing.make_ready_sheets == 0
        assert payload.wastage_finishing.wastage_type == ""

    def test_company_login_needs_password(self, extractor):
        payload = extractor.extract_estimation("Company Log-in:\nCompany Name: acme\n")

        assert payload.company_login is None

    def test_extraction_is_idempotent(self, extractor, estimation_body):
        first = extractor.extract(estimation_body, JobType.ERP_ESTIMATION.value)
        second = extractor.extract(estimation_body, JobType.ERP_ESTIMATION.value)

        assert first == second
        assert first.model_dump_json() == second.model_dump_json()


class TestCredentialsAndJobCard:
    def test_job_card_fields(self, extractor):
        card = extractor.extract_job_card(JOB_CARD_BODY)

        assert card is not None
        assert card.job_number == "JC-1001"
        assert card.description == "Folding cartons"
        assert card.customer_name == "Acme Ltd"
        assert card.estimated_cost == Decimal("1250.50")

    def test_no_job_number_means_no_job_card(self, extractor):
        assert extractor.extract_job_card("Description: something\nCustomer: Acme") is None

    def test_credentials(self, extractor):
        credentials = extractor.extract_credentials(JOB_CARD_BODY)

        assert credentials.username == "bob"
        assert credentials.password == "s3cret"
        assert credentials.system_url == "https://erp.example.com/login"

    def test_non_http_system_value_is_not_a_url(self, extractor):
        credentials = extractor.extract_credentials("System: the new one\nUsername: bob")

        assert credentials.system_url is None
        assert credentials.username == "bob"

    def test_credentials_take_the_first_listed_login(self, extractor):
        credentials = extractor.extract_credentials("Login: bob\nPassword: one\nUsername: alice")

        assert credentials.username == "bob"

    def test_empty_text(self, extractor):
        credentials = extractor.extract_credentials("")

        assert credentials.is_empty


class TestDomainPayload:
    def test_payload_follows_label(self, extractor):
        assert isinstance(
            extractor.extract_domain_payload(JOB_CARD_BODY, JobType.JOB_CARD_ENTRY.value), JobCardPayload
        )
        assert isinstance(
            extractor.extract_domain_payload(JOB_CARD_BODY, JobType.CREDENTIAL_UPDATE.value), CredentialPayload
        )
        assert isinstance(
            extractor.extract_domain_payload(JOB_CARD_BODY, JobType.ERP_ESTIMATION.value), EstimationPayload
        )
        assert isinstance(
            extractor.extract_domain_payload(JOB_CARD_BODY, JobType.GENERAL_AUTOMATION.value), GenericPayload
        )

    def test_unrecognised_label_gets_generic_payload(self, extractor):
        assert isinstance(extractor.extract_domain_payload("text", "not-a-label"), GenericPayload)

    def test_costing_amounts(self, extractor):
        payload = extractor.extract_domain_payload(
            "Total: $500 and another $250.75 for extras", JobType.COSTING_REQUEST.value
        )

        assert isinstance(payload, CostingPayload)
        assert payload.amounts == [Decimal("500"), Decimal("250.75")]


class TestFieldPrimitives:
    def test_equals_separator_and_case(self):
        assert find_field("QUANTITY = 500", "quantity") == "500"

    def test_first_occurrence_wins(self):
        assert find_field("Client: A\nClient: B", "client") == "A"

    def test_earliest_label_in_text_wins(self):
        text = "Login: bob\nPlease use the account below.\nUsername: alice"

        assert find_field(text, "username", "user", "login") == "bob"

    def test_label_must_start_at_word_boundary(self):
        assert find_field("Subclient: A", "client") is None

    def test_find_field_after_missing_header(self):
        assert find_field_after("Password: x", "user log-in", "password") is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("10,000 sheets", 10000), ("42", 42), ("abc", 0), ("", 0), (None, 0)],
    )
    def test_parse_int(self, value, expected):
        assert parse_int(value) == expected

    def test_parse_amount(self):
        assert parse_amount("$ 1,200.00") == Decimal("1200.00")
        assert parse_amount("n/a") is None

    def test_find_amounts_ignores_bare_numbers(self):
        assert find_amounts("Order 12 boxes, price: 40") == [Decimal("40")]
