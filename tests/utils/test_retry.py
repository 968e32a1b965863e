# ABOUTME: Tests for the pipeline error taxonomy and transport retry logic using tenacity
# ABOUTME: Validates transient-error retries, exhaustion handling and retry configuration

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from rpa_pipeline.utils.retry import (
    JobNotFoundError,
    MessageDecodeError,
    PipelineError,
    TransportError,
    configure_transport_retry,
    get_transport_retry_status,
    transport_retry,
)


def _operational_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.fixture(autouse=True)
def fast_retries():
    """Keep retry waits out of the test run and restore defaults afterwards."""
    configure_transport_retry(max_attempts=3, min_wait=0, max_wait=0)
    yield
    configure_transport_retry()


class TestPipelineErrors:
    """Test pipeline-specific exception types."""

    def test_error_hierarchy(self):
        """Test that all pipeline errors inherit from PipelineError."""
        assert issubclass(TransportError, PipelineError)
        assert issubclass(MessageDecodeError, PipelineError)
        assert issubclass(JobNotFoundError, PipelineError)

    def test_error_messages(self):
        assert str(TransportError("Channel store unreachable")) == "Channel store unreachable"


class TestRetryConfiguration:
    def test_configure_transport_retry(self):
        configure_transport_retry(max_attempts=5, min_wait=0.5, max_wait=4.0, multiplier=3.0)

        status = get_transport_retry_status()

        assert status == {"max_attempts": 5, "min_wait": 0.5, "max_wait": 4.0, "multiplier": 3.0}

    def test_status_is_a_copy(self):
        status = get_transport_retry_status()
        status["max_attempts"] = 99

        assert get_transport_retry_status()["max_attempts"] == 3


class TestTransportRetryDecorator:
    """Test the transport retry decorator functionality."""

    @pytest.mark.asyncio
    async def test_successful_function_runs_once(self):
        call_count = 0

        @transport_retry()
        async def successful_function():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await successful_function() == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        call_count = 0

        @transport_retry()
        async def flaky_function():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise _operational_error()
            return "recovered"

        assert await flaky_function() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_transport_error(self):
        call_count = 0

        @transport_retry(max_attempts=2)
        async def broken_function():
            nonlocal call_count
            call_count += 1
            raise _operational_error()

        with pytest.raises(TransportError, match="broken_function failed after retries") as exc_info:
            await broken_function()

        assert call_count == 2
        assert isinstance(exc_info.value.__cause__, OperationalError)

    @pytest.mark.asyncio
    async def test_non_transient_error_is_not_retried(self):
        call_count = 0

        @transport_retry()
        async def constraint_violation():
            nonlocal call_count
            call_count += 1
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(IntegrityError):
            await constraint_violation()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_value_errors_propagate_unchanged(self):
        @transport_retry()
        async def bad_input():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await bad_input()

    def test_wrapper_keeps_function_name(self):
        @transport_retry()
        async def named_function():
            return None

        assert named_function.__name__ == "named_function"


def test_app_context_applies_configured_retry_settings():
    from rpa_pipeline.config import Config
    from rpa_pipeline.core.context import AppContext

    config = Config(
        database_url="sqlite+aiosqlite:///:memory:", transport_retry_attempts=5, transport_retry_max_wait=1.0
    )

    AppContext.from_config(config)

    status = get_transport_retry_status()
    assert status["max_attempts"] == 5
    assert status["max_wait"] == 1.0
