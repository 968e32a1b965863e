# ABOUTME: Shared fixtures - in-memory database, application context and sample messages
# ABOUTME: Every async database test runs against a fresh StaticPool SQLite engine

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession

from rpa_pipeline.config import Config
from rpa_pipeline.core.context import AppContext
from rpa_pipeline.core.models import InboundMessage
from rpa_pipeline.persistence.manager import DatabaseManager
from rpa_pipeline.queue.broker import MessageBroker

ESTIMATION_SUBJECT = "ERP ESTIMATION - Test Request"

ESTIMATION_BODY = """Please prepare an estimate for the job below.

Company Log-in:
Company Name: indusweb
Password: 123

User Log-in:
Username: admin
Password: 123

Job Details:
Client: Akrati Offset
Content: Reverse Tuck In
Quantity: 10000

Job Size (mm):
Height: 100
Length: 150
Width: 50
O.Flap: 20
P.Flap: 15

Material:
Quality: SBS
GSM: 300
Mill: ITC
Finish: Gloss

Printing:
Front Colors: 4
Back Colors: 0
Special Front: 1
Special Back: 0
Style: Normal
Plate: New

Wastage & Finishing:
Make Ready Sheets: 100
Wastage Type: Standard
Grain Direction: Length
Online Coating: Varnish
Trimming (T/B/L/R): 5/5/5/5
Striping (T/B/L/R): 2/2/2/2
"""


@pytest_asyncio.fixture
async def temp_db() -> DatabaseManager:
    """Provide an in-memory database manager for async tests."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    db = DatabaseManager("sqlite+aiosqlite:///:memory:")
    db.engine = engine
    db.async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def test_config(tmp_path) -> Config:
    return Config(
        database_url="sqlite+aiosqlite:///:memory:",
        poll_interval_seconds=0.01,
        lease_seconds=60,
        max_retries=3,
        retry_backoff_seconds=0,
        step_delay_seconds=0,
        screenshot_dir=tmp_path / "screenshots",
    )


@pytest_asyncio.fixture
async def app_ctx(temp_db: DatabaseManager, test_config: Config) -> AppContext:
    broker = MessageBroker(temp_db, lease_seconds=test_config.lease_seconds, poll_interval=0.01)
    ctx = AppContext(config=test_config, db=temp_db, broker=broker)
    await broker.declare_channels()
    return ctx


@pytest.fixture
def estimation_message() -> InboundMessage:
    return InboundMessage(
        message_id="<estimation-1@mail.example.com>",
        subject=ESTIMATION_SUBJECT,
        sender="planner@example.com",
        body=ESTIMATION_BODY,
        recipients=["rpa@example.com"],
    )


@pytest.fixture
def estimation_body() -> str:
    return ESTIMATION_BODY


@pytest.fixture
def estimation_subject() -> str:
    return ESTIMATION_SUBJECT
