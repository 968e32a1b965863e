# ABOUTME: Tests for the database-backed message broker
# ABOUTME: Ordering, leases, acknowledgements, dead-lettering and transactional publish

from __future__ import annotations

import asyncio
import uuid

import pytest
import pytest_asyncio
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError

from rpa_pipeline.core.models import ExecutionRequest
from rpa_pipeline.persistence.manager import DatabaseManager
from rpa_pipeline.persistence.models import Job
from rpa_pipeline.queue.broker import MessageBroker
from rpa_pipeline.queue.channels import DEAD_LETTER, JOB_EXECUTION, NOTIFICATIONS
from rpa_pipeline.utils.retry import TransportError


class Ping(BaseModel):
    value: int


@pytest_asyncio.fixture
async def broker(temp_db: DatabaseManager) -> MessageBroker:
    broker = MessageBroker(temp_db, lease_seconds=60, poll_interval=0.01)
    await broker.declare_channels()
    return broker


@pytest.mark.asyncio
async def test_publish_then_fetch_returns_envelope(broker: MessageBroker):
    message_id = await broker.publish(JOB_EXECUTION, Ping(value=1))

    envelope = await broker.fetch(JOB_EXECUTION)

    assert envelope is not None
    assert envelope.message_id == message_id
    assert envelope.channel == JOB_EXECUTION
    assert envelope.persistent is True
    assert envelope.delivery_count == 1
    assert envelope.decode(Ping) == Ping(value=1)


@pytest.mark.asyncio
async def test_fetch_empty_channel(broker: MessageBroker):
    assert await broker.fetch(NOTIFICATIONS) is None


@pytest.mark.asyncio
async def test_priority_then_insertion_order(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1), priority=5)
    await broker.publish(JOB_EXECUTION, Ping(value=2), priority=1)
    await broker.publish(JOB_EXECUTION, Ping(value=3), priority=5)

    values = []
    while (envelope := await broker.fetch(JOB_EXECUTION)) is not None:
        values.append(envelope.decode(Ping).value)
        await broker.ack(envelope)

    assert values == [2, 1, 3]


@pytest.mark.asyncio
async def test_leased_message_is_not_fetched_twice(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))

    first = await broker.fetch(JOB_EXECUTION)
    second = await broker.fetch(JOB_EXECUTION)

    assert first is not None
    assert second is None


@pytest.mark.asyncio
async def test_expired_lease_makes_message_redeliverable(temp_db: DatabaseManager):
    broker = MessageBroker(temp_db, lease_seconds=0, poll_interval=0.01)
    await broker.declare_channels()
    await broker.publish(JOB_EXECUTION, Ping(value=7))

    first = await broker.fetch(JOB_EXECUTION)
    await asyncio.sleep(0.01)
    redelivered = await broker.fetch(JOB_EXECUTION)

    assert redelivered is not None
    assert redelivered.message_id == first.message_id
    assert redelivered.delivery_count == 2


@pytest.mark.asyncio
async def test_delayed_message_waits(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1), delay_seconds=3600)

    assert await broker.fetch(JOB_EXECUTION) is None
    assert await broker.depth(JOB_EXECUTION) == 1


@pytest.mark.asyncio
async def test_ack_removes_message(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    envelope = await broker.fetch(JOB_EXECUTION)

    await broker.ack(envelope)

    assert await broker.depth(JOB_EXECUTION) == 0


@pytest.mark.asyncio
async def test_nack_with_requeue_makes_message_available(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    envelope = await broker.fetch(JOB_EXECUTION)

    await broker.nack(envelope, "try again", requeue=True)

    again = await broker.fetch(JOB_EXECUTION)
    assert again is not None
    assert again.message_id == envelope.message_id
    assert await broker.depth(DEAD_LETTER) == 0


@pytest.mark.asyncio
async def test_raising_handler_dead_letters_exactly_once(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    calls = 0

    async def failing_handler(message: Ping) -> None:
        nonlocal calls
        calls += 1
        raise RuntimeError("handler exploded")

    assert await broker.process_next(JOB_EXECUTION, failing_handler, Ping) is True
    assert await broker.process_next(JOB_EXECUTION, failing_handler, Ping) is False

    dead = await broker.dead_letters()
    assert calls == 1
    assert len(dead) == 1
    assert dead[0].source_channel == JOB_EXECUTION
    assert dead[0].dead_letter_reason == "RuntimeError: handler exploded"
    assert await broker.depth(JOB_EXECUTION) == 0


@pytest.mark.asyncio
async def test_second_nack_does_not_duplicate_dead_letter(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    envelope = await broker.fetch(JOB_EXECUTION)

    await broker.nack(envelope, "first")
    await broker.nack(envelope, "second")

    dead = await broker.dead_letters()
    assert len(dead) == 1
    assert dead[0].dead_letter_reason == "first"


@pytest.mark.asyncio
async def test_undecodable_payload_is_dead_lettered(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    handled = []

    async def handler(message: ExecutionRequest) -> None:
        handled.append(message)

    assert await broker.process_next(JOB_EXECUTION, handler, ExecutionRequest) is True

    dead = await broker.dead_letters()
    assert handled == []
    assert len(dead) == 1
    assert "ExecutionRequest payload rejected" in dead[0].dead_letter_reason


@pytest.mark.asyncio
async def test_nack_on_dead_letter_channel_discards(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    await broker.nack(await broker.fetch(JOB_EXECUTION), "bad")

    dead = await broker.fetch(DEAD_LETTER)
    await broker.nack(dead, "still bad")

    assert await broker.depth(DEAD_LETTER) == 0


@pytest.mark.asyncio
async def test_publish_in_session_is_atomic_with_the_write(temp_db: DatabaseManager, broker: MessageBroker):
    job = Job(subject="atomic")

    with pytest.raises(RuntimeError):
        async with temp_db.session() as session:
            session.add(job)
            await broker.publish(JOB_EXECUTION, ExecutionRequest(job_id=job.id), session=session)
            raise RuntimeError("crash before commit")

    assert await broker.depth(JOB_EXECUTION) == 0
    assert await temp_db.get_job(job.id) is None

    async with temp_db.session() as session:
        session.add(job)
        await broker.publish(JOB_EXECUTION, ExecutionRequest(job_id=job.id), session=session)

    envelope = await broker.fetch(JOB_EXECUTION)
    assert envelope.decode(ExecutionRequest).job_id == job.id


@pytest.mark.asyncio
async def test_consume_handles_until_max_messages(broker: MessageBroker):
    for value in range(3):
        await broker.publish(NOTIFICATIONS, Ping(value=value))
    seen = []

    async def handler(message: Ping) -> None:
        seen.append(message.value)

    handled = await broker.consume(NOTIFICATIONS, handler, Ping, max_messages=2)

    assert handled == 2
    assert seen == [0, 1]


@pytest.mark.asyncio
async def test_consume_stops_on_event(broker: MessageBroker):
    stop = asyncio.Event()

    async def handler(message: Ping) -> None:
        raise AssertionError("no messages expected")

    task = asyncio.create_task(broker.consume(NOTIFICATIONS, handler, Ping, stop_event=stop))
    await asyncio.sleep(0.05)
    stop.set()

    assert await asyncio.wait_for(task, timeout=1) == 0


@pytest.mark.asyncio
async def test_declare_channels_is_repeatable(broker: MessageBroker):
    await broker.declare_channels()
    await broker.publish(JOB_EXECUTION, ExecutionRequest(job_id=uuid.uuid4()))

    assert await broker.depth(JOB_EXECUTION) == 1


@pytest.mark.asyncio
async def test_transport_failure_in_handler_is_retried_not_dead_lettered(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    calls = 0

    async def flaky_handler(message: Ping) -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise TransportError("find_job_by_source failed after retries: database is locked")

    handled = await broker.consume(JOB_EXECUTION, flaky_handler, Ping, max_messages=1)

    assert handled == 1
    assert calls == 2
    assert await broker.depth(DEAD_LETTER) == 0
    assert await broker.depth(JOB_EXECUTION) == 0


@pytest.mark.asyncio
async def test_driver_error_in_handler_requeues_message(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))

    async def handler(message: Ping) -> None:
        raise OperationalError("UPDATE job", {}, Exception("database is locked"))

    with pytest.raises(TransportError):
        await broker.process_next(JOB_EXECUTION, handler, Ping)

    again = await broker.fetch(JOB_EXECUTION)
    assert again is not None
    assert again.delivery_count == 2
    assert await broker.depth(DEAD_LETTER) == 0


@pytest.mark.asyncio
async def test_extend_lease_keeps_message_invisible(temp_db: DatabaseManager):
    broker = MessageBroker(temp_db, lease_seconds=0.4, poll_interval=0.01)
    await broker.declare_channels()
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    envelope = await broker.fetch(JOB_EXECUTION)

    await asyncio.sleep(0.2)
    assert await broker.extend_lease(envelope) is True
    await asyncio.sleep(0.3)

    assert await broker.fetch(JOB_EXECUTION) is None


@pytest.mark.asyncio
async def test_extend_lease_after_ack_reports_lost(broker: MessageBroker):
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    envelope = await broker.fetch(JOB_EXECUTION)
    await broker.ack(envelope)

    assert await broker.extend_lease(envelope) is False


@pytest.mark.asyncio
async def test_lease_renewed_while_handler_runs(temp_db: DatabaseManager, monkeypatch):
    broker = MessageBroker(temp_db, lease_seconds=0.15, poll_interval=0.01)
    await broker.declare_channels()
    await broker.publish(JOB_EXECUTION, Ping(value=1))
    renewals = []

    async def record_renewal(envelope) -> bool:
        renewals.append(envelope.message_id)
        return True

    monkeypatch.setattr(broker, "extend_lease", record_renewal)

    async def slow_handler(message: Ping) -> None:
        await asyncio.sleep(0.3)

    assert await broker.process_next(JOB_EXECUTION, slow_handler, Ping) is True

    assert len(renewals) >= 2
    assert await broker.depth(JOB_EXECUTION) == 0
