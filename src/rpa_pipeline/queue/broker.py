# ABOUTME: Durable message broker backed by the pipeline database
# ABOUTME: Publish, leased fetch, ack/nack with dead-lettering and a polling consume loop

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import and_, delete, func, or_, select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from rpa_pipeline.core.models import utcnow
from rpa_pipeline.persistence.manager import DatabaseManager
from rpa_pipeline.persistence.models import QueueChannel, QueueMessage
from rpa_pipeline.queue.channels import ALL_CHANNELS, DEAD_LETTER, MessageEnvelope
from rpa_pipeline.utils.logging import get_logger
from rpa_pipeline.utils.retry import TRANSIENT_ERRORS, MessageDecodeError, TransportError, transport_retry

M = TypeVar("M", bound=BaseModel)

READY = "ready"
LEASED = "leased"

# Handler failures that leave the message on its channel instead of dead-lettering it
_TRANSPORT_FAILURES = (TransportError, *TRANSIENT_ERRORS)

# Candidates examined per fetch before giving up to a competing consumer
_CLAIM_BATCH = 5


class MessageBroker:
    """At-least-once delivery over the queue_message table.

    A fetched message is leased, not removed. Ack deletes it, nack without
    requeue moves it to the dead-letter channel, and a lease that runs out
    (consumer crashed mid-handler) makes it fetchable again.
    """

    def __init__(self, db: DatabaseManager, lease_seconds: float = 900.0, poll_interval: float = 1.0):
        self.db = db
        self.lease_seconds = lease_seconds
        self.poll_interval = poll_interval
        self.logger = get_logger(__name__)

    @transport_retry()
    async def declare_channels(self, channels: tuple[str, ...] = ALL_CHANNELS) -> None:
        async with self.db.session() as session:
            for name in channels:
                if await session.get(QueueChannel, name) is None:
                    dead_letter = None if name == DEAD_LETTER else DEAD_LETTER
                    session.add(QueueChannel(name=name, durable=True, dead_letter_channel=dead_letter))
                    self.logger.info("Channel declared", channel=name, dead_letter_channel=dead_letter)

    async def publish(
        self,
        channel: str,
        payload: BaseModel,
        *,
        priority: int = 5,
        delay_seconds: float = 0.0,
        session: AsyncSession | None = None,
    ) -> str:
        """Store a persistent message on a channel and return its message id.

        With a session the message is staged in the caller's transaction and
        becomes visible only when that transaction commits.
        """
        now = utcnow()
        message = QueueMessage(
            channel=channel,
            body=payload.model_dump_json(),
            persistent=True,
            priority=priority,
            created_at=now,
            available_at=now + timedelta(seconds=delay_seconds),
        )
        if session is not None:
            session.add(message)
        else:
            await self._insert(message)

        self.logger.debug(
            "Message published",
            channel=channel,
            message_id=message.message_id,
            payload_type=type(payload).__name__,
            delay_seconds=delay_seconds,
        )
        return message.message_id

    @transport_retry()
    async def _insert(self, message: QueueMessage) -> None:
        async with self.db.session() as session:
            session.add(message)

    @transport_retry()
    async def fetch(self, channel: str) -> MessageEnvelope | None:
        """Lease the next available message on a channel, if any."""
        now = utcnow()
        fetchable = and_(
            QueueMessage.channel == channel,
            or_(
                and_(QueueMessage.state == READY, QueueMessage.available_at <= now),
                and_(QueueMessage.state == LEASED, QueueMessage.lease_expires_at <= now),
            ),
        )
        async with self.db.session() as session:
            result = await session.exec(
                select(QueueMessage.id)
                .where(fetchable)
                .order_by(QueueMessage.priority, QueueMessage.id)
                .limit(_CLAIM_BATCH)
            )
            for candidate_id in result.scalars().all():
                # Conditional claim: a competing consumer that got there first leaves rowcount at 0
                claim = await session.exec(
                    update(QueueMessage)
                    .where(QueueMessage.id == candidate_id, fetchable)
                    .values(
                        state=LEASED,
                        lease_expires_at=now + timedelta(seconds=self.lease_seconds),
                        delivery_count=QueueMessage.delivery_count + 1,
                    )
                )
                if claim.rowcount != 1:
                    continue
                message = await session.get(QueueMessage, candidate_id, populate_existing=True)
                if message is None:
                    continue
                if message.delivery_count > 1:
                    self.logger.warning(
                        "Redelivering message after expired lease",
                        channel=channel,
                        message_id=message.message_id,
                        delivery_count=message.delivery_count,
                    )
                return _to_envelope(message)
        return None

    @transport_retry()
    async def ack(self, envelope: MessageEnvelope) -> None:
        async with self.db.session() as session:
            await session.exec(
                delete(QueueMessage).where(
                    QueueMessage.message_id == envelope.message_id, QueueMessage.channel == envelope.channel
                )
            )

    @transport_retry()
    async def nack(self, envelope: MessageEnvelope, reason: str, *, requeue: bool = False) -> None:
        """Reject a message. Without requeue it moves to the dead-letter channel once."""
        async with self.db.session() as session:
            current = QueueMessage.message_id == envelope.message_id, QueueMessage.channel == envelope.channel
            if requeue:
                await session.exec(
                    update(QueueMessage)
                    .where(*current)
                    .values(state=READY, lease_expires_at=None, available_at=utcnow())
                )
                return

            if envelope.channel == DEAD_LETTER:
                await session.exec(delete(QueueMessage).where(*current))
                self.logger.error("Dead-letter message discarded", message_id=envelope.message_id, reason=reason)
                return

            moved = await session.exec(
                update(QueueMessage)
                .where(*current)
                .values(
                    channel=DEAD_LETTER,
                    source_channel=envelope.channel,
                    dead_letter_reason=reason[:1000],
                    state=READY,
                    lease_expires_at=None,
                    available_at=utcnow(),
                )
            )
            if moved.rowcount == 1:
                self.logger.error(
                    "Message dead-lettered", channel=envelope.channel, message_id=envelope.message_id, reason=reason
                )

    @transport_retry()
    async def extend_lease(self, envelope: MessageEnvelope) -> bool:
        """Push a held message's lease out by another lease period. False when it is no longer held."""
        async with self.db.session() as session:
            result = await session.exec(
                update(QueueMessage)
                .where(
                    QueueMessage.message_id == envelope.message_id,
                    QueueMessage.channel == envelope.channel,
                    QueueMessage.state == LEASED,
                )
                .values(lease_expires_at=utcnow() + timedelta(seconds=self.lease_seconds))
            )
            return result.rowcount == 1

    async def _keep_leased(self, envelope: MessageEnvelope, log) -> None:
        """Renew the lease while a handler runs so a long workflow is not redelivered mid-run."""
        interval = self.lease_seconds / 3
        while True:
            await asyncio.sleep(interval)
            try:
                held = await self.extend_lease(envelope)
            except TransportError as e:
                log.warning("Lease renewal failed", error=str(e))
                continue
            if not held:
                return

    async def _release(self, envelope: MessageEnvelope, log) -> None:
        try:
            await self.nack(envelope, "transport failure", requeue=True)
        except TransportError:
            log.warning("Could not requeue message, it is redelivered when its lease expires")

    async def process_next(
        self, channel: str, handler: Callable[[M], Awaitable[Any]], model: type[M]
    ) -> bool:
        """Fetch and fully handle one message. Returns False when the channel was empty.

        A handler that fails on the channel store itself raises TransportError
        after the message is put back, so it is retried instead of dead-lettered.
        """
        envelope = await self.fetch(channel)
        if envelope is None:
            return False

        log = self.logger.bind(channel=channel, message_id=envelope.message_id)
        try:
            message = envelope.decode(model)
        except MessageDecodeError as e:
            await self.nack(envelope, str(e))
            return True

        heartbeat = asyncio.create_task(self._keep_leased(envelope, log))
        try:
            await handler(message)
        except _TRANSPORT_FAILURES as e:
            heartbeat.cancel()
            log.warning("Handler hit a transport failure, message requeued", error=str(e))
            await self._release(envelope, log)
            if isinstance(e, TransportError):
                raise
            raise TransportError(f"Handler transport failure: {e}") from e
        except Exception as e:
            heartbeat.cancel()
            log.exception("Handler failed", error=str(e), error_type=type(e).__name__)
            await self.nack(envelope, f"{type(e).__name__}: {e}")
            return True
        finally:
            heartbeat.cancel()

        await self.ack(envelope)
        log.debug("Message acknowledged")
        return True

    async def consume(
        self,
        channel: str,
        handler: Callable[[M], Awaitable[Any]],
        model: type[M],
        *,
        stop_event: asyncio.Event | None = None,
        max_messages: int | None = None,
    ) -> int:
        """Poll a channel until stopped, one message in flight at a time."""
        handled = 0
        self.logger.info("Consumer started", channel=channel)
        while not (stop_event and stop_event.is_set()):
            if max_messages is not None and handled >= max_messages:
                break
            try:
                processed = await self.process_next(channel, handler, model)
            except TransportError as e:
                # Transient, the message stays on its channel for the next poll
                self.logger.error("Channel poll failed", channel=channel, error=str(e))
                await _idle(self.poll_interval, stop_event)
                continue
            if processed:
                handled += 1
                continue
            if max_messages is not None:
                break
            await _idle(self.poll_interval, stop_event)

        self.logger.info("Consumer stopped", channel=channel, handled=handled)
        return handled

    @transport_retry()
    async def dead_letters(self, limit: int = 50) -> list[MessageEnvelope]:
        async with self.db.async_session() as session:
            result = await session.exec(
                select(QueueMessage)
                .where(QueueMessage.channel == DEAD_LETTER)
                .order_by(QueueMessage.id)
                .limit(limit)
            )
            return [_to_envelope(message) for message in result.scalars().all()]

    @transport_retry()
    async def depth(self, channel: str) -> int:
        async with self.db.async_session() as session:
            result = await session.exec(
                select(func.count()).select_from(QueueMessage).where(QueueMessage.channel == channel)
            )
            return int(result.scalar_one())


async def _idle(seconds: float, stop_event: asyncio.Event | None) -> None:
    if stop_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except TimeoutError:
        pass


def _to_envelope(message: QueueMessage) -> MessageEnvelope:
    return MessageEnvelope(
        message_id=message.message_id,
        channel=message.channel,
        body=message.body,
        timestamp=message.created_at,
        persistent=message.persistent,
        delivery_count=message.delivery_count,
        source_channel=message.source_channel,
        dead_letter_reason=message.dead_letter_reason,
    )
