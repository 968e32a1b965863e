# ABOUTME: Application context built once at startup and handed to every stage service
# ABOUTME: Holds configuration, the database manager and the message broker

from __future__ import annotations

from dataclasses import dataclass

from rpa_pipeline.config import Config
from rpa_pipeline.persistence.manager import DatabaseManager
from rpa_pipeline.queue.broker import MessageBroker
from rpa_pipeline.utils.logging import get_logger
from rpa_pipeline.utils.retry import configure_transport_retry


@dataclass
class AppContext:
    config: Config
    db: DatabaseManager
    broker: MessageBroker

    @classmethod
    def from_config(cls, config: Config) -> AppContext:
        configure_transport_retry(
            max_attempts=config.transport_retry_attempts, max_wait=config.transport_retry_max_wait
        )
        db = DatabaseManager(config.database_url)
        broker = MessageBroker(db, lease_seconds=config.lease_seconds, poll_interval=config.poll_interval_seconds)
        return cls(config=config, db=db, broker=broker)

    async def start(self) -> None:
        """Create tables and declare every channel; safe to repeat."""
        await self.db.create_tables()
        await self.broker.declare_channels()
        get_logger(__name__).debug("Application context ready", database_url=self.config.database_url)

    async def close(self) -> None:
        await self.db.close()
