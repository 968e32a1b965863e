# ABOUTME: Database manager for jobs and the durable channel tables
# ABOUTME: Owns the async engine, transactional sessions and job lookups

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from rpa_pipeline.core.models import JobStatus
from rpa_pipeline.persistence.models import Job
from rpa_pipeline.utils.logging import get_logger
from rpa_pipeline.utils.retry import transport_retry


@dataclass(slots=True)
class JobSummary:
    """Counts of jobs per lifecycle state."""

    counts: dict[JobStatus, int]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def active(self) -> int:
        return sum(self.counts.get(s, 0) for s in (JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.RETRYING))


class DatabaseManager:
    """Manages async database operations for jobs and channel messages."""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///./rpa_pipeline.db"):
        self.database_url = database_url
        self.logger = get_logger(__name__)
        self.engine = create_async_engine(database_url, echo=False)
        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """One transaction: committed on clean exit, rolled back on any exception."""
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    @transport_retry()
    async def add_job(self, job: Job) -> Job:
        async with self.session() as session:
            session.add(job)
        return job

    @transport_retry()
    async def get_job(self, job_id: uuid.UUID) -> Job | None:
        async with self.async_session() as session:
            return await session.get(Job, job_id)

    @transport_retry()
    async def find_job_by_source(self, source_id: str) -> Job | None:
        async with self.async_session() as session:
            result = await session.exec(select(Job).where(Job.source_id == source_id))
            return result.scalars().first()

    @transport_retry()
    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[Job]:
        """Most recent jobs first, optionally filtered by status."""
        async with self.async_session() as session:
            statement = select(Job).order_by(Job.created_at.desc()).limit(limit)
            if status is not None:
                statement = statement.where(Job.status == status)
            result = await session.exec(statement)
            return list(result.scalars().all())

    @transport_retry()
    async def job_summary(self) -> JobSummary:
        async with self.async_session() as session:
            result = await session.exec(select(Job.status, func.count()).group_by(Job.status))
            return JobSummary(counts={JobStatus(status): count for status, count in result.all()})

    async def close(self) -> None:
        await self.engine.dispose()
