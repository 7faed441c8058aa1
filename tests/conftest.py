"""
Shared fixtures. Tests run against a throwaway SQLite file per test;
the app settings are pointed away from Postgres before anything imports them.
"""

import os

os.environ.setdefault("DOCGEN_SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DOCGEN_DISPATCHER_CONCURRENCY", "0")

from typing import Any, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from app.db.session import Base
from app.db import models  # noqa: F401
from app.db.models import Job
from app.commands.enqueue_job import enqueue_job
from app.commands.claim_job import claim_job


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def enqueue(session_factory):
    async def _enqueue(
        config: Optional[dict[str, Any]] = None,
        kind: str = "SUPPLEMENT",
        tenant_id: str = "org-1",
        subject_id: str = "claim-1",
        **kwargs,
    ) -> Job:
        async with session_factory() as session:
            async with session.begin():
                return await enqueue_job(
                    session,
                    tenant_id=tenant_id,
                    subject_id=subject_id,
                    kind=kind,
                    config=config if config is not None else {"sections": ["cover", "line_items"]},
                    requested_by=kwargs.pop("requested_by", "user-1"),
                    **kwargs,
                )
    return _enqueue


@pytest.fixture
def claim(session_factory):
    async def _claim(worker_id: str = "worker-1") -> Optional[Job]:
        async with session_factory() as session:
            async with session.begin():
                return await claim_job(session, worker_id)
    return _claim


@pytest.fixture
def fetch(session_factory):
    async def _fetch(job_id) -> Job:
        async with session_factory() as session:
            return await session.get(Job, job_id)
    return _fetch

