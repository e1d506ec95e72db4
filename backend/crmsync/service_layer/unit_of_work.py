# crmsync/service_layer/unit_of_work.py
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ..adapters.repos.advisory_cache import AdvisoryCacheRepository
from ..adapters.repos.credentials import CredentialRepository
from ..adapters.repos.records import RecordRepository
from ..domain.errors import ConcurrentUpdateError, PersistenceError

log = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    records: RecordRepository
    advisory: AdvisoryCacheRepository
    credentials: CredentialRepository

    async def __aenter__(self) -> "UnitOfWork": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


def translate_db_error(exc: BaseException) -> PersistenceError | None:
    if isinstance(exc, PersistenceError):
        return exc
    if isinstance(exc, StaleDataError):
        return ConcurrentUpdateError(str(exc))
    if isinstance(exc, SQLAlchemyError):
        return PersistenceError(str(exc))
    return None


class SqlAlchemyUnitOfWork:
    """
    One session per unit. Commits on clean exit, rolls back otherwise.
    SQLAlchemy failures leave as PersistenceError (ConcurrentUpdateError for version conflicts).
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker
        self.session: AsyncSession | None = None
        self.records: RecordRepository | None = None
        self.advisory: AdvisoryCacheRepository | None = None
        self.credentials: CredentialRepository | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_maker()
        self.records = RecordRepository(self.session)
        self.advisory = AdvisoryCacheRepository(self.session)
        self.credentials = CredentialRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc:
                await self.rollback()
                mapped = translate_db_error(exc)
                if mapped is not None and mapped is not exc:
                    raise mapped from exc
            else:
                try:
                    await self.commit()
                except SQLAlchemyError as e:
                    await self.rollback()
                    mapped = translate_db_error(e)
                    log.warning("commit failed: %s", e)
                    raise mapped from e
        finally:
            if self.session:
                await self.session.close()

    async def commit(self) -> None:
        assert self.session is not None
        await self.session.commit()

    async def rollback(self) -> None:
        assert self.session is not None
        await self.session.rollback()
