# tests/conftest.py
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crmsync.models import Base, EntityType
from crmsync.service_layer.dependencies import EnrichmentDeps
from crmsync.service_layer.unit_of_work import SqlAlchemyUnitOfWork

from fakes import FakeApollo, FakeDiscovery, FakeFetcher, FakeLLM, RecordingSleep, StaticCredentials


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def credentials():
    return StaticCredentials({"openai": "sk-test", "apollo": "apollo-test", "serp": "serp-test"})


@pytest.fixture
def apollo():
    return FakeApollo()


@pytest.fixture
def discovery():
    return FakeDiscovery()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def deps(async_session_maker, fetcher, llm, credentials, apollo, discovery, sleeper):
    return EnrichmentDeps(
        session_maker=async_session_maker,
        fetcher=fetcher,
        llm=llm,
        credentials=credentials,
        firmographics=apollo,
        discovery=discovery,
        sleep=sleeper,
    )


@pytest.fixture
def seed(async_session_maker):
    """Insert a record and return its row id."""

    async def _seed(
        tenant_id: str,
        entity_id: str,
        data: dict,
        *,
        entity_type: EntityType = EntityType.company,
        provenance: dict | None = None,
    ) -> int:
        async with SqlAlchemyUnitOfWork(async_session_maker) as uow:
            rec = await uow.records.add(
                tenant_id=tenant_id,
                entity_type=entity_type,
                entity_id=entity_id,
                data=data,
                provenance=provenance,
            )
            return rec.id

    return _seed


@pytest.fixture
def load(async_session_maker):
    async def _load(tenant_id: str, entity_id: str, entity_type: EntityType = EntityType.company):
        async with SqlAlchemyUnitOfWork(async_session_maker) as uow:
            return await uow.records.get(tenant_id, entity_type, entity_id)

    return _load
