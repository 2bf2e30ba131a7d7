"""
Test configuration and fixtures for the chit fund back office tests.
"""
import pytest
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from httpx import AsyncClient, ASGITransport
from fakeredis import aioredis as fake_aioredis

from chitfund.core.database import Base, get_redis
from chitfund.core.dependencies import (
    get_admin_service,
    get_customer_aggregator,
    get_document_store,
    get_identity_provider,
    get_session_manager,
)
from chitfund.core.documents import DocumentStore, COLLECTION_CUSTOMERS, COLLECTION_USERS
from chitfund.core.encryption import EncryptionCodec
from chitfund.core.utils import now_ms
from chitfund.modules.activities.services import ActivityService
from chitfund.modules.admin.services import AdminService
from chitfund.modules.auth.provider import LocalIdentityProvider
from chitfund.modules.auth.services import ClaimRegistry, SessionManager
from chitfund.modules.collections.services import CollectionService
from chitfund.modules.customers.schemas import CustomerCreate
from chitfund.modules.customers.services import CustomerService
from chitfund.modules.loans.aggregation import CustomerAggregator
from chitfund.modules.loans.services import LoanService
from chitfund.modules.payments.services import PaymentService
from chitfund.modules.users.services import AgentService, UserService
from main import app

ROOT_ADMIN_EMAIL = "root-admin@chitfund.test"
ROOT_ADMIN_PASSWORD = "root-password"


# ============================================================
# Storage Fixtures
# ============================================================

@pytest.fixture
async def test_engine(tmp_path):
    """SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'chitfund.db'}",
        poolclass=NullPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> DocumentStore:
    return DocumentStore(session_factory)


@pytest.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


# ============================================================
# Identity Fixtures
# ============================================================

@pytest.fixture
def provider(session_factory) -> LocalIdentityProvider:
    # low bcrypt cost keeps the suite fast
    return LocalIdentityProvider(session_factory, bcrypt_rounds=4)


@pytest.fixture
def claims() -> ClaimRegistry:
    return ClaimRegistry()


@pytest.fixture
def session_manager(provider, store, claims):
    manager = SessionManager(provider, store, root_admin_email=ROOT_ADMIN_EMAIL, claims=claims)
    manager.start()
    yield manager
    manager.stop()


# ============================================================
# Service Fixtures
# ============================================================

@pytest.fixture
def codec() -> EncryptionCodec:
    return EncryptionCodec("test-encryption-secret")


@pytest.fixture
def aggregator(store) -> CustomerAggregator:
    return CustomerAggregator(store)


@pytest.fixture
def activity_service(store) -> ActivityService:
    return ActivityService(store)


@pytest.fixture
def loan_service(store, aggregator) -> LoanService:
    return LoanService(store, aggregator)


@pytest.fixture
def payment_service(store) -> PaymentService:
    return PaymentService(store)


@pytest.fixture
def customer_service(store, loan_service, activity_service, codec) -> CustomerService:
    return CustomerService(store, loan_service, activity_service, codec=codec, upload_timeout=5)


@pytest.fixture
def collection_service(store, payment_service, loan_service, customer_service, activity_service) -> CollectionService:
    return CollectionService(store, payment_service, loan_service, customer_service, activity_service)


@pytest.fixture
def user_service(store, provider, codec) -> UserService:
    return UserService(store, provider, codec=codec)


@pytest.fixture
def agent_service(store, user_service, loan_service, customer_service, activity_service) -> AgentService:
    return AgentService(store, user_service, loan_service, customer_service, activity_service)


@pytest.fixture
def admin_service(store) -> AdminService:
    return AdminService(store, ROOT_ADMIN_EMAIL)


# ============================================================
# Data Fixtures
# ============================================================

@pytest.fixture
async def test_agent(store):
    """An active agent role record"""
    record = {
        "uid": "agent-1",
        "email": "agent@chitfund.test",
        "displayName": "Field Agent",
        "role": "AGENT",
        "status": "ACTIVE",
        "createdAt": now_ms(),
    }
    await store.set(COLLECTION_USERS, "agent-1", record)
    return {**record, "id": "agent-1"}


@pytest.fixture
async def test_customer(store, customer_service):
    """A customer with zeroed aggregates and no loans"""
    customer_id = await customer_service.create(CustomerCreate(name="Lakshmi", phone="9000000001"))
    return await store.get(COLLECTION_CUSTOMERS, customer_id)


# ============================================================
# HTTP Fixtures
# ============================================================

@pytest.fixture
async def client(store, provider, session_manager, aggregator, redis) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the per-test database and fake redis"""

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_identity_provider] = lambda: provider
    app.dependency_overrides[get_session_manager] = lambda: session_manager
    app.dependency_overrides[get_customer_aggregator] = lambda: aggregator
    app.dependency_overrides[get_admin_service] = lambda: AdminService(store, ROOT_ADMIN_EMAIL)
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def admin_headers(client):
    """Bearer headers of the bootstrapped root admin"""
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": ROOT_ADMIN_EMAIL, "password": ROOT_ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
