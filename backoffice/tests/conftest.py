"""
Centralized Test Configuration.
"""

import itertools

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backoffice.app.main import app
from backoffice.app.db.session import get_db, Base, enable_sqlite_foreign_keys
from backoffice.app.core.jwt import token_for_profile
from backoffice.app.core.redis_client import get_redis
from backoffice.app.models.enums import UserRole, ProviderStatus, DeliveryResponsibility, OrderStatus
from backoffice.app.models.order import Order
from backoffice.app.models.profile import Profile
from backoffice.app.models.provider import Provider
import backoffice.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class MockPubSub:
    """Replays messages already published on the subscribed channels, then ends."""

    def __init__(self, redis):
        self.redis = redis
        self.channels = []
        self.closed = False

    async def subscribe(self, *channels):
        self.channels.extend(channels)

    async def unsubscribe(self, *channels):
        self.channels = [c for c in self.channels if c not in channels]

    async def listen(self):
        for channel in self.channels:
            yield {"type": "subscribe", "channel": channel, "data": 1}
        for channel, message in list(self.redis.published):
            if channel in self.channels:
                yield {"type": "message", "channel": channel, "data": message}

    async def aclose(self):
        self.closed = True


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.published = []
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                removed += 1
        return removed

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 0

    def pubsub(self):
        return MockPubSub(self)

    async def flushdb(self):
        self.store = {}
        self.published = []

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def mock_redis():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(mock_redis):
    """Apply dependency overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(mock_redis):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# Accounts

_emails = itertools.count(1)
_order_numbers = itertools.count(1000)


def auth_headers(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {token_for_profile(profile)}"}


@pytest.fixture
def make_profile(db_session):
    async def _make(role: UserRole = UserRole.CUSTOMER, **fields) -> Profile:
        number = next(_emails)
        profile = Profile(
            email=fields.pop("email", f"{role.value}{number}@test.com"),
            full_name=fields.pop("full_name", f"{role.value.title()} {number}"),
            role=role,
            **fields,
        )
        db_session.add(profile)
        await db_session.commit()
        await db_session.refresh(profile)
        return profile
    return _make


@pytest.fixture
def make_provider(db_session, make_profile):
    async def _make(**fields) -> Provider:
        owner = fields.pop("owner", None) or await make_profile(UserRole.PROVIDER)
        provider = Provider(
            owner_id=owner.id,
            name_ar=fields.pop("name_ar", "متجر"),
            name_en=fields.pop("name_en", f"Store {owner.id}"),
            status=fields.pop("status", ProviderStatus.OPEN),
            commission_rate=fields.pop("commission_rate", 7.0),
            delivery_responsibility=fields.pop("delivery_responsibility", DeliveryResponsibility.MERCHANT),
            **fields,
        )
        db_session.add(provider)
        await db_session.commit()
        await db_session.refresh(provider)
        return provider
    return _make


@pytest.fixture
async def admin(make_profile):
    return await make_profile(UserRole.ADMIN)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
async def customer(make_profile):
    return await make_profile(UserRole.CUSTOMER)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
async def provider(make_provider):
    return await make_provider(email="store@test.com")


@pytest.fixture
async def provider_headers(db_session, provider):
    owner = await db_session.get(Profile, provider.owner_id)
    return auth_headers(owner)


@pytest.fixture
def headers_for():
    """Build auth headers for any profile created in a test."""
    return auth_headers


@pytest.fixture
def make_order(db_session):
    """Create an order; delivered cash-on-delivery by default."""
    async def _make(provider: Provider, customer: Profile, **fields) -> Order:
        total = fields.pop("total", 100.0)
        order = Order(
            order_number=fields.pop("order_number", f"ORD-{next(_order_numbers)}"),
            customer_id=customer.id,
            provider_id=provider.id,
            status=fields.pop("status", OrderStatus.DELIVERED),
            subtotal=fields.pop("subtotal", total),
            total=total,
            platform_commission=fields.pop("platform_commission", round(total * 0.07, 2)),
            payment_method=fields.pop("payment_method", "cash"),
            **fields,
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order
    return _make


@pytest.fixture
def session_factory():
    """Independent sessions for tests that run work concurrently."""
    return TestingSessionLocal
