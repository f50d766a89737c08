"""Shared test fixtures for all test groups."""

import os

# Set before any coursehub import: get_settings() is cached on first use
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-testing-at-least-32-bytes")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")

from unittest.mock import AsyncMock

import pytest
import stripe
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from coursehub.core.locking import BillingLock
from coursehub.db.base import Base
from coursehub.db.models.plan import Plan
from coursehub.db.models.subscription import STATUS_ACTIVE, Subscription
from coursehub.db.models.user import User
from coursehub.integrations.stripe_gateway import StripeGateway


def stripe_obj(values: dict):
    """Build a real StripeObject (attribute and dict access) from plain values."""
    return stripe.StripeObject.construct_from(values, "sk_test_dummy")


def stripe_page(items: list[dict], has_more: bool):
    return stripe_obj({"object": "list", "data": items, "has_more": has_more, "url": "/v1/test"})


class KeyedObject:
    """SDK-style object that is not a dict: attribute access, item access and ``in`` only."""

    def __init__(self, values: dict):
        self._values = {key: _keyed(value) for key, value in values.items()}

    def __getattr__(self, name):
        try:
            return self.__dict__["_values"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, key):
        return self._values[key]

    def __contains__(self, key):
        return key in self._values


def _keyed(value):
    if isinstance(value, dict):
        return KeyedObject(value)
    if isinstance(value, list):
        return [_keyed(item) for item in value]
    return value


def remote_subscription(sub_id: str, interval: str = "month", intent_status: str = "requires_action") -> object:
    return stripe_obj({
        "id": sub_id,
        "object": "subscription",
        "status": "incomplete",
        "plan": {"id": "plan_x", "interval": interval},
        "latest_invoice": {
            "id": f"in_{sub_id}",
            "payment_intent": {"id": f"pi_{sub_id}", "status": intent_status, "client_secret": f"pi_{sub_id}_secret"},
        },
    })


@pytest.fixture
async def engine():
    """SQLite in-memory engine; StaticPool keeps one shared connection."""
    import coursehub.db.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def redis():
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
def billing_lock(redis) -> BillingLock:
    return BillingLock(redis, ttl=30)


@pytest.fixture
def gateway():
    """StripeGateway double: every coroutine method is an AsyncMock."""
    return AsyncMock(spec=StripeGateway)


@pytest.fixture
def make_user(session_factory):
    async def _make_user(email: str = "learner@example.com", customer_id: str | None = None, **kwargs) -> User:
        async with session_factory() as session:
            user = User(email=email, name=email.split("@")[0], customer_id=customer_id, **kwargs)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def make_plan(session_factory):
    async def _make_plan(price_id: str = "price_basic", active: bool = True, plan_type: str = "Basic") -> Plan:
        async with session_factory() as session:
            plan = Plan(
                plan_type=plan_type,
                description="test plan",
                product_id=f"prod_{price_id}",
                price_id=price_id,
                amount=999,
                currency="usd",
                interval="month",
                active=active,
            )
            session.add(plan)
            await session.commit()
            await session.refresh(plan)
            return plan

    return _make_plan


@pytest.fixture
def make_subscription(session_factory):
    async def _make_subscription(
        user: User,
        subscription_id: str = "sub_old",
        status: str = STATUS_ACTIVE,
        mark_user: bool = True,
    ) -> Subscription:
        async with session_factory() as session:
            row = Subscription(
                user_id=user.id,
                subscription_id=subscription_id,
                price_id="price_basic",
                payment_method_id="pm_card_visa",
                plan_interval="month",
                status=status,
            )
            session.add(row)
            if mark_user:
                db_user = await session.get(User, user.id)
                db_user.subscriptions = True
            await session.commit()
            await session.refresh(row)
            return row

    return _make_subscription


@pytest.fixture(name="stripe_obj")
def stripe_obj_fixture():
    return stripe_obj


@pytest.fixture(name="stripe_page")
def stripe_page_fixture():
    return stripe_page


@pytest.fixture(name="remote_subscription")
def remote_subscription_fixture():
    return remote_subscription


@pytest.fixture(name="keyed_obj")
def keyed_obj_fixture():
    return KeyedObject
