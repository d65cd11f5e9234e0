"""
Pytest configuration and fixtures.
"""
import os

# Settings are read once per process; set them before the app is imported.
os.environ.update(
    {
        "PAYPAL_API_URL": "https://api-m.sandbox.paypal.com",
        "PAYPAL_CLIENT_ID": "test-client-id",
        "PAYPAL_CLIENT_SECRET": "test-client-secret",
        "CLOUDINARY_CLOUD_NAME": "test-cloud",
        "CLOUDINARY_API_KEY": "123456789012345",
        "CLOUDINARY_API_SECRET": "test-cloudinary-secret",
        "AUTH_SECRET_KEY": "test-session-secret-key",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "APP_URL": "http://marketplace.test",
        "APP_ENV": "test",
        "LOG_LEVEL": "WARNING",
    }
)

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Callable, Dict, List
import uuid

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from marketplace.api.dependencies import get_paypal_client, get_sessionmaker
from marketplace.api.main import app
from marketplace.core.context import RequestContext
from marketplace.database.connection import build_engine, build_session_factory, get_db
from marketplace.database.models import Asset, Base, Category, User
from marketplace.integrations.identity import Session, create_session_token
from marketplace.integrations.paypal_client import PayPalClient

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakePayPal:
    """In-process stand-in for the PayPal Orders API."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.order_id = "5O190127TN364715T"
        self.create_status_code = 201
        self.capture_status_code = 201
        self.capture_status = "COMPLETED"
        self.include_approve_link = True

    @property
    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v2/checkout/orders":
            if self.create_status_code >= 400:
                return httpx.Response(
                    self.create_status_code, json={"name": "INTERNAL_SERVER_ERROR"}
                )
            links = [
                {
                    "href": f"https://api-m.sandbox.paypal.com/v2/checkout/orders/{self.order_id}",
                    "rel": "self",
                    "method": "GET",
                }
            ]
            if self.include_approve_link:
                links.append(
                    {
                        "href": f"https://www.sandbox.paypal.com/checkoutnow?token={self.order_id}",
                        "rel": "approve",
                        "method": "GET",
                    }
                )
            return httpx.Response(
                201, json={"id": self.order_id, "status": "CREATED", "links": links}
            )

        if path.startswith("/v2/checkout/orders/") and path.endswith("/capture"):
            if self.capture_status_code >= 400:
                return httpx.Response(
                    self.capture_status_code,
                    json={"name": "UNPROCESSABLE_ENTITY", "details": [{"issue": "ORDER_NOT_APPROVED"}]},
                )
            return httpx.Response(
                201, json={"id": path.split("/")[-2], "status": self.capture_status}
            )

        if path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21AA", "token_type": "Bearer"})

        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})


@dataclass
class SeedData:
    """Identifiers of the rows created by the ``seed`` fixture."""

    owner_id: str
    buyer_id: str
    other_buyer_id: str
    admin_id: str
    photos_id: int
    illustrations_id: int
    approved_photo_id: uuid.UUID
    approved_illustration_id: uuid.UUID
    pending_asset_id: uuid.UUID


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """File-backed SQLite engine so every session gets its own connection."""
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> SeedData:
    """Users, two categories, two approved assets and one pending asset."""
    data = SeedData(
        owner_id="user-owner",
        buyer_id="user-buyer",
        other_buyer_id="user-other",
        admin_id="user-admin",
        photos_id=1,
        illustrations_id=2,
        approved_photo_id=uuid.uuid4(),
        approved_illustration_id=uuid.uuid4(),
        pending_asset_id=uuid.uuid4(),
    )

    async with session_factory() as db:
        db.add_all(
            [
                User(id=data.owner_id, name="Olive Owner", email="olive@example.com",
                     image="https://img.example.com/olive.png", role="user", created_at=BASE_TIME),
                User(id=data.buyer_id, name="Bea Buyer", email="bea@example.com",
                     role="user", created_at=BASE_TIME),
                User(id=data.other_buyer_id, name="Otto Other", email="otto@example.com",
                     role="user", created_at=BASE_TIME),
                User(id=data.admin_id, name="Ada Admin", email="ada@example.com",
                     role="admin", created_at=BASE_TIME),
                Category(id=data.photos_id, name="Photos", created_at=BASE_TIME),
                Category(id=data.illustrations_id, name="Illustrations", created_at=BASE_TIME),
            ]
        )
        await db.flush()
        db.add_all(
            [
                Asset(
                    id=data.approved_photo_id,
                    title="Mountain Sunrise",
                    description="Golden hour over the ridge",
                    file_url="https://res.cloudinary.com/test-cloud/image/upload/sunrise.jpg",
                    thumbnail_url="https://res.cloudinary.com/test-cloud/image/upload/t_thumb/sunrise.jpg",
                    category_id=data.photos_id,
                    user_id=data.owner_id,
                    approval_state="approved",
                    created_at=BASE_TIME + timedelta(minutes=1),
                ),
                Asset(
                    id=data.approved_illustration_id,
                    title="Ink Fox",
                    description=None,
                    file_url="https://res.cloudinary.com/test-cloud/image/upload/fox.png",
                    thumbnail_url="https://res.cloudinary.com/test-cloud/image/upload/fox.png",
                    category_id=data.illustrations_id,
                    user_id=data.owner_id,
                    approval_state="approved",
                    created_at=BASE_TIME + timedelta(minutes=2),
                ),
                Asset(
                    id=data.pending_asset_id,
                    title="Harbor at Night",
                    description="Long exposure",
                    file_url="https://res.cloudinary.com/test-cloud/image/upload/harbor.jpg",
                    thumbnail_url="https://res.cloudinary.com/test-cloud/image/upload/harbor.jpg",
                    category_id=data.photos_id,
                    user_id=data.owner_id,
                    approval_state="pending",
                    created_at=BASE_TIME + timedelta(minutes=3),
                ),
            ]
        )
        await db.commit()

    return data


@pytest.fixture
def fake_paypal() -> FakePayPal:
    return FakePayPal()


@pytest.fixture
def paypal_client(fake_paypal: FakePayPal) -> PayPalClient:
    return PayPalClient(
        api_url="https://api-m.sandbox.paypal.com",
        client_id="test-client-id",
        client_secret="test-client-secret",
        transport=httpx.MockTransport(fake_paypal.handle),
    )


@pytest.fixture
def buyer_ctx(seed: SeedData) -> RequestContext:
    return RequestContext(session=Session(user_id=seed.buyer_id))


@pytest.fixture
def admin_ctx(seed: SeedData) -> RequestContext:
    return RequestContext(session=Session(user_id=seed.admin_id, role="admin"))


@pytest.fixture
def auth_headers() -> Callable[..., Dict[str, str]]:
    """Build an Authorization header carrying a signed session token."""

    def _headers(user_id: str, role: str = "user") -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_session_token(user_id, role=role)}"}

    return _headers


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    paypal_client: PayPalClient,
) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client bound to the test database and fake gateway."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, Any]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    app.dependency_overrides[get_paypal_client] = lambda: paypal_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
