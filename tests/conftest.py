"""Shared fixtures: an in-memory database, an API client and signed-in users."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from parlomo_platform.database import get_db
from parlomo_platform.main import app
from parlomo_platform.models import Base, User, UserRole
from parlomo_platform.tasks import notification_tasks
from parlomo_platform.utils.auth import issue_user_token

QUEUED_TASKS = (
    "send_order_confirmation_task",
    "send_event_cancellation_task",
    "send_refund_decision_task",
    "send_settlement_decision_task",
)


@pytest.fixture(autouse=True)
def queued(monkeypatch) -> List[Tuple[str, tuple]]:
    """Record task dispatches instead of talking to the broker."""
    calls: List[Tuple[str, tuple]] = []
    for name in QUEUED_TASKS:
        task = getattr(notification_tasks, name)
        monkeypatch.setattr(task, "delay", lambda *args, _name=name: calls.append((_name, args)))
    return calls


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(session_factory, email: str, role: UserRole = UserRole.USER) -> User:
    async with session_factory() as session:
        user = User(email=email, first_name="Test", last_name=role.value.title(), role=role, is_active=True)
        user.set_password("password123")
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


def auth_headers(user: User) -> Dict[str, str]:
    token, _ = issue_user_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def organizer(session_factory) -> User:
    return await create_user(session_factory, "organizer@example.com", UserRole.ORGANIZER)


@pytest.fixture
async def other_organizer(session_factory) -> User:
    return await create_user(session_factory, "rival@example.com", UserRole.ORGANIZER)


@pytest.fixture
async def buyer(session_factory) -> User:
    return await create_user(session_factory, "buyer@example.com")


@pytest.fixture
async def admin(session_factory) -> User:
    return await create_user(session_factory, "admin@example.com", UserRole.ADMIN)


def future(days: int = 30) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


async def create_event(client: AsyncClient, organizer: User, publish: bool = True, **fields: Any) -> Dict[str, Any]:
    payload = {"title": "Summer Jazz Night", "start_date": future(), "venue_name": "The Hall", "city": "Leeds"}
    payload.update(fields)
    response = await client.post("/api/v1/public-events", json=payload, headers=auth_headers(organizer))
    assert response.status_code == 201, response.text
    event = response.json()
    if publish:
        response = await client.post(
            f"/api/v1/public-events/{event['id']}/publish", headers=auth_headers(organizer)
        )
        assert response.status_code == 200, response.text
        event = response.json()
    return event


async def create_ticket_type(
    client: AsyncClient,
    organizer: User,
    event_id: str,
    **fields: Any
) -> Dict[str, Any]:
    payload = {"name": "General Admission", "price": 2500, "capacity": 100}
    payload.update(fields)
    response = await client.post(
        f"/api/v1/ticketing/events/{event_id}/ticket-types",
        json=payload,
        headers=auth_headers(organizer),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def buy_tickets(
    client: AsyncClient,
    buyer: User,
    event_id: str,
    ticket_type_id: str,
    quantity: int = 2,
    promo_code: str = None
) -> Dict[str, Any]:
    """Run a full checkout and return the completed order."""
    payload = {"event_id": event_id, "cart_items": [{"ticket_type_id": ticket_type_id, "quantity": quantity}]}
    if promo_code:
        payload["promo_code"] = promo_code
    response = await client.post("/api/v1/ticketing/checkout/start", json=payload, headers=auth_headers(buyer))
    assert response.status_code == 201, response.text
    session = response.json()

    response = await client.post(
        "/api/v1/ticketing/checkout/complete",
        json={
            "session_id": session["session_id"],
            "buyer_info": {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
            "payment_intent_id": "pi_test_123",
        },
        headers=auth_headers(buyer),
    )
    assert response.status_code == 201, response.text
    return response.json()["order"]
