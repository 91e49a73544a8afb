"""
Test configuration and fixtures for pytest tests.
Provides isolated test environment with in-memory SQLite database.
"""

import os

# Settings are read once at import, so the environment must be set first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["MESSAGING_WEBHOOK_URL"] = ""

from decimal import Decimal
from typing import Any, Dict, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cleanops import models  # noqa: F401
from cleanops.api.deps import get_notifier
from cleanops.database import Base, get_db
from cleanops.main import app
from cleanops.models.branch import Branch, BranchType, Staff, StaffRole
from cleanops.schemas.order import OrderCreate
from cleanops.services.notification_service import NotificationRequest, NotificationService
from cleanops.services.order_service import OrderService


class RecordingNotifier(NotificationService):
    """Messaging gateway stand-in that records requests instead of sending them."""

    def __init__(self):
        super().__init__(webhook_url="", api_key="")
        self.sent: List[NotificationRequest] = []
        self.fail_with: str = ""
        self.fail_for_orders: set = set()

    async def send_notification(self, request: NotificationRequest) -> Dict[str, Any]:
        if self.fail_with or request.order_id in self.fail_for_orders:
            return {
                "success": False,
                "notification_id": None,
                "channel": request.channel.value,
                "message": request.message,
                "error": self.fail_with or "Gateway unavailable",
            }
        self.sent.append(request)
        return {
            "success": True,
            "notification_id": f"test-{len(self.sent)}",
            "channel": request.channel.value,
            "message": request.message,
        }


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test; StaticPool keeps one shared connection."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def main_store(db):
    branch = Branch(code="NRB01", name="Nairobi Main", branch_type=BranchType.MAIN.value, sorting_window_hours=4)
    db.add(branch)
    await db.commit()
    return branch


@pytest_asyncio.fixture
async def satellite(db, main_store):
    """Satellite without its own sorting window (falls back to the default)."""
    branch = Branch(
        code="WST01",
        name="Westlands Satellite",
        branch_type=BranchType.SATELLITE.value,
        main_store_id=main_store.id,
    )
    db.add(branch)
    await db.commit()
    return branch


@pytest_asyncio.fixture
async def workstation_staff(db, main_store):
    staff = [
        Staff(name="Amina Washer", role=StaffRole.WORKSTATION.value, branch_id=main_store.id),
        Staff(name="Brian Presser", role=StaffRole.WORKSTATION.value, branch_id=main_store.id),
    ]
    db.add_all(staff)
    await db.commit()
    return staff


@pytest_asyncio.fixture
async def drivers(db, satellite):
    staff = [
        Staff(name="Driver One", role=StaffRole.DRIVER.value, branch_id=satellite.id),
        Staff(name="Driver Two", role=StaffRole.DRIVER.value, branch_id=satellite.id),
    ]
    db.add_all(staff)
    await db.commit()
    return staff


@pytest.fixture
def make_order(db, notifier):
    """Factory creating orders through OrderService."""
    async def _make(branch, garments=None, total_amount="1000.00", phone="+254700000001", **kwargs):
        data = OrderCreate(
            branch_id=branch.id,
            customer_name=kwargs.pop("customer_name", "Jane Wanjiku"),
            customer_phone=phone,
            garments=garments or [{"type": "Shirt", "quantity": 2}],
            total_amount=Decimal(total_amount),
            **kwargs,
        )
        return await OrderService(db, notifier).create_order(data)

    return _make


@pytest_asyncio.fixture
async def client(session_factory, notifier):
    """HTTP client against the app with the test database and notifier."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
