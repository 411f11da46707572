"""
Shared fixtures: a temp-file SQLite database per test, a frozen clock, a
recording notification channel and one active user per role.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from refurbops.config import get_settings
from refurbops.context import AppContext
from refurbops.core.permissions import Actor, Role
from refurbops.models import DeviceCategory, User
from refurbops.schemas.workflow import DeviceCreate, InspectionSubmit, InwardBatchCreate, SpareLine
from refurbops.services.workflow_service import WorkflowService

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

TEST_ALLOWANCES = {
    "WAITING_FOR_SPARES": 2,
    "READY_FOR_REPAIR": 3,
    "UNDER_REPAIR": 5,
    "IN_PAINT": 2,
    "COMPLETED": 1,
}


class FrozenClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@dataclass
class SentMessage:
    to: str
    subject: str
    body: str


class RecordingChannel:
    """In-memory channel. `fail_for` addresses (or everything) report non-delivery."""

    def __init__(self):
        self.sent: List[SentMessage] = []
        self.attempts: List[str] = []
        self.fail_for: set = set()
        self.fail_all = False
        self.raise_error: Optional[Exception] = None
        self.delay = 0.0

    async def send(self, to: str, subject: str, body: str) -> bool:
        self.attempts.append(to)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_all or to in self.fail_for:
            return False
        self.sent.append(SentMessage(to, subject, body))
        return True

    def recipients(self) -> List[str]:
        return sorted(m.to for m in self.sent)

    def clear(self) -> None:
        self.sent.clear()
        self.attempts.clear()


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def settings(tmp_path):
    return get_settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'refurbops_test.db'}",
        CRON_SECRET="test-cron-secret",
        WAREHOUSE_MANAGER_EMAIL="warehouse.manager@comprint.test",
        TAT_ALLOWANCE_DAYS=TEST_ALLOWANCES,
        TAT_APPROACHING_WINDOW_HOURS=24,
        PO_AGING_THRESHOLD_DAYS=10,
        MAX_ACTIVE_REPAIRS_PER_ENGINEER=10,
        NOTIFICATION_SEND_TIMEOUT_SECONDS=1,
        SMTP_USER="",
        SMTP_PASSWORD="",
        SCHEDULER_ENABLED=False,
    )


@pytest.fixture
async def ctx(settings, channel, clock):
    app_ctx = AppContext.create(settings=settings, channel=channel, clock=clock)
    await app_ctx.init_db()
    yield app_ctx
    await app_ctx.dispose()


USER_ROLES = {
    "superadmin": Role.SUPERADMIN,
    "admin": Role.ADMIN,
    "warehouse": Role.WAREHOUSE_MANAGER,
    "mis": Role.MIS_WAREHOUSE_EXECUTIVE,
    "inspector": Role.INSPECTION_ENGINEER,
    "repair": Role.REPAIR_ENGINEER,
    "repair2": Role.REPAIR_ENGINEER,
    "painter": Role.PAINT_SHOP_TECHNICIAN,
    "qc": Role.QC_ENGINEER,
}


@pytest.fixture
async def actors(ctx) -> Dict[str, Actor]:
    """One active user per role (two repair engineers), keyed by short name."""
    users = {
        key: User(name=key.title(), email=f"{key}@comprint.test", role=role.value, is_active=True)
        for key, role in USER_ROLES.items()
    }
    async with ctx.session() as db:
        db.add_all(users.values())
    return {key: Actor.for_role(user.id, USER_ROLES[key], name=user.name) for key, user in users.items()}


@pytest.fixture
def service(ctx):
    return WorkflowService(ctx)


class WorkflowDriver:
    """Shortcuts for putting devices into a given stage."""

    def __init__(self, service: WorkflowService, actors: Dict[str, Actor]):
        self.service = service
        self.actors = actors

    async def receive(self, category=DeviceCategory.LAPTOP, brand="Dell", model="Latitude 5490"):
        batch = await self.service.create_inward_batch(
            InwardBatchCreate(supplier="Acme Remarketing"), self.actors["warehouse"],
        )
        return await self.service.receive_device(
            batch.id, DeviceCreate(category=category, brand=brand, model=model), self.actors["warehouse"],
        )

    async def inspect(self, device, functional=None, cosmetic=None, spares=None, paint=False):
        issues = {}
        if functional:
            issues["functional"] = functional
        if cosmetic:
            issues["cosmetic"] = cosmetic
        data = InspectionSubmit(
            reported_issues=issues or None,
            spares_required=[SpareLine(part_code=code, quantity=qty) for code, qty in (spares or [])],
            paint_required=paint,
        )
        _, job = await self.service.submit_inspection(device.id, data, self.actors["inspector"])
        return job

    async def ready_for_repair(self, **kwargs):
        device = await self.receive(**kwargs)
        job = await self.inspect(device, functional="No display")
        return device, job

    async def under_repair(self, engineer="repair"):
        device, job = await self.ready_for_repair()
        await self.service.start_repair(job.id, self.actors[engineer])
        return device, job

    async def awaiting_qc(self):
        device, job = await self.under_repair()
        await self.service.complete_repair(job.id, "Replaced LCD panel", self.actors["repair"])
        return device, job


@pytest.fixture
def driver(service, actors):
    return WorkflowDriver(service, actors)


@pytest.fixture
def app(ctx):
    from refurbops.main import create_app
    return create_app(ctx)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
