import os
from datetime import datetime, timedelta
from typing import Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# In-memory stores; no MongoDB or Redis needed
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("NOTIFICATION_BACKEND", "store")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("DEV_MODE", "true")
os.environ.setdefault("ADMIN_PHONE_NUMBERS", "+10000000000")

from app.core.config import Settings  # noqa: E402
from app.models.user import Role  # noqa: E402
from app.services import users as user_service  # noqa: E402
from app.services.credits import Ledger  # noqa: E402
from app.services.jobs import JobLifecycleManager  # noqa: E402
from app.services.notifications import Notice, Notifier  # noqa: E402
from app.services.trust import TrustEngine  # noqa: E402
from app.stores.memory import InMemoryStores  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 3, 10, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[Notice] = []
        self.fail = False

    async def notify(self, user_id: str, title: str, message: str, type: str) -> None:
        if self.fail:
            raise ConnectionError("push gateway down")
        self.sent.append(Notice(user_id, title, message, type))

    def types_for(self, user_id: str) -> list[str]:
        return [n.type for n in self.sent if n.user_id == user_id]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        initial_credits=100,
        job_posting_reward=10,
        platform_fee_percentage=10,
        penalty_amount=25,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stores() -> InMemoryStores:
    return InMemoryStores()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger(stores, clock) -> Ledger:
    return Ledger(stores, clock)


@pytest.fixture
def trust(stores, clock) -> TrustEngine:
    return TrustEngine(stores, clock)


@pytest.fixture
def manager(stores, notifier, settings, clock) -> JobLifecycleManager:
    return JobLifecycleManager(stores, notifier, settings, clock)


@pytest_asyncio.fixture
async def make_user(stores, settings, clock):
    counter = iter(range(1000, 9999))

    async def _make(role: Role = Role.USER, name: str = ""):
        user, _ = await user_service.get_or_create_by_phone(
            stores, settings, f"+91900000{next(counter)}", name, clock
        )
        if role != Role.USER:
            user = await user_service.set_role(stores, user, role, clock)
        return user

    return _make


@pytest_asyncio.fixture
async def poster(make_user):
    return await make_user(Role.USER, "Poster")


@pytest_asyncio.fixture
async def worker(make_user):
    return await make_user(Role.WORKER, "Worker")


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    from app.main import app
    with TestClient(app) as c:
        yield c
