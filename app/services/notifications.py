"""Notifications: best-effort, sent after the state change has committed."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

from app.core.clock import Clock, utcnow
from app.core.config import Settings
from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.models.notification import Notification
from app.stores.base import Stores

log = get_logger(__name__)


@dataclass(frozen=True)
class Notice:
    user_id: str
    title: str
    message: str
    type: str


class Notifier(ABC):
    @abstractmethod
    async def notify(self, user_id: str, title: str, message: str, type: str) -> None:
        ...

    async def close(self) -> None:
        return None


class StoreNotifier(Notifier):
    """Writes a Notification record the app reads back through /v1/notifications."""

    def __init__(self, stores: Stores, clock: Clock = utcnow) -> None:
        self.stores = stores
        self.clock = clock

    async def notify(self, user_id: str, title: str, message: str, type: str) -> None:
        await self.stores.notifications.insert(
            Notification(user_id=user_id, title=title, message=message, type=type, created_at=self.clock())
        )


class QueueNotifier(Notifier):
    """Hands delivery to the arq worker (``deliver_notification``)."""

    def __init__(self, pool=None) -> None:
        self._pool = pool

    async def _get_pool(self):
        if self._pool is None:
            from arq import create_pool
            from app.worker.tasks import get_redis_settings
            self._pool = await create_pool(get_redis_settings())
        return self._pool

    async def notify(self, user_id: str, title: str, message: str, type: str) -> None:
        pool = await self._get_pool()
        await pool.enqueue_job("deliver_notification", user_id, title, message, type)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


def get_notifier(stores: Stores, settings: Settings) -> Notifier:
    if settings.notification_backend == "queue":
        return QueueNotifier()
    return StoreNotifier(stores)


async def dispatch(notifier: Notifier, notices: Iterable[Notice]) -> None:
    """Send each notice; a failure is logged and never propagates to the caller."""
    for notice in notices:
        try:
            await notifier.notify(notice.user_id, notice.title, notice.message, notice.type)
        except Exception:
            log.warning("notification_failed", user_id=notice.user_id, type=notice.type, exc_info=True)


async def list_notifications(stores: Stores, user_id: str, limit: int = 50) -> list[Notification]:
    return await stores.notifications.list_for_user(user_id, limit=limit)


async def mark_read(stores: Stores, user_id: str, notification_id: str) -> None:
    if not await stores.notifications.mark_read(user_id, notification_id):
        raise NotFoundError("Notification not found")


async def mark_all_read(stores: Stores, user_id: str) -> int:
    return await stores.notifications.mark_all_read(user_id)
