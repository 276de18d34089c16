"""ARQ job definitions."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.logging import bind_job, configure_logging, get_logger
from app.models.failed_job import FailedJob
from app.services.notifications import StoreNotifier
from app.stores.base import Stores, create_stores

log = get_logger(__name__)


async def _run_with_dlq(
    ctx: dict[str, Any],
    job_name: str,
    args: list[Any],
    kwargs: dict[str, Any],
    coro,
) -> Any:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    bind_job(job_name, job_id, ctx.get("job_try"))
    try:
        return await coro
    except Exception as e:
        stores: Stores = ctx["stores"]
        fid = job_id or str(uuid.uuid4())
        await stores.failed_jobs.append(
            FailedJob(
                job_name=job_name,
                job_id=fid,
                args=args,
                kwargs=kwargs,
                reason=str(e)[:2000],
                retries=ctx.get("job_try", 1) - 1,
            )
        )
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def deliver_notification(ctx: dict[str, Any], user_id: str, title: str, message: str, type: str) -> None:
    """Persist a notification handed off by QueueNotifier."""
    notifier = StoreNotifier(ctx["stores"])
    await _run_with_dlq(
        ctx,
        "deliver_notification",
        [user_id, title, message, type],
        {},
        notifier.notify(user_id, title, message, type),
    )


async def apply_periodic_bonuses(ctx: dict[str, Any]) -> int:
    """Cron job: monthly trust bonus for every eligible worker."""
    from app.worker.cron import run_periodic_bonuses
    return await _run_with_dlq(ctx, "apply_periodic_bonuses", [], {}, run_periodic_bonuses(ctx["stores"], utcnow))


async def startup(ctx: dict) -> None:
    configure_logging(debug=get_settings().debug, component="worker")
    ctx["stores"] = await create_stores()


async def shutdown(ctx: dict) -> None:
    stores = ctx.get("stores")
    if stores is not None:
        await stores.close()


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
