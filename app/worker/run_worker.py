"""Run ARQ worker. Usage: python -m app.worker.run_worker (or: arq app.worker.run_worker.WorkerSettings)"""

from arq import run_worker
from arq.cron import cron
from app.worker.tasks import apply_periodic_bonuses, deliver_notification, get_redis_settings, startup, shutdown


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [deliver_notification]
    cron_jobs = [
        cron(apply_periodic_bonuses, hour={3}, minute={0}),  # daily at 03:00 UTC
    ]
    on_startup = startup
    on_shutdown = shutdown
    max_tries = 3


if __name__ == "__main__":
    run_worker(WorkerSettings)
