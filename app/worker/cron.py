"""Cron: monthly trust bonus sweep."""

from app.core.clock import Clock
from app.core.exceptions import PreconditionFailedError
from app.core.logging import get_logger
from app.services.trust import TrustEngine
from app.stores.base import Stores

log = get_logger(__name__)


async def run_periodic_bonuses(stores: Stores, clock: Clock) -> int:
    """Apply the periodic bonus to every candidate; the engine re-checks each gate. Returns the count granted."""
    engine = TrustEngine(stores, clock)
    candidates = await engine.bonus_candidates()
    granted = 0
    for record in candidates:
        try:
            if await engine.apply_periodic_bonus(record.worker_id) is not None:
                granted += 1
        except PreconditionFailedError:
            # Record changed under us; next run picks it up
            log.info("periodic_bonus_skipped", worker_id=record.worker_id)
    log.info("periodic_bonuses_applied", candidates=len(candidates), granted=granted)
    return granted
