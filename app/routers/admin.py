from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.core.exceptions import NotFoundError
from app.deps import get_ledger, get_stores, get_trust_engine, require_admin
from app.models.user import User
from app.services.credits import Ledger
from app.services.trust import TrustEngine, TrustStatus, ViolationType
from app.stores.base import Stores

router = APIRouter()


class ViolationReport(BaseModel):
    worker_id: str
    violation_type: ViolationType
    job_id: str | None = None
    description: str | None = None


@router.post("/violations")
async def admin_apply_violation(
    body: ViolationReport,
    user: User = Depends(require_admin),
    stores: Stores = Depends(get_stores),
    engine: TrustEngine = Depends(get_trust_engine),
) -> TrustStatus:
    """Admin: record a violation against a worker."""
    if await stores.users.get(body.worker_id) is None:
        raise NotFoundError("User not found")
    record = await engine.apply_violation(body.worker_id, body.violation_type, body.job_id, body.description)
    return TrustStatus.from_record(record)


@router.post("/workers/{worker_id}/periodic-bonus")
async def admin_periodic_bonus(
    worker_id: str,
    user: User = Depends(require_admin),
    engine: TrustEngine = Depends(get_trust_engine),
):
    """Admin: grant the monthly bonus if the worker is eligible."""
    record = await engine.apply_periodic_bonus(worker_id)
    if record is None:
        return {"applied": False}
    return {"applied": True, "status": TrustStatus.from_record(record)}


@router.post("/workers/{worker_id}/reduce-strike")
async def admin_reduce_strike(
    worker_id: str,
    user: User = Depends(require_admin),
    engine: TrustEngine = Depends(get_trust_engine),
) -> TrustStatus:
    record = await engine.reduce_strike(worker_id)
    return TrustStatus.from_record(record)


@router.get("/workers/attention")
async def admin_workers_needing_attention(
    threshold: int = Query(50, ge=0, le=100),
    user: User = Depends(require_admin),
    engine: TrustEngine = Depends(get_trust_engine),
):
    """Admin: workers below the score threshold, lowest first."""
    records = await engine.workers_needing_attention(threshold)
    return {"items": [TrustStatus.from_record(r) for r in records]}


@router.get("/ledger/{user_id}/audit")
async def admin_ledger_audit(
    user_id: str,
    user: User = Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
):
    """Admin: replay a user's ledger."""
    report = await ledger.verify_replay(user_id)
    return {"consistent": report.consistent, "replayed_balance": report.replayed_balance, "stored_balance": report.stored_balance}
