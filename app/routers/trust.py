from fastapi import APIRouter, Depends, Query

from app.core.exceptions import NotFoundError
from app.deps import get_current_user, get_stores, get_trust_engine
from app.models.user import User
from app.services.trust import ACCESS_LEVELS, PERMISSIONS, TrustEngine, TrustStatus, level_info
from app.stores.base import Stores

router = APIRouter()


@router.get("/status")
async def trust_my_status(
    user: User = Depends(get_current_user),
    engine: TrustEngine = Depends(get_trust_engine),
) -> TrustStatus:
    return await engine.get_trust_status(user.id)


@router.get("/status/{worker_id}")
async def trust_worker_status(
    worker_id: str,
    user: User = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
    engine: TrustEngine = Depends(get_trust_engine),
) -> TrustStatus:
    """Another account's trust status. Only existing accounts get a record."""
    if await stores.users.get(worker_id) is None:
        raise NotFoundError("User not found")
    return await engine.get_trust_status(worker_id)


@router.get("/permission/{action}")
async def trust_check_permission(
    action: str,
    user: User = Depends(get_current_user),
    engine: TrustEngine = Depends(get_trust_engine),
):
    return await engine.check_permission(user.id, action)


@router.get("/levels")
async def trust_levels():
    """Access level bands and the actions each one unlocks."""
    return {
        "levels": [
            {
                "level": info.level.value,
                "min_score": info.min_score,
                "max_score": info.max_score,
                "label": info.label,
                "color": info.color,
                "actions": sorted(a for a, levels in PERMISSIONS.items() if info.level in levels),
            }
            for info in ACCESS_LEVELS
        ]
    }


@router.get("/leaderboard")
async def trust_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    engine: TrustEngine = Depends(get_trust_engine),
):
    records = await engine.leaderboard(limit=limit)
    return {
        "items": [
            {
                "worker_id": r.worker_id,
                "score": r.score,
                "access_level": r.access_level.value,
                "label": level_info(r.access_level).label,
                "total_violations": r.total_violations,
            }
            for r in records
        ]
    }
