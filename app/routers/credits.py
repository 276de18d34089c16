from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field

from app.core.pagination import Page, paginate
from app.deps import get_current_user, get_ledger
from app.models.credit_transaction import CreditTransaction
from app.models.user import User
from app.services.credits import Ledger

router = APIRouter()


class TopUpRequest(BaseModel):
    amount: int = Field(gt=0, le=100_000)


@router.get("/balance")
async def credits_balance(user: User = Depends(get_current_user), ledger: Ledger = Depends(get_ledger)):
    """Return current credit balance."""
    return {"balance": await ledger.get_balance(user.id)}


@router.get("/ledger")
async def credits_ledger(
    user: User = Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
    limit: int = Query(50),
    offset: int = Query(0),
) -> Page[CreditTransaction]:
    """Return ledger entries for current user (newest first)."""
    limit, offset = paginate(limit, offset)
    entries = await ledger.get_history(user.id, limit=limit, offset=offset)
    return Page[CreditTransaction](items=entries, limit=limit, offset=offset)


@router.post("/top-up")
async def credits_top_up(
    body: TopUpRequest,
    user: User = Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
):
    """Add in-app credits. A repeated Idempotency-Key returns the first entry."""
    entry, balance = await ledger.top_up(user.id, body.amount, idempotency_key=idempotency_key)
    return {"entry": entry, "balance": balance}


@router.get("/audit")
async def credits_audit(user: User = Depends(get_current_user), ledger: Ledger = Depends(get_ledger)):
    """Replay the current user's ledger and report whether every snapshot adds up."""
    report = await ledger.verify_replay(user.id)
    return {
        "consistent": report.consistent,
        "entries": report.entries,
        "replayed_balance": report.replayed_balance,
        "stored_balance": report.stored_balance,
        "first_mismatch_sequence": report.first_mismatch_sequence,
    }
