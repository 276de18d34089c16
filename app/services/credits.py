"""Credits ledger and atomic balance updates."""

from dataclasses import dataclass

from app.core.clock import Clock, utcnow
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.models.credit_transaction import CreditTransaction, TransactionType
from app.stores.base import Stores

log = get_logger(__name__)


@dataclass
class ReplayReport:
    user_id: str
    entries: int
    replayed_balance: int
    stored_balance: int
    first_mismatch_sequence: int | None = None

    @property
    def consistent(self) -> bool:
        return self.first_mismatch_sequence is None and self.replayed_balance == self.stored_balance


class Ledger:
    """Append-only credit ledger. Every entry snapshots the balance right after it."""

    def __init__(self, stores: Stores, clock: Clock = utcnow) -> None:
        self.stores = stores
        self.clock = clock

    async def get_balance(self, user_id: str) -> int:
        """Return current balance for user (0 if no record)."""
        return await self.stores.ledger.get_balance(user_id)

    async def credit(
        self,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        related_job_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[CreditTransaction, int]:
        if amount <= 0:
            raise BadRequestError("Credit amount must be positive", details={"amount": amount})
        return await self._apply(user_id, type, amount, description, related_job_id, idempotency_key)

    async def debit(
        self,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        related_job_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[CreditTransaction, int]:
        """Raises InsufficientBalanceError, with nothing written, if the balance would go negative."""
        if amount <= 0:
            raise BadRequestError("Debit amount must be positive", details={"amount": amount})
        return await self._apply(user_id, type, -amount, description, related_job_id, idempotency_key)

    async def _apply(
        self,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        related_job_id: str | None,
        idempotency_key: str | None,
    ) -> tuple[CreditTransaction, int]:
        """
        Atomically update the balance and append the entry.
        Returns (entry, balance_after).
        Idempotency: a key already used by this user returns the existing entry without re-applying.
        """
        async with self.stores.transaction():
            if idempotency_key:
                existing = await self.stores.ledger.find_by_idempotency_key(user_id, idempotency_key)
                if existing:
                    return existing, await self.stores.ledger.get_balance(user_id)
            balance_after, sequence = await self.stores.ledger.adjust_balance(user_id, amount)
            entry = CreditTransaction(
                user_id=user_id,
                type=type,
                amount=amount,
                balance=balance_after,
                sequence=sequence,
                description=description,
                related_job_id=related_job_id,
                idempotency_key=idempotency_key,
                created_at=self.clock(),
            )
            await self.stores.ledger.append(entry)
        log.info(
            "ledger_entry",
            user_id=user_id,
            type=type.value,
            amount=amount,
            balance=balance_after,
            sequence=sequence,
            related_job_id=related_job_id,
        )
        return entry, balance_after

    async def get_history(self, user_id: str, limit: int = 50, offset: int = 0) -> list[CreditTransaction]:
        """Newest first."""
        return await self.stores.ledger.list_entries(user_id, limit=limit, offset=offset, newest_first=True)

    async def top_up(self, user_id: str, amount: int, idempotency_key: str | None = None) -> tuple[CreditTransaction, int]:
        return await self.credit(
            user_id,
            TransactionType.TOP_UP,
            amount,
            f"Credit top-up: {amount}",
            idempotency_key=idempotency_key,
        )

    async def verify_replay(self, user_id: str) -> ReplayReport:
        """Re-add every entry in sequence order and compare with the stored snapshots and balance."""
        entries = await self.stores.ledger.list_entries(user_id, newest_first=False)
        running = 0
        mismatch = None
        for entry in entries:
            running += entry.amount
            if mismatch is None and entry.balance != running:
                mismatch = entry.sequence
        report = ReplayReport(
            user_id=user_id,
            entries=len(entries),
            replayed_balance=running,
            stored_balance=await self.stores.ledger.get_balance(user_id),
            first_mismatch_sequence=mismatch,
        )
        if not report.consistent:
            log.error(
                "ledger_replay_mismatch",
                user_id=user_id,
                replayed_balance=report.replayed_balance,
                stored_balance=report.stored_balance,
                first_mismatch_sequence=mismatch,
            )
        return report
