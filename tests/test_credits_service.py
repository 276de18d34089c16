"""Unit tests for the credits ledger on the in-memory stores."""

import pytest

from app.core.exceptions import BadRequestError, InsufficientBalanceError
from app.models.credit_transaction import TransactionType

pytestmark = pytest.mark.asyncio


async def test_get_balance_empty(ledger):
    assert await ledger.get_balance("nobody") == 0
    assert await ledger.get_history("nobody") == []


async def test_credit_and_debit_snapshot_balance(ledger):
    entry, balance = await ledger.credit("u1", TransactionType.TOP_UP, 100, "top up")
    assert entry.amount == 100
    assert entry.balance == 100
    assert entry.sequence == 1
    assert balance == 100

    entry, balance = await ledger.debit("u1", TransactionType.PENALTY, 30, "penalty")
    assert entry.amount == -30
    assert entry.balance == 70
    assert entry.sequence == 2
    assert balance == 70
    assert await ledger.get_balance("u1") == 70


async def test_debit_cannot_go_negative(ledger):
    await ledger.credit("u1", TransactionType.BONUS, 20, "bonus")
    with pytest.raises(InsufficientBalanceError) as exc:
        await ledger.debit("u1", TransactionType.PENALTY, 25, "penalty")
    assert exc.value.details == {"balance": 20, "requested": 25}
    assert await ledger.get_balance("u1") == 20
    assert len(await ledger.get_history("u1")) == 1


@pytest.mark.parametrize("amount", [0, -5])
async def test_non_positive_amounts_rejected(ledger, amount):
    with pytest.raises(BadRequestError):
        await ledger.credit("u1", TransactionType.BONUS, amount, "bad")
    with pytest.raises(BadRequestError):
        await ledger.debit("u1", TransactionType.PENALTY, amount, "bad")


async def test_idempotency_key_does_not_double_apply(ledger):
    entry, balance = await ledger.top_up("u1", 100, idempotency_key="key-1")
    entry2, balance2 = await ledger.top_up("u1", 100, idempotency_key="key-1")
    assert entry.id == entry2.id
    assert balance == balance2 == 100
    assert len(await ledger.get_history("u1")) == 1


async def test_history_newest_first_and_paginated(ledger):
    for amount in (10, 20, 30):
        await ledger.credit("u1", TransactionType.BONUS, amount, "bonus")
    history = await ledger.get_history("u1")
    assert [e.amount for e in history] == [30, 20, 10]
    page = await ledger.get_history("u1", limit=1, offset=1)
    assert [e.amount for e in page] == [20]


async def test_replay_matches_every_snapshot(ledger):
    await ledger.credit("u1", TransactionType.BONUS, 100, "welcome")
    await ledger.debit("u1", TransactionType.PENALTY, 25, "penalty")
    await ledger.credit("u1", TransactionType.JOB_COMPLETION, 72, "job")
    await ledger.debit("u1", TransactionType.PENALTY, 147, "penalty")

    entries = list(reversed(await ledger.get_history("u1")))
    running = 0
    for entry in entries:
        running += entry.amount
        assert entry.balance == running

    report = await ledger.verify_replay("u1")
    assert report.consistent
    assert report.entries == 4
    assert report.replayed_balance == report.stored_balance == 0


async def test_replay_reports_tampered_snapshot(ledger, stores):
    await ledger.credit("u1", TransactionType.BONUS, 50, "bonus")
    await ledger.credit("u1", TransactionType.BONUS, 50, "bonus")
    # Corrupt the stored snapshot of the second entry directly
    stored = stores._tables.entries
    second = next(e for e in stored.values() if e.sequence == 2)
    second.balance = 999

    report = await ledger.verify_replay("u1")
    assert not report.consistent
    assert report.first_mismatch_sequence == 2


async def test_failed_transaction_rolls_back_ledger(ledger, stores):
    await ledger.credit("u1", TransactionType.BONUS, 50, "bonus")
    with pytest.raises(RuntimeError):
        async with stores.transaction():
            await ledger.credit("u1", TransactionType.BONUS, 10, "bonus")
            raise RuntimeError("boom")
    assert await ledger.get_balance("u1") == 50
    assert len(await ledger.get_history("u1")) == 1
