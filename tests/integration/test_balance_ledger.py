"""Balance ledger: invariant preservation and lost-update safety."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from earnloop.database import atomic
from earnloop.db.models import Balance, EarnEvent
from earnloop.errors import InsufficientBalance, InvalidAmount
from earnloop.ledger.service import BalanceLedger, EarnEventDraft

from conftest import NOW


def _draft() -> EarnEventDraft:
    return EarnEventDraft(event_type="checkin")


async def _balance(session_factory, user_id: int) -> Balance:
    async with session_factory() as s:
        return await s.get(Balance, user_id)


class TestCreditDebit:
    """Credit and debit keep current == earned - spent and current >= 0."""

    @pytest.mark.asyncio
    async def test_credit_increments_and_appends_event(self, session_factory, user_id):
        async with session_factory() as db:
            async with atomic(db):
                snap = await BalanceLedger(db).credit(user_id, 25, _draft(), now=NOW)
        assert (snap.current, snap.lifetime_earned, snap.lifetime_spent) == (25, 25, 0)

        async with session_factory() as db:
            events = (await db.execute(select(EarnEvent).where(EarnEvent.user_id == user_id))).scalars().all()
        assert len(events) == 1
        assert events[0].amount == 25
        assert events[0].created_at == NOW

    @pytest.mark.asyncio
    async def test_debit_decrements(self, session_factory, user_id):
        async with session_factory() as db:
            async with atomic(db):
                ledger = BalanceLedger(db)
                await ledger.credit(user_id, 100, _draft(), now=NOW)
                snap = await ledger.debit(user_id, 40, now=NOW)
        assert (snap.current, snap.lifetime_earned, snap.lifetime_spent) == (60, 100, 40)

    @pytest.mark.asyncio
    async def test_overdraft_rejected_without_change(self, session_factory, user_id):
        async with session_factory() as db:
            async with atomic(db):
                await BalanceLedger(db).credit(user_id, 30, _draft(), now=NOW)

        async with session_factory() as db:
            with pytest.raises(InsufficientBalance) as exc_info:
                async with atomic(db):
                    await BalanceLedger(db).debit(user_id, 31, now=NOW)
        assert exc_info.value.details == {"balance": 30, "required": 31}

        balance = await _balance(session_factory, user_id)
        assert (balance.current, balance.lifetime_earned, balance.lifetime_spent) == (30, 30, 0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amounts_rejected(self, session_factory, user_id, amount):
        async with session_factory() as db:
            ledger = BalanceLedger(db)
            with pytest.raises(InvalidAmount):
                await ledger.credit(user_id, amount, _draft(), now=NOW)
            with pytest.raises(InvalidAmount):
                await ledger.debit(user_id, amount, now=NOW)

    @pytest.mark.asyncio
    async def test_invariant_over_mixed_sequence(self, session_factory, user_id):
        ops = [("c", 50), ("d", 20), ("c", 5), ("d", 35), ("d", 1), ("c", 15), ("d", 15)]
        async with session_factory() as db:
            ledger = BalanceLedger(db)
            for op, amount in ops:
                try:
                    async with atomic(db):
                        if op == "c":
                            await ledger.credit(user_id, amount, _draft(), now=NOW)
                        else:
                            await ledger.debit(user_id, amount, now=NOW)
                except InsufficientBalance:
                    pass
                snap = await ledger.snapshot(user_id)
                await db.commit()
                assert snap.current == snap.lifetime_earned - snap.lifetime_spent
                assert snap.current >= 0

        balance = await _balance(session_factory, user_id)
        # the 1-credit debit is rejected: 50-20+5-35 = 0
        assert (balance.current, balance.lifetime_earned, balance.lifetime_spent) == (0, 70, 70)

    @pytest.mark.asyncio
    async def test_snapshot_of_unknown_user_is_zero(self, db):
        snap = await BalanceLedger(db).snapshot(999_999)
        assert snap.current == 0


class TestConcurrency:
    """Concurrent credits on one user serialise on the balance row."""

    @pytest.mark.asyncio
    async def test_hundred_concurrent_credits(self, session_factory, user_id):
        async def credit_once() -> None:
            async with session_factory() as db:
                async with atomic(db):
                    await BalanceLedger(db).credit(user_id, 10, _draft(), now=NOW)

        await asyncio.gather(*(credit_once() for _ in range(100)))

        balance = await _balance(session_factory, user_id)
        assert balance.current == 1000
        assert balance.lifetime_earned == 1000
        async with session_factory() as db:
            count = (await db.execute(
                select(func.count(EarnEvent.id)).where(EarnEvent.user_id == user_id)
            )).scalar_one()
        assert count == 100

    @pytest.mark.asyncio
    async def test_concurrent_debits_never_overdraw(self, session_factory, user_id):
        async with session_factory() as db:
            async with atomic(db):
                await BalanceLedger(db).credit(user_id, 100, _draft(), now=NOW)

        async def debit_once() -> bool:
            async with session_factory() as db:
                try:
                    async with atomic(db):
                        await BalanceLedger(db).debit(user_id, 30, now=NOW)
                except InsufficientBalance:
                    return False
                return True

        results = await asyncio.gather(*(debit_once() for _ in range(10)))

        assert sum(results) == 3
        balance = await _balance(session_factory, user_id)
        assert (balance.current, balance.lifetime_spent) == (10, 90)
