"""Balance ledger: the only code path that changes a user's credits."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import EconomyConfig
from earnloop.day_utils import utc_now
from earnloop.db.models import Balance, EarnEvent
from earnloop.errors import InsufficientBalance, InvalidAmount
from earnloop.ledger.schemas import BalanceSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EarnEventDraft:
    """Originating earn event, inserted by ``credit`` in the same transaction."""

    event_type: str
    device_id: int | None = None
    idempotency_token: str | None = None
    module_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class BalanceLedger:
    """Atomic credit/debit primitives over the ``balances`` table.

    Every mutation re-reads the balance row with ``SELECT ... FOR UPDATE`` so
    concurrent credits and debits for one user serialise instead of
    interleaving. The ledger never commits; the caller owns the transaction.
    It also never deduplicates: that belongs to the earn and store layers.
    """

    def __init__(self, db: AsyncSession, config: EconomyConfig | None = None) -> None:
        self.db = db
        self.config = config or EconomyConfig()

    async def lock(self, user_id: int) -> Balance:
        """Lock and return the user's balance row, creating it if signup skipped it."""
        result = await self.db.execute(
            select(Balance)
            .where(Balance.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            balance = Balance(user_id=user_id, current=0, lifetime_earned=0, lifetime_spent=0)
            self.db.add(balance)
            await self.db.flush()
        return balance

    async def snapshot(self, user_id: int) -> BalanceSnapshot:
        """Read the current balance without locking (display only)."""
        balance = await self.db.get(Balance, user_id, populate_existing=True)
        if balance is None:
            return BalanceSnapshot(current=0, lifetime_earned=0, lifetime_spent=0)
        return BalanceSnapshot.model_validate(balance)

    async def credit(
        self,
        user_id: int,
        amount: int,
        event: EarnEventDraft,
        now: datetime | None = None,
    ) -> BalanceSnapshot:
        """Add ``amount`` credits and append the originating earn event."""
        if amount <= 0:
            raise InvalidAmount(details={"amount": amount})
        now = now or utc_now()

        balance = await self.lock(user_id)
        balance.current += amount
        balance.lifetime_earned += amount
        balance.updated_at = now

        self.db.add(EarnEvent(
            user_id=user_id,
            device_id=event.device_id,
            event_type=event.event_type,
            amount=amount,
            idempotency_token=event.idempotency_token,
            module_id=event.module_id,
            event_metadata=event.metadata or None,
            created_at=now,
        ))
        await self.db.flush()

        logger.debug("Credited %d to user %d (%s)", amount, user_id, event.event_type)
        return BalanceSnapshot.model_validate(balance)

    async def debit(
        self,
        user_id: int,
        amount: int,
        now: datetime | None = None,
    ) -> BalanceSnapshot:
        """Remove ``amount`` credits. Rejects without change if the balance is short."""
        if amount <= 0:
            raise InvalidAmount(details={"amount": amount})
        now = now or utc_now()

        balance = await self.lock(user_id)
        if balance.current < amount:
            raise InsufficientBalance(
                f"Need {amount} credits. You have {balance.current}",
                details={"balance": balance.current, "required": amount},
            )
        balance.current -= amount
        balance.lifetime_spent += amount
        balance.updated_at = now
        await self.db.flush()

        logger.debug("Debited %d from user %d", amount, user_id)
        return BalanceSnapshot.model_validate(balance)
