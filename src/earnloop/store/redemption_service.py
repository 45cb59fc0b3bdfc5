"""Redemption engine: validate a spend, debit, and grant the item atomically."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import EconomyConfig
from earnloop.database import atomic
from earnloop.day_utils import utc_now
from earnloop.db.models import InventoryEntry, Redemption, StoreItem
from earnloop.earn.streak_service import lock_streak
from earnloop.errors import (
    EmailRequired,
    InsufficientBalance,
    ItemAlreadyActive,
    ItemNotFound,
    OwnershipLimitReached,
)
from earnloop.ledger.service import BalanceLedger
from earnloop.store.schemas import RedemptionRecord, RedemptionResult
from earnloop.users.service import load_active_user, normalize_email

logger = logging.getLogger(__name__)

# Item types granted as a single permanent ownership row.
PERMANENT_TYPES = frozenset({"cosmetic", "badge"})
# Item types with an activation window.
TIMED_TYPES = frozenset({"boost", "subscription"})


class RedemptionEngine:
    def __init__(self, db: AsyncSession, config: EconomyConfig | None = None) -> None:
        self.db = db
        self.config = config or EconomyConfig()
        self.ledger = BalanceLedger(db, self.config)

    async def redeem(
        self,
        user_id: int,
        item_id: str,
        email: str | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """Spend credits on a catalog item.

        Every check runs after the balance row is locked and inside the same
        transaction as the debit, so a failure leaves balance, inventory and
        redemption history untouched.
        """
        now = now or utc_now()
        async with atomic(self.db):
            await load_active_user(self.db, user_id)
            balance = await self.ledger.lock(user_id)

            item = await self.db.get(StoreItem, item_id)
            if item is None or not item.is_active:
                raise ItemNotFound(details={"item_id": item_id})

            if balance.current < item.credits_cost:
                raise InsufficientBalance(
                    f"Need {item.credits_cost} credits. You have {balance.current}",
                    details={"balance": balance.current, "required": item.credits_cost},
                )

            await self._check_ownership_limit(user_id, item)
            entry = await self._get_inventory_entry(user_id, item.id)
            await self._check_exclusivity(user_id, item, entry, now)

            delivery_email = None
            if item.item_type == "giftcard":
                delivery_email = normalize_email(email)
                if delivery_email is None:
                    raise EmailRequired(details={"item_id": item.id})

            new_balance = await self.ledger.debit(user_id, item.credits_cost, now=now)
            expires_at = await self._grant(user_id, item, entry, now)

            redemption = Redemption(
                user_id=user_id,
                item_id=item.id,
                credits_spent=item.credits_cost,
                status="pending_fulfillment" if item.item_type == "giftcard" else "completed",
                delivery_email=delivery_email,
                expires_at=expires_at,
                created_at=now,
            )
            self.db.add(redemption)
            await self.db.flush()
            record = RedemptionRecord.model_validate(redemption)

        logger.info("User %d redeemed %s for %d credits", user_id, item.id, item.credits_cost)
        return RedemptionResult(
            balance=new_balance,
            redemption=record,
            item_name=item.name,
            item_type=item.item_type,
            message=self._message(item),
        )

    # ── Checks ──

    async def _check_ownership_limit(self, user_id: int, item: StoreItem) -> None:
        if item.max_per_user is None:
            return
        owned = (await self.db.execute(
            select(func.count(Redemption.id)).where(
                Redemption.user_id == user_id,
                Redemption.item_id == item.id,
            )
        )).scalar_one()
        if owned >= item.max_per_user:
            raise OwnershipLimitReached(
                f"You can only redeem this item {item.max_per_user} time(s)",
                details={"item_id": item.id, "owned": owned, "max_per_user": item.max_per_user},
            )

    async def _get_inventory_entry(self, user_id: int, item_id: str) -> InventoryEntry | None:
        result = await self.db.execute(
            select(InventoryEntry)
            .where(InventoryEntry.user_id == user_id, InventoryEntry.item_id == item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().unique().one_or_none()

    async def _check_exclusivity(
        self,
        user_id: int,
        item: StoreItem,
        entry: InventoryEntry | None,
        now: datetime,
    ) -> None:
        if item.item_type == "boost":
            active = (await self.db.execute(
                select(InventoryEntry)
                .where(
                    InventoryEntry.user_id == user_id,
                    InventoryEntry.item_type == "boost",
                    InventoryEntry.is_active.is_(True),
                )
                .execution_options(populate_existing=True)
            )).scalars().unique().all()
            running = [e for e in active if e.is_active_at(now)]
            if running:
                raise ItemAlreadyActive(
                    "A boost is already active",
                    details={"item_id": running[0].item_id, "expires_at": running[0].expires_at.isoformat()
                             if running[0].expires_at else None},
                )
        elif item.item_type in PERMANENT_TYPES and entry is not None:
            raise ItemAlreadyActive("You already own this item", details={"item_id": item.id})
        elif item.item_type == "subscription" and entry is not None and entry.is_active_at(now):
            raise ItemAlreadyActive(
                "Subscription is still active",
                details={"item_id": item.id, "expires_at": entry.expires_at.isoformat() if entry.expires_at else None},
            )

    # ── Grants ──

    async def _grant(
        self,
        user_id: int,
        item: StoreItem,
        entry: InventoryEntry | None,
        now: datetime,
    ) -> datetime | None:
        """Upsert the inventory row for ``item``. Returns the expiry for timed items."""
        if item.item_type == "giftcard":
            return None

        if item.item_type == "consumable":
            if entry is None:
                entry = InventoryEntry(
                    user_id=user_id, item_id=item.id, item_type=item.item_type,
                    quantity=1, is_active=True, activated_at=now, created_at=now,
                )
                self.db.add(entry)
            else:
                entry.quantity += 1
            if item.effect == "streak_saver":
                streak = await lock_streak(self.db, user_id)
                streak.streak_saver_count += 1
                streak.updated_at = now
            await self.db.flush()
            return None

        expires_at = None
        if item.item_type in TIMED_TYPES and item.duration_days:
            expires_at = now + timedelta(days=item.duration_days)

        if entry is None:
            entry = InventoryEntry(
                user_id=user_id, item_id=item.id, item_type=item.item_type,
                quantity=1, created_at=now,
            )
            self.db.add(entry)
        else:
            entry.quantity += 1
        entry.is_active = True
        entry.activated_at = now
        entry.expires_at = expires_at
        await self.db.flush()
        return expires_at

    @staticmethod
    def _message(item: StoreItem) -> str:
        if item.item_type == "giftcard":
            return f"{item.name} redeemed. Your code will be emailed once fulfilled."
        if item.item_type == "boost":
            return f"{item.name} activated"
        return f"{item.name} redeemed"
