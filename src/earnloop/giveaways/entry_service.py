"""Giveaway entry ledger: free, bonus and paid entries per user per giveaway.

Free entries are claimed once. Bonus entries are earned through engagement,
capped per giveaway and spaced by a cooldown; they are never sold. Paid
entries cost credits and are unbounded.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import EconomyConfig
from earnloop.database import atomic
from earnloop.day_utils import utc_now
from earnloop.db.models import Giveaway, GiveawayEntry
from earnloop.errors import (
    AlreadyClaimed,
    BonusLimitReached,
    CooldownActive,
    FreeEntryRequired,
    GiveawayClosed,
    GiveawayNotFound,
    InvalidPayload,
)
from earnloop.giveaways.schemas import EntriesResponse, EntryCounts, EntryResult
from earnloop.ledger.service import BalanceLedger
from earnloop.users.service import load_active_user

logger = logging.getLogger(__name__)

ACTIONS = ("claim_free", "buy", "earn_bonus")


class GiveawayEntryLedger:
    def __init__(self, db: AsyncSession, config: EconomyConfig | None = None) -> None:
        self.db = db
        self.config = config or EconomyConfig()
        self.ledger = BalanceLedger(db, self.config)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.config.bonus_cooldown_hours)

    async def enter_giveaway(
        self,
        user_id: int,
        giveaway_id: str,
        action: str,
        engagement_type: str | None = None,
        now: datetime | None = None,
    ) -> EntryResult:
        """Dispatch one entry action. Banned accounts fail before the action is looked at."""
        if action not in ACTIONS:
            async with atomic(self.db):
                await load_active_user(self.db, user_id)
            raise InvalidPayload(f"Unknown giveaway action: {action}", details={"action": action, "allowed": list(ACTIONS)})
        if action == "claim_free":
            return await self.claim_free_entry(user_id, giveaway_id, now=now)
        if action == "buy":
            return await self.buy_entry(user_id, giveaway_id, now=now)
        if action == "earn_bonus":
            return await self.earn_bonus_entry(user_id, giveaway_id, engagement_type, now=now)

    async def claim_free_entry(self, user_id: int, giveaway_id: str, now: datetime | None = None) -> EntryResult:
        now = now or utc_now()
        async with atomic(self.db):
            giveaway = await self._prepare(user_id, giveaway_id, now)
            if await self._get_entry(user_id, giveaway_id, "free") is not None:
                raise AlreadyClaimed(details={"giveaway_id": giveaway_id})

            self.db.add(GiveawayEntry(
                user_id=user_id, giveaway_id=giveaway_id, entry_type="free",
                entries_count=1, created_at=now, updated_at=now,
            ))
            await self.db.flush()
            counts = await self._counts(user_id, giveaway, now)

        logger.info("User %d claimed free entry for %s", user_id, giveaway_id)
        return EntryResult(action="claim_free", entries=counts, message="Free entry claimed")

    async def buy_entry(self, user_id: int, giveaway_id: str, now: datetime | None = None) -> EntryResult:
        now = now or utc_now()
        cost = self.config.giveaway_entry_cost
        async with atomic(self.db):
            giveaway = await self._prepare(user_id, giveaway_id, now)
            await self._require_free_entry(user_id, giveaway_id)

            balance = await self.ledger.debit(user_id, cost, now=now)
            paid = await self._get_entry(user_id, giveaway_id, "paid")
            if paid is None:
                self.db.add(GiveawayEntry(
                    user_id=user_id, giveaway_id=giveaway_id, entry_type="paid",
                    entries_count=1, created_at=now, updated_at=now,
                ))
            else:
                paid.entries_count += 1
                paid.updated_at = now
            await self.db.flush()
            counts = await self._counts(user_id, giveaway, now)

        logger.info("User %d bought entry for %s (%d credits)", user_id, giveaway_id, cost)
        return EntryResult(
            action="buy", entries=counts, credits_spent=cost, balance=balance,
            message=f"Entry purchased for {cost} credits",
        )

    async def earn_bonus_entry(
        self,
        user_id: int,
        giveaway_id: str,
        engagement_type: str | None = None,
        now: datetime | None = None,
    ) -> EntryResult:
        now = now or utc_now()
        async with atomic(self.db):
            giveaway = await self._prepare(user_id, giveaway_id, now)
            await self._require_free_entry(user_id, giveaway_id)

            bonus = await self._get_entry(user_id, giveaway_id, "bonus")
            if bonus is not None:
                if bonus.entries_count >= giveaway.bonus_entries_available:
                    raise BonusLimitReached(details={
                        "giveaway_id": giveaway_id,
                        "bonus_entries": bonus.entries_count,
                        "bonus_entries_available": giveaway.bonus_entries_available,
                    })
                cooldown_ends_at = bonus.updated_at + self.cooldown
                if now < cooldown_ends_at:
                    remaining = int((cooldown_ends_at - now).total_seconds())
                    raise CooldownActive(
                        f"Next bonus entry available in {remaining // 3600}h {(remaining % 3600) // 60}m",
                        details={"cooldown_ends_at": cooldown_ends_at.isoformat(), "remaining_seconds": remaining},
                    )
                bonus.entries_count += 1
                bonus.engagement_type = engagement_type
                bonus.updated_at = now
            elif giveaway.bonus_entries_available <= 0:
                raise BonusLimitReached(details={"giveaway_id": giveaway_id, "bonus_entries_available": 0})
            else:
                self.db.add(GiveawayEntry(
                    user_id=user_id, giveaway_id=giveaway_id, entry_type="bonus",
                    entries_count=1, engagement_type=engagement_type, created_at=now, updated_at=now,
                ))
            await self.db.flush()
            counts = await self._counts(user_id, giveaway, now)

        logger.info("User %d earned bonus entry for %s via %s", user_id, giveaway_id, engagement_type)
        return EntryResult(action="earn_bonus", entries=counts, message="Bonus entry earned")

    async def get_entries(self, user_id: int, now: datetime | None = None) -> EntriesResponse:
        """Entry counts for every giveaway the user has entered."""
        now = now or utc_now()
        rows = (await self.db.execute(
            select(GiveawayEntry, Giveaway)
            .join(Giveaway, Giveaway.id == GiveawayEntry.giveaway_id)
            .where(GiveawayEntry.user_id == user_id)
            .order_by(GiveawayEntry.giveaway_id)
        )).all()

        grouped: dict[str, list[GiveawayEntry]] = defaultdict(list)
        giveaways: dict[str, Giveaway] = {}
        for entry, giveaway in rows:
            grouped[giveaway.id].append(entry)
            giveaways[giveaway.id] = giveaway

        return EntriesResponse(
            giveaways=[self._summarize(giveaways[gid], entries, now) for gid, entries in grouped.items()],
            entry_cost=self.config.giveaway_entry_cost,
            cooldown_hours=self.config.bonus_cooldown_hours,
        )

    # ── Internals ──

    async def _prepare(self, user_id: int, giveaway_id: str, now: datetime) -> Giveaway:
        """Ban check, per-user lock, then giveaway availability."""
        await load_active_user(self.db, user_id)
        await self.ledger.lock(user_id)

        giveaway = await self.db.get(Giveaway, giveaway_id, populate_existing=True)
        if giveaway is None or not giveaway.is_active:
            raise GiveawayNotFound(details={"giveaway_id": giveaway_id})
        if giveaway.closes_at is not None and now >= giveaway.closes_at:
            raise GiveawayClosed(details={"giveaway_id": giveaway_id, "closes_at": giveaway.closes_at.isoformat()})
        return giveaway

    async def _get_entry(self, user_id: int, giveaway_id: str, entry_type: str) -> GiveawayEntry | None:
        result = await self.db.execute(
            select(GiveawayEntry)
            .where(
                GiveawayEntry.user_id == user_id,
                GiveawayEntry.giveaway_id == giveaway_id,
                GiveawayEntry.entry_type == entry_type,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_free_entry(self, user_id: int, giveaway_id: str) -> None:
        if await self._get_entry(user_id, giveaway_id, "free") is None:
            raise FreeEntryRequired(details={"giveaway_id": giveaway_id})

    async def _counts(self, user_id: int, giveaway: Giveaway, now: datetime) -> EntryCounts:
        entries = (await self.db.execute(
            select(GiveawayEntry).where(
                GiveawayEntry.user_id == user_id,
                GiveawayEntry.giveaway_id == giveaway.id,
            )
        )).scalars().all()
        return self._summarize(giveaway, list(entries), now)

    def _summarize(self, giveaway: Giveaway, entries: list[GiveawayEntry], now: datetime) -> EntryCounts:
        by_type = {e.entry_type: e for e in entries}
        free = by_type["free"].entries_count if "free" in by_type else 0
        bonus = by_type["bonus"].entries_count if "bonus" in by_type else 0
        paid = by_type["paid"].entries_count if "paid" in by_type else 0

        next_bonus_at = None
        remaining = 0
        if "bonus" in by_type and bonus < giveaway.bonus_entries_available:
            next_bonus_at = by_type["bonus"].updated_at + self.cooldown
            remaining = max(0, int((next_bonus_at - now).total_seconds()))

        return EntryCounts(
            giveaway_id=giveaway.id,
            free_entries=free,
            bonus_entries=bonus,
            paid_entries=paid,
            total_entries=free + bonus + paid,
            bonus_entries_available=giveaway.bonus_entries_available,
            next_bonus_at=next_bonus_at,
            bonus_cooldown_remaining_seconds=remaining,
        )
