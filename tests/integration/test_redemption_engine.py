"""Redemption engine: atomic spends, ownership caps and item exclusivity."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from earnloop.database import atomic
from earnloop.db.models import Balance, InventoryEntry, Redemption, Streak
from earnloop.errors import (
    AccountBanned,
    EmailRequired,
    InsufficientBalance,
    ItemAlreadyActive,
    ItemNotFound,
    OwnershipLimitReached,
)
from earnloop.admin.service import AdminService
from earnloop.ledger.service import BalanceLedger, EarnEventDraft
from earnloop.store.catalog_service import get_redemption_history, list_catalog
from earnloop.store.inventory_service import get_inventory
from earnloop.store.redemption_service import RedemptionEngine
from earnloop.store.seed import STORE_SEED_DATA, seed_store_items

from conftest import NOW


async def _fund(session_factory, user_id: int, amount: int) -> None:
    async with session_factory() as s:
        async with atomic(s):
            await BalanceLedger(s).credit(user_id, amount, EarnEventDraft(event_type="lesson"), now=NOW)


async def _state(session_factory, user_id: int) -> tuple[int, int, int]:
    """(balance, inventory rows, redemptions) for a user."""
    async with session_factory() as s:
        balance = (await s.get(Balance, user_id)).current
        inventory = (await s.execute(
            select(func.count(InventoryEntry.id)).where(InventoryEntry.user_id == user_id)
        )).scalar_one()
        redemptions = (await s.execute(
            select(func.count(Redemption.id)).where(Redemption.user_id == user_id)
        )).scalar_one()
    return balance, inventory, redemptions


class TestRedeemBasics:
    @pytest.mark.asyncio
    async def test_cosmetic_redeemed(self, session_factory, user_id, add_item):
        await add_item("theme-gold", 300, "cosmetic", max_per_user=1)
        await _fund(session_factory, user_id, 500)

        async with session_factory() as db:
            result = await RedemptionEngine(db).redeem(user_id, "theme-gold", now=NOW)

        assert result.balance.current == 200
        assert result.balance.lifetime_spent == 300
        assert result.redemption.status == "completed"
        assert result.redemption.credits_spent == 300
        assert await _state(session_factory, user_id) == (200, 1, 1)

    @pytest.mark.asyncio
    async def test_insufficient_balance_changes_nothing(self, session_factory, user_id, add_item):
        await add_item("badge-vip", 1000, "badge", max_per_user=1)
        await _fund(session_factory, user_id, 999)

        async with session_factory() as db:
            with pytest.raises(InsufficientBalance) as exc_info:
                await RedemptionEngine(db).redeem(user_id, "badge-vip", now=NOW)

        assert exc_info.value.details == {"balance": 999, "required": 1000}
        assert await _state(session_factory, user_id) == (999, 0, 0)

    @pytest.mark.asyncio
    async def test_unknown_item(self, session_factory, user_id):
        async with session_factory() as db:
            with pytest.raises(ItemNotFound):
                await RedemptionEngine(db).redeem(user_id, "does-not-exist", now=NOW)

    @pytest.mark.asyncio
    async def test_inactive_item_not_found(self, session_factory, user_id, add_item):
        await add_item("retired", 10, "cosmetic", is_active=False)
        await _fund(session_factory, user_id, 50)
        async with session_factory() as db:
            with pytest.raises(ItemNotFound):
                await RedemptionEngine(db).redeem(user_id, "retired", now=NOW)

    @pytest.mark.asyncio
    async def test_banned_user_checked_first(self, session_factory, user_id):
        async with session_factory() as s:
            await AdminService(s).ban_user(user_id, "fraud", now=NOW)
        async with session_factory() as db:
            with pytest.raises(AccountBanned):
                await RedemptionEngine(db).redeem(user_id, "does-not-exist", now=NOW)


class TestOwnershipCap:
    @pytest.mark.asyncio
    async def test_max_per_user_one(self, session_factory, user_id, add_item):
        await add_item("founder", 100, "subscription", max_per_user=1, duration_days=1)
        await _fund(session_factory, user_id, 1000)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            await engine.redeem(user_id, "founder", now=NOW)
            # expired subscription would otherwise be re-purchasable
            with pytest.raises(OwnershipLimitReached):
                await engine.redeem(user_id, "founder", now=NOW + timedelta(days=2))

        assert await _state(session_factory, user_id) == (900, 1, 1)

    @pytest.mark.asyncio
    async def test_concurrent_redeems_buy_once(self, session_factory, user_id, add_item):
        await add_item("founder", 100, "subscription", max_per_user=1, duration_days=30)
        await _fund(session_factory, user_id, 500)

        async def redeem() -> str:
            async with session_factory() as s:
                try:
                    await RedemptionEngine(s).redeem(user_id, "founder", now=NOW)
                except OwnershipLimitReached as e:
                    return e.code
                return "ok"

        results = await asyncio.gather(*(redeem() for _ in range(5)))
        assert results.count("ok") == 1
        assert await _state(session_factory, user_id) == (400, 1, 1)

    @pytest.mark.asyncio
    async def test_unlimited_consumable_stacks(self, session_factory, user_id, add_item):
        await add_item("snack", 10, "consumable")
        await _fund(session_factory, user_id, 100)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            for _ in range(3):
                await engine.redeem(user_id, "snack", now=NOW)
            entry = (await db.execute(select(InventoryEntry))).scalars().unique().one()

        assert entry.quantity == 3
        assert await _state(session_factory, user_id) == (70, 1, 3)


class TestItemTypes:
    @pytest.mark.asyncio
    async def test_giftcard_requires_valid_email(self, session_factory, user_id, add_item):
        await add_item("giftcard-5", 5000, "giftcard")
        await _fund(session_factory, user_id, 6000)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            with pytest.raises(EmailRequired):
                await engine.redeem(user_id, "giftcard-5", now=NOW)
            with pytest.raises(EmailRequired):
                await engine.redeem(user_id, "giftcard-5", email="not-an-email", now=NOW)
            result = await engine.redeem(user_id, "giftcard-5", email="Winner@Example.com", now=NOW)

        assert result.redemption.status == "pending_fulfillment"
        assert result.redemption.delivery_email == "winner@example.com"
        # gift cards grant no inventory row
        assert await _state(session_factory, user_id) == (1000, 0, 1)

    @pytest.mark.asyncio
    async def test_boost_activation_and_exclusivity(self, session_factory, user_id, add_item):
        await add_item("boost-24h", 100, "boost", duration_days=1)
        await add_item("boost-7d", 500, "boost", duration_days=7)
        await _fund(session_factory, user_id, 1000)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            result = await engine.redeem(user_id, "boost-24h", now=NOW)
            assert result.redemption.expires_at == NOW + timedelta(days=1)

            with pytest.raises(ItemAlreadyActive):
                await engine.redeem(user_id, "boost-7d", now=NOW + timedelta(hours=2))

            # after expiry (evaluated lazily) another boost is allowed
            await engine.redeem(user_id, "boost-7d", now=NOW + timedelta(days=1, seconds=1))

        assert await _state(session_factory, user_id) == (400, 2, 2)

    @pytest.mark.asyncio
    async def test_boost_reactivation_resets_window(self, session_factory, user_id, add_item):
        await add_item("boost-24h", 100, "boost", duration_days=1)
        await _fund(session_factory, user_id, 1000)
        later = NOW + timedelta(days=3)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            await engine.redeem(user_id, "boost-24h", now=NOW)
            await engine.redeem(user_id, "boost-24h", now=later)
            entry = (await db.execute(select(InventoryEntry))).scalars().unique().one()

        assert entry.is_active is True
        assert entry.activated_at == later
        assert entry.expires_at == later + timedelta(days=1)
        assert entry.quantity == 2

    @pytest.mark.asyncio
    async def test_cosmetic_owned_once_even_without_cap(self, session_factory, user_id, add_item):
        await add_item("theme-neon", 250, "cosmetic")
        await _fund(session_factory, user_id, 1000)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            await engine.redeem(user_id, "theme-neon", now=NOW)
            with pytest.raises(ItemAlreadyActive):
                await engine.redeem(user_id, "theme-neon", now=NOW)

        assert await _state(session_factory, user_id) == (750, 1, 1)

    @pytest.mark.asyncio
    async def test_streak_saver_purchase_adds_saver(self, session_factory, user_id, add_item):
        await add_item("streak-saver", 150, "consumable", effect="streak_saver")
        await _fund(session_factory, user_id, 300)

        async with session_factory() as db:
            engine = RedemptionEngine(db)
            await engine.redeem(user_id, "streak-saver", now=NOW)
            await engine.redeem(user_id, "streak-saver", now=NOW)

        async with session_factory() as s:
            streak = await s.get(Streak, user_id)
        assert streak.streak_saver_count == 2


class TestCatalogAndInventory:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, session_factory):
        async with session_factory() as db:
            assert await seed_store_items(db) == len(STORE_SEED_DATA)
        async with session_factory() as db:
            await seed_store_items(db)
            catalog = await list_catalog(db, user_id=1, now=NOW)
        assert len(catalog.items) == len(STORE_SEED_DATA)
        assert [i.id for i in catalog.items][:1] == ["giftcard-amazon-5"]

    @pytest.mark.asyncio
    async def test_catalog_flags(self, session_factory, user_id, add_item):
        await add_item("cheap", 50, "cosmetic", max_per_user=1, sort_order=1)
        await add_item("pricey", 5000, "badge", max_per_user=1, sort_order=2)
        await _fund(session_factory, user_id, 100)
        async with session_factory() as db:
            await RedemptionEngine(db).redeem(user_id, "cheap", now=NOW)

        async with session_factory() as db:
            catalog = await list_catalog(db, user_id, now=NOW)
        by_id = {i.id: i for i in catalog.items}
        assert catalog.balance == 50
        assert by_id["cheap"].can_redeem is False
        assert by_id["cheap"].user_redemptions == 1
        assert by_id["pricey"].can_afford is False
        assert by_id["pricey"].can_redeem is True

    @pytest.mark.asyncio
    async def test_inventory_reports_expired_boost_inactive(self, session_factory, user_id, add_item):
        await add_item("boost-24h", 100, "boost", duration_days=1)
        await _fund(session_factory, user_id, 100)
        async with session_factory() as db:
            await RedemptionEngine(db).redeem(user_id, "boost-24h", now=NOW)

        async with session_factory() as db:
            during = await get_inventory(db, user_id, now=NOW + timedelta(hours=1))
            after = await get_inventory(db, user_id, now=NOW + timedelta(days=2))

        assert during.items[0].is_active is True
        assert len(during.active_boosts) == 1
        assert after.items[0].is_active is False
        assert after.items[0].is_expired is True
        assert after.active_boosts == []

    @pytest.mark.asyncio
    async def test_redemption_history(self, session_factory, user_id, add_item):
        await add_item("snack", 10, "consumable", name="Snack")
        await _fund(session_factory, user_id, 100)
        async with session_factory() as db:
            engine = RedemptionEngine(db)
            await engine.redeem(user_id, "snack", now=NOW)
            await engine.redeem(user_id, "snack", now=NOW + timedelta(minutes=1))

        async with session_factory() as db:
            history = await get_redemption_history(db, user_id, limit=1)
        assert history.total == 2
        assert len(history.redemptions) == 1
        assert history.redemptions[0].created_at == NOW + timedelta(minutes=1)
        assert history.redemptions[0].item_name == "Snack"
