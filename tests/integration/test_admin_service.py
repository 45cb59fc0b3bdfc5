"""Admin transitions: bans, fulfillment and fraud review."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from earnloop.admin.service import AdminService
from earnloop.database import atomic
from earnloop.db.models import Device, FraudFlag
from earnloop.earn.service import EarnService
from earnloop.errors import (
    AccountBanned,
    DeviceBlocked,
    FraudFlagNotFound,
    InvalidStateTransition,
    NotFound,
    RedemptionNotFound,
    UserNotFound,
)
from earnloop.fraud.device_service import DeviceService
from earnloop.ledger.service import BalanceLedger, EarnEventDraft
from earnloop.store.redemption_service import RedemptionEngine

from conftest import NOW


async def _pending_giftcard(session_factory, user_id: int, add_item) -> int:
    await add_item("giftcard-5", 5000, "giftcard")
    async with session_factory() as s:
        async with atomic(s):
            await BalanceLedger(s).credit(user_id, 5000, EarnEventDraft(event_type="lesson"), now=NOW)
    async with session_factory() as s:
        result = await RedemptionEngine(s).redeem(user_id, "giftcard-5", email="me@example.com", now=NOW)
    return result.redemption.id


async def _device(session_factory, config, user_id: int) -> int:
    async with session_factory() as s:
        async with atomic(s):
            device = await DeviceService(s, config).touch(user_id, "fp-admin", "android", NOW)
    return device.id


class TestBans:
    @pytest.mark.asyncio
    async def test_ban_blocks_earning_and_unban_restores(self, session_factory, config, user_id):
        async with session_factory() as db:
            user = await AdminService(db).ban_user(user_id, "chargeback", now=NOW)
        assert user.is_banned is True
        assert user.ban_reason == "chargeback"

        async with session_factory() as db:
            with pytest.raises(AccountBanned) as exc_info:
                await EarnService(db, config).submit_earn_event(user_id, "checkin", now=NOW)
        assert "chargeback" in exc_info.value.message

        async with session_factory() as db:
            await AdminService(db).unban_user(user_id, now=NOW)
        async with session_factory() as db:
            result = await EarnService(db, config).submit_earn_event(user_id, "checkin", now=NOW)
        assert result.credits_earned == 5

    @pytest.mark.asyncio
    async def test_ban_unknown_user(self, db):
        with pytest.raises(UserNotFound):
            await AdminService(db).ban_user(424242, "spam", now=NOW)


class TestFulfillment:
    @pytest.mark.asyncio
    async def test_pending_to_fulfilled(self, session_factory, user_id, add_item):
        redemption_id = await _pending_giftcard(session_factory, user_id, add_item)

        async with session_factory() as db:
            admin = AdminService(db)
            pending = await admin.list_pending_fulfillments()
            assert [r.id for r in pending] == [redemption_id]

            fulfilled = await admin.fulfill_redemption(redemption_id, "CODE-1234", now=NOW + timedelta(hours=1))
            assert fulfilled.status == "fulfilled"
            assert fulfilled.fulfillment_code == "CODE-1234"
            assert fulfilled.fulfilled_at == NOW + timedelta(hours=1)

            assert await admin.list_pending_fulfillments() == []
            with pytest.raises(InvalidStateTransition):
                await admin.fulfill_redemption(redemption_id, "CODE-9999", now=NOW)

    @pytest.mark.asyncio
    async def test_completed_redemption_cannot_be_fulfilled(self, session_factory, user_id, add_item):
        await add_item("theme", 10, "cosmetic")
        async with session_factory() as s:
            async with atomic(s):
                await BalanceLedger(s).credit(user_id, 10, EarnEventDraft(event_type="lesson"), now=NOW)
        async with session_factory() as s:
            result = await RedemptionEngine(s).redeem(user_id, "theme", now=NOW)

        async with session_factory() as db:
            with pytest.raises(InvalidStateTransition):
                await AdminService(db).fulfill_redemption(result.redemption.id, "CODE", now=NOW)

    @pytest.mark.asyncio
    async def test_unknown_redemption(self, db):
        with pytest.raises(RedemptionNotFound):
            await AdminService(db).fulfill_redemption(999, "CODE", now=NOW)


class TestFraudReview:
    @pytest.mark.asyncio
    async def test_block_device_records_flag(self, session_factory, config, user_id):
        device_id = await _device(session_factory, config, user_id)

        async with session_factory() as db:
            device = await AdminService(db).block_device(device_id, "emulator farm", now=NOW)
        assert device.is_blocked is True

        async with session_factory() as db:
            flags = await AdminService(db).list_fraud_flags()
        assert len(flags) == 1
        assert (flags[0].flag_type, flags[0].severity, flags[0].device_id) == ("device_blocked", "high", device_id)

        async with session_factory() as db:
            with pytest.raises(DeviceBlocked):
                await EarnService(db, config).submit_earn_event(
                    user_id, "checkin", device_fingerprint="fp-admin", now=NOW,
                )

    @pytest.mark.asyncio
    async def test_block_unknown_device(self, db):
        with pytest.raises(NotFound):
            await AdminService(db).block_device(31337, now=NOW)

    @pytest.mark.asyncio
    async def test_resolve_flag_once(self, session_factory, config, user_id):
        device_id = await _device(session_factory, config, user_id)
        async with session_factory() as db:
            await AdminService(db).block_device(device_id, now=NOW)
        async with session_factory() as db:
            flag_id = (await db.execute(select(FraudFlag.id))).scalar_one()

        async with session_factory() as db:
            admin = AdminService(db)
            flag = await admin.resolve_fraud_flag(flag_id, now=NOW)
            assert flag.resolved is True
            assert flag.resolved_at == NOW
            with pytest.raises(InvalidStateTransition):
                await admin.resolve_fraud_flag(flag_id, now=NOW)

            assert await admin.list_fraud_flags() == []
            assert len(await admin.list_fraud_flags(include_resolved=True)) == 1

        async with session_factory() as db:
            # resolving a flag does not unblock the device
            assert (await db.get(Device, device_id)).is_blocked is True

    @pytest.mark.asyncio
    async def test_resolve_unknown_flag(self, db):
        with pytest.raises(FraudFlagNotFound):
            await AdminService(db).resolve_fraud_flag(1, now=NOW)
