"""Admin state transitions: bans, gift-card fulfillment, fraud review."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database import atomic
from earnloop.day_utils import utc_now
from earnloop.db.models import Device, FraudFlag, Redemption, User
from earnloop.errors import (
    FraudFlagNotFound,
    InvalidStateTransition,
    NotFound,
    RedemptionNotFound,
)
from earnloop.users.service import get_user

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def ban_user(self, user_id: int, reason: str, now: datetime | None = None) -> User:
        """Soft-delete: banned users fail every ledger operation."""
        now = now or utc_now()
        async with atomic(self.db):
            user = await get_user(self.db, user_id)
            user.is_banned = True
            user.ban_reason = reason
            user.updated_at = now
        logger.warning("User %d banned: %s", user_id, reason)
        return user

    async def unban_user(self, user_id: int, now: datetime | None = None) -> User:
        now = now or utc_now()
        async with atomic(self.db):
            user = await get_user(self.db, user_id)
            user.is_banned = False
            user.ban_reason = None
            user.updated_at = now
        logger.info("User %d unbanned", user_id)
        return user

    async def list_pending_fulfillments(self, limit: int = 100) -> list[Redemption]:
        result = await self.db.execute(
            select(Redemption)
            .where(Redemption.status == "pending_fulfillment")
            .order_by(Redemption.created_at, Redemption.id)
            .limit(limit)
        )
        return list(result.scalars().unique().all())

    async def fulfill_redemption(
        self,
        redemption_id: int,
        fulfillment_code: str,
        now: datetime | None = None,
    ) -> Redemption:
        """Move a gift-card redemption from pending_fulfillment to fulfilled."""
        now = now or utc_now()
        async with atomic(self.db):
            result = await self.db.execute(
                select(Redemption)
                .where(Redemption.id == redemption_id)
                .with_for_update(of=Redemption)
                .execution_options(populate_existing=True)
            )
            redemption = result.scalars().unique().one_or_none()
            if redemption is None:
                raise RedemptionNotFound(details={"redemption_id": redemption_id})
            if redemption.status != "pending_fulfillment":
                raise InvalidStateTransition(
                    f"Cannot fulfill a redemption in status '{redemption.status}'",
                    details={"redemption_id": redemption_id, "status": redemption.status},
                )
            redemption.status = "fulfilled"
            redemption.fulfillment_code = fulfillment_code
            redemption.fulfilled_at = now
        logger.info("Redemption %d fulfilled", redemption_id)
        return redemption

    async def list_fraud_flags(self, include_resolved: bool = False, limit: int = 100) -> list[FraudFlag]:
        stmt = select(FraudFlag).order_by(FraudFlag.created_at.desc(), FraudFlag.id.desc()).limit(limit)
        if not include_resolved:
            stmt = stmt.where(FraudFlag.resolved.is_(False))
        return list((await self.db.execute(stmt)).scalars().all())

    async def resolve_fraud_flag(self, flag_id: int, now: datetime | None = None) -> FraudFlag:
        now = now or utc_now()
        async with atomic(self.db):
            flag = await self.db.get(FraudFlag, flag_id, populate_existing=True)
            if flag is None:
                raise FraudFlagNotFound(details={"flag_id": flag_id})
            if flag.resolved:
                raise InvalidStateTransition("Fraud flag already resolved", details={"flag_id": flag_id})
            flag.resolved = True
            flag.resolved_at = now
        logger.info("Fraud flag %d resolved", flag_id)
        return flag

    async def block_device(self, device_id: int, reason: str | None = None, now: datetime | None = None) -> Device:
        """Block a device and leave a flag behind for the audit trail."""
        now = now or utc_now()
        async with atomic(self.db):
            device = await self.db.get(Device, device_id, populate_existing=True)
            if device is None:
                raise NotFound("Device not found", details={"device_id": device_id})
            device.is_blocked = True
            self.db.add(FraudFlag(
                user_id=device.user_id,
                device_id=device.id,
                flag_type="device_blocked",
                severity="high",
                reason=reason or "Blocked by admin",
                created_at=now,
            ))
        logger.warning("Device %d blocked", device_id)
        return device
