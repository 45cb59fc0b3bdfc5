"""Device sightings, block checks and earn velocity."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import EconomyConfig
from earnloop.db.models import Device, EarnEvent
from earnloop.errors import DeviceBlocked, FraudSignal, VelocityExceeded

logger = logging.getLogger(__name__)


class DeviceService:
    """Heuristic device signals consulted inside the earn transaction."""

    def __init__(self, db: AsyncSession, config: EconomyConfig) -> None:
        self.db = db
        self.config = config

    async def touch(
        self,
        user_id: int,
        fingerprint: str | None,
        platform: str | None,
        now: datetime,
    ) -> Device | None:
        """Record a sighting of ``fingerprint`` for the user. Returns None without a fingerprint."""
        if not fingerprint:
            return None

        result = await self.db.execute(
            select(Device)
            .where(Device.user_id == user_id, Device.fingerprint == fingerprint)
            .execution_options(populate_existing=True)
        )
        device = result.scalar_one_or_none()
        if device is None:
            device = Device(
                user_id=user_id,
                fingerprint=fingerprint,
                platform=platform,
                risk_score=0,
                is_blocked=False,
                created_at=now,
                last_seen_at=now,
            )
            self.db.add(device)
        else:
            device.last_seen_at = now
            if platform:
                device.platform = platform
        await self.db.flush()
        return device

    def ensure_allowed(self, device: Device | None) -> None:
        if device is None:
            return
        if device.is_blocked or device.risk_score >= self.config.device_block_risk_score:
            raise DeviceBlocked(details={"device_id": device.id, "risk_score": device.risk_score})

    def review_required(self, device: Device | None) -> bool:
        return device is not None and device.risk_score >= self.config.device_review_risk_score

    async def check_velocity(self, user_id: int, device: Device | None, now: datetime) -> None:
        """Reject a burst of earn events inside the velocity window."""
        window_start = now - timedelta(minutes=self.config.velocity_window_minutes)
        recent = (await self.db.execute(
            select(func.count(EarnEvent.id)).where(
                EarnEvent.user_id == user_id,
                EarnEvent.created_at >= window_start,
            )
        )).scalar_one()

        if recent < self.config.velocity_max_events:
            return

        logger.warning("Velocity exceeded for user %d: %d events in %d min",
                       user_id, recent, self.config.velocity_window_minutes)
        raise VelocityExceeded(
            details={"events": recent, "window_minutes": self.config.velocity_window_minutes},
            fraud_signal=FraudSignal(
                user_id=user_id,
                device_id=device.id if device else None,
                flag_type="velocity_abuse",
                severity="high",
                reason=f"{recent} earn events in {self.config.velocity_window_minutes} minutes",
                risk_increment=self.config.velocity_risk_increment,
                metadata={"events": recent},
            ),
        )
