"""Accept/reject decisions for proposed earn events.

The limiter reads today's EarnEvents for the user (UTC day bucket, served by
the ``(user_id, created_at)`` index) and decides the credited amount. It must
run inside the same transaction as the credit it guards, after the user's
balance row is locked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import EconomyConfig
from earnloop.day_utils import utc_day_bounds, utc_today
from earnloop.db.models import EarnEvent, Streak
from earnloop.earn.schemas import AdViewPayload, CheckinPayload, LessonPayload
from earnloop.earn.trust_tiers import TrustTier, daily_cap_for
from earnloop.errors import (
    AdLimitReached,
    AlreadyCompleted,
    DailyCapExceeded,
    DuplicateSubmission,
    FraudSignal,
    QuizNotPassed,
)
from earnloop.store.inventory_service import has_active_boost

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailyTotals:
    total_earned: int
    non_ad_earned: int
    ad_count: int


@dataclass(frozen=True)
class EarnDecision:
    amount: int
    daily_cap: int
    totals: DailyTotals
    boost_applied: bool = False


class EarnRateLimiter:
    def __init__(self, db: AsyncSession, config: EconomyConfig) -> None:
        self.db = db
        self.config = config

    async def today_totals(self, user_id: int, now: datetime) -> DailyTotals:
        """Sum today's earnings, split into ad and non-ad buckets."""
        day_start, day_end = utc_day_bounds(now)
        is_ad = EarnEvent.event_type == "ad_view"
        row = (await self.db.execute(
            select(
                func.coalesce(func.sum(EarnEvent.amount), 0),
                func.coalesce(func.sum(case((is_ad, 0), else_=EarnEvent.amount)), 0),
                func.coalesce(func.sum(case((is_ad, 1), else_=0)), 0),
            ).where(
                EarnEvent.user_id == user_id,
                EarnEvent.created_at >= day_start,
                EarnEvent.created_at < day_end,
            )
        )).one()
        return DailyTotals(total_earned=int(row[0]), non_ad_earned=int(row[1]), ad_count=int(row[2]))

    async def evaluate(
        self,
        user_id: int,
        payload: CheckinPayload | AdViewPayload | LessonPayload,
        tier: TrustTier,
        now: datetime,
        device_id: int | None = None,
    ) -> EarnDecision:
        """Return the amount to credit, or raise the typed rejection."""
        totals = await self.today_totals(user_id, now)
        cap = daily_cap_for(tier, self.config.daily_credit_cap)

        if isinstance(payload, CheckinPayload):
            await self._ensure_not_checked_in(user_id, utc_today(now))
            amount = self.config.checkin_reward
            self._ensure_under_cap(totals, amount, cap)
            return EarnDecision(amount=amount, daily_cap=cap, totals=totals)

        if isinstance(payload, AdViewPayload):
            await self._ensure_token_unused(user_id, payload, device_id)
            if self.config.enforce_ad_tier_limit and totals.ad_count >= tier.max_ads_per_day:
                raise AdLimitReached(
                    f"Daily ad limit reached ({tier.max_ads_per_day}/day)",
                    details={"ads_today": totals.ad_count, "max_ads_per_day": tier.max_ads_per_day},
                )
            boosted = await has_active_boost(self.db, user_id, now)
            amount = self.config.ad_reward * (self.config.boost_multiplier if boosted else 1)
            return EarnDecision(amount=amount, daily_cap=cap, totals=totals, boost_applied=boosted)

        if payload.quiz_score < self.config.quiz_pass_score:
            raise QuizNotPassed(
                f"Quiz score {payload.quiz_score}% is below the {self.config.quiz_pass_score}% pass mark",
                details={"quiz_score": payload.quiz_score, "pass_score": self.config.quiz_pass_score},
            )
        await self._ensure_module_not_credited(user_id, payload.module_id)
        amount = self.config.lesson_reward
        self._ensure_under_cap(totals, amount, cap)
        return EarnDecision(amount=amount, daily_cap=cap, totals=totals)

    # ── Checks ──

    async def _ensure_not_checked_in(self, user_id: int, today: date) -> None:
        last = (await self.db.execute(
            select(Streak.last_checkin_date).where(Streak.user_id == user_id)
        )).scalar_one_or_none()
        if last is not None and last >= today:
            raise AlreadyCompleted("Already checked in today", details={"last_checkin_date": last.isoformat()})

    async def _ensure_token_unused(self, user_id: int, payload: AdViewPayload, device_id: int | None) -> None:
        existing = (await self.db.execute(
            select(EarnEvent.id).where(
                EarnEvent.user_id == user_id,
                EarnEvent.idempotency_token == payload.idempotency_token,
            )
        )).scalar_one_or_none()
        if existing is None:
            return

        logger.warning("Replayed ad token for user %d", user_id)
        raise DuplicateSubmission(
            details={"idempotency_token": payload.idempotency_token},
            fraud_signal=FraudSignal(
                user_id=user_id,
                device_id=device_id,
                flag_type="replay_attack",
                severity="high",
                reason="Duplicate ad completion token",
                metadata={"idempotency_token": payload.idempotency_token, "ad_unit_id": payload.ad_unit_id},
            ),
        )

    async def _ensure_module_not_credited(self, user_id: int, module_id: str) -> None:
        existing = (await self.db.execute(
            select(EarnEvent.id).where(
                EarnEvent.user_id == user_id,
                EarnEvent.event_type == "lesson",
                EarnEvent.module_id == module_id,
            ).limit(1)
        )).scalar_one_or_none()
        if existing is not None:
            raise AlreadyCompleted("Lesson already completed", details={"module_id": module_id})

    @staticmethod
    def _ensure_under_cap(totals: DailyTotals, amount: int, cap: int) -> None:
        if totals.non_ad_earned + amount > cap:
            raise DailyCapExceeded(
                f"Daily credit limit reached ({totals.non_ad_earned}/{cap})",
                details={"today_non_ad_earned": totals.non_ad_earned, "daily_cap": cap, "amount": amount},
            )
