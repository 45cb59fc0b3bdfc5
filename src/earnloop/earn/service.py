"""Earn pipeline: check-ins, ad completions and lesson rewards.

One call to ``submit_earn_event`` is one transaction. The order of checks is
fixed: account ban, payload shape, device block, velocity, then the per-type
rate limits. Nothing is credited unless every check passes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.config import EconomyConfig
from earnloop.database import atomic
from earnloop.day_utils import account_age_days, utc_now, utc_today
from earnloop.db.models import Streak
from earnloop.earn.rate_limiter import EarnRateLimiter
from earnloop.earn.schemas import (
    AdViewPayload,
    CheckinPayload,
    EarnResult,
    EarnStatus,
    LessonPayload,
    StreakSnapshot,
    parse_earn_payload,
)
from earnloop.earn.streak_service import apply_checkin, lock_streak
from earnloop.earn.trust_tiers import daily_cap_for, resolve_tier
from earnloop.errors import DuplicateSubmission, LedgerError
from earnloop.fraud.device_service import DeviceService
from earnloop.fraud.flag_recorder import FraudFlagRecorder
from earnloop.ledger.service import BalanceLedger, EarnEventDraft
from earnloop.store.inventory_service import has_active_boost
from earnloop.users.service import get_user, load_active_user

logger = logging.getLogger(__name__)

# Postgres reports the constraint name, SQLite only the column list.
_TOKEN_CONSTRAINT_MARKERS = ("uq_earn_event_user_token", "earn_events.idempotency_token")


def is_duplicate_token_error(exc: IntegrityError) -> bool:
    """True when the violated constraint is the per-user ad token uniqueness."""
    message = str(exc.orig)
    return any(marker in message for marker in _TOKEN_CONSTRAINT_MARKERS)


class EarnService:
    def __init__(
        self,
        db: AsyncSession,
        config: EconomyConfig | None = None,
        flag_recorder: FraudFlagRecorder | None = None,
    ) -> None:
        self.db = db
        self.config = config or EconomyConfig()
        self.flag_recorder = flag_recorder
        self.ledger = BalanceLedger(db, self.config)
        self.limiter = EarnRateLimiter(db, self.config)
        self.devices = DeviceService(db, self.config)

    async def submit_earn_event(
        self,
        user_id: int,
        earn_type: str,
        payload: dict[str, Any] | None = None,
        device_fingerprint: str | None = None,
        platform: str | None = None,
        now: datetime | None = None,
    ) -> EarnResult:
        """Validate, rate-limit and credit one earn action.

        Raises a ``LedgerError`` subclass on rejection. Fraud signals attached
        to the error are recorded after the rollback.
        """
        now = now or utc_now()
        try:
            async with atomic(self.db):
                result = await self._submit(user_id, earn_type, payload, device_fingerprint, platform, now)
        except IntegrityError as e:
            if not is_duplicate_token_error(e):
                logger.error("Earn %s insert failed for user %d: %s", earn_type, user_id, e.orig)
                raise
            # Concurrent replay of the same ad token lost the race on the unique constraint.
            logger.warning("Earn insert conflict for user %d: %s", user_id, e.orig)
            raise DuplicateSubmission() from e
        except LedgerError as e:
            logger.info("Earn %s rejected for user %d: %s", earn_type, user_id, e.code)
            if e.fraud_signal is not None and self.flag_recorder is not None:
                await self.flag_recorder.record(e.fraud_signal)
            raise

        logger.info("Earn %s accepted for user %d: +%d", earn_type, user_id, result.credits_earned)
        return result

    async def _submit(
        self,
        user_id: int,
        earn_type: str,
        raw_payload: dict[str, Any] | None,
        device_fingerprint: str | None,
        platform: str | None,
        now: datetime,
    ) -> EarnResult:
        user = await load_active_user(self.db, user_id)
        payload = parse_earn_payload(earn_type, raw_payload)

        await self.ledger.lock(user_id)

        device = await self.devices.touch(user_id, device_fingerprint, platform, now)
        self.devices.ensure_allowed(device)
        await self.devices.check_velocity(user_id, device, now)

        tier = resolve_tier(account_age_days(user.created_at, now))
        decision = await self.limiter.evaluate(
            user_id, payload, tier, now, device_id=device.id if device else None,
        )

        streak_snapshot = None
        saver_used = False
        if isinstance(payload, CheckinPayload):
            streak = await lock_streak(self.db, user_id)
            transition = await apply_checkin(self.db, streak, utc_today(now), now)
            streak_snapshot = StreakSnapshot.model_validate(streak)
            saver_used = transition.saver_used

        draft = EarnEventDraft(
            event_type=payload.type,
            device_id=device.id if device else None,
            idempotency_token=payload.idempotency_token if isinstance(payload, AdViewPayload) else None,
            module_id=payload.module_id if isinstance(payload, LessonPayload) else None,
            metadata=self._event_metadata(payload, decision.boost_applied, saver_used),
        )
        balance = await self.ledger.credit(user_id, decision.amount, draft, now=now)

        is_ad = isinstance(payload, AdViewPayload)
        return EarnResult(
            event_type=payload.type,
            credits_earned=decision.amount,
            balance=balance,
            streak=streak_snapshot,
            streak_saver_used=saver_used,
            module_id=draft.module_id,
            boost_applied=decision.boost_applied,
            tier=tier.name,
            review_required=tier.review_required or self.devices.review_required(device),
            today_non_ad_earned=decision.totals.non_ad_earned + (0 if is_ad else decision.amount),
            daily_cap=decision.daily_cap,
            ads_today=decision.totals.ad_count + (1 if is_ad else 0),
        )

    @staticmethod
    def _event_metadata(
        payload: CheckinPayload | AdViewPayload | LessonPayload,
        boost_applied: bool,
        saver_used: bool,
    ) -> dict[str, Any]:
        if isinstance(payload, AdViewPayload):
            meta: dict[str, Any] = {"ad_unit_id": payload.ad_unit_id, "boost_applied": boost_applied}
            if payload.client_timestamp is not None:
                meta["client_timestamp"] = payload.client_timestamp.isoformat()
            return meta
        if isinstance(payload, LessonPayload):
            return {"quiz_score": payload.quiz_score}
        return {"streak_saver_used": saver_used}

    async def get_status(self, user_id: int, now: datetime | None = None) -> EarnStatus:
        """Today's earn position for display. Read-only."""
        now = now or utc_now()
        user = await get_user(self.db, user_id)
        age = account_age_days(user.created_at, now)
        tier = resolve_tier(age)
        cap = daily_cap_for(tier, self.config.daily_credit_cap)
        totals = await self.limiter.today_totals(user_id, now)
        streak = await self.db.get(Streak, user_id, populate_existing=True)

        return EarnStatus(
            tier=tier.name,
            account_age_days=age,
            daily_cap=cap,
            today_earned=totals.total_earned,
            today_non_ad_earned=totals.non_ad_earned,
            remaining_non_ad=max(0, cap - totals.non_ad_earned),
            ads_today=totals.ad_count,
            max_ads_per_day=tier.max_ads_per_day,
            checked_in_today=streak is not None and streak.last_checkin_date == utc_today(now),
            boost_active=await has_active_boost(self.db, user_id, now),
            streak=StreakSnapshot.model_validate(streak) if streak else None,
        )
