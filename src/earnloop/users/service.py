"""User accounts: signup, lookup with ban check, summary and history."""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database import atomic
from earnloop.day_utils import account_age_days, utc_now
from earnloop.db.models import Balance, Device, EarnEvent, Redemption, Streak, User
from earnloop.earn.schemas import StreakSnapshot
from earnloop.earn.trust_tiers import resolve_tier
from earnloop.errors import AccountBanned, InvalidPayload, UserAlreadyExists, UserNotFound
from earnloop.ledger.schemas import BalanceSnapshot, HistoryEntry, HistoryResponse
from earnloop.users.schemas import UserResponse, UserSummaryResponse

logger = logging.getLogger(__name__)

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


def normalize_email(email: str | None) -> str | None:
    """Return the validated, lower-cased address or None if invalid."""
    if not email:
        return None
    try:
        return _email_adapter.validate_python(email.strip()).lower()
    except PydanticValidationError:
        return None


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        raise UserNotFound(details={"user_id": user_id})
    return user


async def load_active_user(db: AsyncSession, user_id: int) -> User:
    """Fetch the user and reject banned accounts before any other check."""
    user = await get_user(db, user_id)
    if user.is_banned:
        raise AccountBanned(
            f"Account suspended: {user.ban_reason}" if user.ban_reason else None,
            details={"user_id": user_id},
        )
    return user


async def register_user(db: AsyncSession, email: str, now: datetime | None = None) -> User:
    """Create a user with an empty balance and streak in one transaction.

    ``now`` becomes the account creation time, which drives the trust tier.
    """
    normalized = normalize_email(email)
    if normalized is None:
        raise InvalidPayload("A valid email is required", details={"email": email})
    now = now or utc_now()

    async with atomic(db):
        existing = (await db.execute(select(User.id).where(User.email == normalized))).scalar_one_or_none()
        if existing is not None:
            raise UserAlreadyExists(details={"email": normalized})

        user = User(email=normalized, created_at=now, updated_at=now, is_banned=False)
        db.add(user)
        await db.flush()
        db.add(Balance(user_id=user.id, current=0, lifetime_earned=0, lifetime_spent=0, updated_at=now))
        db.add(Streak(user_id=user.id, current_streak=0, longest_streak=0, streak_saver_count=0, updated_at=now))

    logger.info("Registered user %d", user.id)
    return user


async def get_user_summary(
    db: AsyncSession,
    user_id: int,
    device_review_risk_score: int = 25,
    now: datetime | None = None,
) -> UserSummaryResponse:
    now = now or utc_now()
    user = await get_user(db, user_id)
    age = account_age_days(user.created_at, now)
    tier = resolve_tier(age)

    balance = await db.get(Balance, user_id, populate_existing=True)
    streak = await db.get(Streak, user_id, populate_existing=True)
    device_count, max_risk = (await db.execute(
        select(func.count(Device.id), func.coalesce(func.max(Device.risk_score), 0))
        .where(Device.user_id == user_id)
    )).one()

    return UserSummaryResponse(
        user=UserResponse(id=user.id, email=user.email, created_at=user.created_at, is_banned=user.is_banned),
        balance=(
            BalanceSnapshot.model_validate(balance)
            if balance else BalanceSnapshot(current=0, lifetime_earned=0, lifetime_spent=0)
        ),
        streak=StreakSnapshot.model_validate(streak) if streak else None,
        tier=tier.name,
        account_age_days=age,
        review_required=tier.review_required or max_risk >= device_review_risk_score,
        device_count=device_count,
    )


async def get_history(db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0) -> HistoryResponse:
    """Earn events and redemptions merged newest first."""
    window = limit + offset
    earns = (await db.execute(
        select(EarnEvent)
        .where(EarnEvent.user_id == user_id)
        .order_by(EarnEvent.created_at.desc(), EarnEvent.id.desc())
        .limit(window)
    )).scalars().all()
    spends = (await db.execute(
        select(Redemption)
        .where(Redemption.user_id == user_id)
        .order_by(Redemption.created_at.desc(), Redemption.id.desc())
        .limit(window)
    )).scalars().unique().all()

    entries = [
        HistoryEntry(id=e.id, category="earn", type=e.event_type, amount=e.amount, created_at=e.created_at)
        for e in earns
    ]
    entries += [
        HistoryEntry(id=r.id, category="spend", type=r.item.item_type, amount=-r.credits_spent, created_at=r.created_at)
        for r in spends
    ]
    entries.sort(key=lambda h: h.created_at, reverse=True)
    return HistoryResponse(history=entries[offset:window])
