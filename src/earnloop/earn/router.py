"""Earn API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.auth.dependencies import get_current_user_id
from earnloop.config import EconomyConfig
from earnloop.database import get_session
from earnloop.dependencies import get_economy_config, get_flag_recorder
from earnloop.earn.schemas import AdCompleteRequest, EarnResult, EarnStatus, LessonCompleteRequest
from earnloop.earn.service import EarnService
from earnloop.fraud.flag_recorder import FraudFlagRecorder

router = APIRouter(prefix="/api/v1/earn", tags=["Earn"])


def _service(
    db: AsyncSession = Depends(get_session),
    config: EconomyConfig = Depends(get_economy_config),
    recorder: FraudFlagRecorder = Depends(get_flag_recorder),
) -> EarnService:
    return EarnService(db, config, flag_recorder=recorder)


@router.post("/checkin", response_model=EarnResult)
async def checkin(
    user_id: int = Depends(get_current_user_id),
    service: EarnService = Depends(_service),
    device_fingerprint: str | None = Header(default=None, alias="X-Device-Fingerprint"),
    platform: str | None = Header(default=None, alias="X-Platform"),
):
    """Daily check-in. Advances the streak."""
    return await service.submit_earn_event(
        user_id, "checkin", {}, device_fingerprint=device_fingerprint, platform=platform,
    )


@router.post("/ad-complete", response_model=EarnResult)
async def ad_complete(
    body: AdCompleteRequest,
    user_id: int = Depends(get_current_user_id),
    service: EarnService = Depends(_service),
    device_fingerprint: str | None = Header(default=None, alias="X-Device-Fingerprint"),
    platform: str | None = Header(default=None, alias="X-Platform"),
):
    """Rewarded ad completion. Replays of the same idempotency token are rejected."""
    return await service.submit_earn_event(
        user_id, "ad_view", body.model_dump(exclude_none=True),
        device_fingerprint=device_fingerprint, platform=platform,
    )


@router.post("/lesson-complete", response_model=EarnResult)
async def lesson_complete(
    body: LessonCompleteRequest,
    user_id: int = Depends(get_current_user_id),
    service: EarnService = Depends(_service),
    device_fingerprint: str | None = Header(default=None, alias="X-Device-Fingerprint"),
    platform: str | None = Header(default=None, alias="X-Platform"),
):
    """Lesson completion with a passing quiz score. Each module pays out once."""
    return await service.submit_earn_event(
        user_id, "lesson", body.model_dump(),
        device_fingerprint=device_fingerprint, platform=platform,
    )


@router.get("/status", response_model=EarnStatus)
async def earn_status(
    user_id: int = Depends(get_current_user_id),
    service: EarnService = Depends(_service),
):
    """Today's earnings, cap and tier."""
    return await service.get_status(user_id)
