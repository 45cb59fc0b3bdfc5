"""Admin endpoints. Every route requires a token with ``role=admin``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.admin.schemas import (
    BanRequest,
    BlockDeviceRequest,
    DeviceResponse,
    FraudFlagResponse,
    FulfillRequest,
    PendingFulfillment,
    PendingFulfillmentsResponse,
    UserStatusResponse,
)
from earnloop.admin.service import AdminService
from earnloop.auth.dependencies import require_admin
from earnloop.database import get_session
from earnloop.store.schemas import RedemptionRecord
from earnloop.users.schemas import RegisterRequest, UserResponse
from earnloop.users.service import register_user

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _user_status(user) -> UserStatusResponse:
    return UserStatusResponse(id=user.id, email=user.email, is_banned=user.is_banned, ban_reason=user.ban_reason)


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(body: RegisterRequest, db: AsyncSession = Depends(get_session)):
    """Provision a ledger account for a user created by the auth service."""
    user = await register_user(db, body.email)
    return UserResponse(id=user.id, email=user.email, created_at=user.created_at, is_banned=user.is_banned)


@router.post("/users/{user_id}/ban", response_model=UserStatusResponse)
async def ban_user(user_id: int, body: BanRequest, db: AsyncSession = Depends(get_session)):
    return _user_status(await AdminService(db).ban_user(user_id, body.reason))


@router.post("/users/{user_id}/unban", response_model=UserStatusResponse)
async def unban_user(user_id: int, db: AsyncSession = Depends(get_session)):
    return _user_status(await AdminService(db).unban_user(user_id))


@router.get("/fulfillments", response_model=PendingFulfillmentsResponse)
async def pending_fulfillments(
    db: AsyncSession = Depends(get_session),
    limit: int = Query(100, ge=1, le=500),
):
    """Gift-card redemptions awaiting a code."""
    pending = await AdminService(db).list_pending_fulfillments(limit=limit)
    return PendingFulfillmentsResponse(redemptions=[
        PendingFulfillment(
            redemption_id=r.id,
            user_id=r.user_id,
            item_id=r.item_id,
            item_name=r.item.name,
            credits_spent=r.credits_spent,
            delivery_email=r.delivery_email,
            created_at=r.created_at,
        )
        for r in pending
    ])


@router.post("/redemptions/{redemption_id}/fulfill", response_model=RedemptionRecord)
async def fulfill_redemption(redemption_id: int, body: FulfillRequest, db: AsyncSession = Depends(get_session)):
    redemption = await AdminService(db).fulfill_redemption(redemption_id, body.fulfillment_code)
    return RedemptionRecord.model_validate(redemption)


@router.get("/fraud-flags", response_model=list[FraudFlagResponse])
async def fraud_flags(
    db: AsyncSession = Depends(get_session),
    include_resolved: bool = False,
    limit: int = Query(100, ge=1, le=500),
):
    flags = await AdminService(db).list_fraud_flags(include_resolved=include_resolved, limit=limit)
    return [FraudFlagResponse.model_validate(f) for f in flags]


@router.post("/fraud-flags/{flag_id}/resolve", response_model=FraudFlagResponse)
async def resolve_fraud_flag(flag_id: int, db: AsyncSession = Depends(get_session)):
    return FraudFlagResponse.model_validate(await AdminService(db).resolve_fraud_flag(flag_id))


@router.post("/devices/{device_id}/block", response_model=DeviceResponse)
async def block_device(
    device_id: int,
    body: BlockDeviceRequest | None = None,
    db: AsyncSession = Depends(get_session),
):
    device = await AdminService(db).block_device(device_id, reason=body.reason if body else None)
    return DeviceResponse.model_validate(device)
