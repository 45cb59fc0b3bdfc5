"""Typed failures for every ledger operation.

Each error carries a stable ``code`` and an ``ErrorCategory``. The HTTP layer
maps them to status codes; callers inside the process can match on either.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    STATE_CONFLICT = "state_conflict"
    POLICY_VIOLATION = "policy_violation"
    NOT_FOUND = "not_found"
    ACCOUNT_BANNED = "account_banned"


@dataclass(frozen=True)
class FraudSignal:
    """Detection result to be persisted after the failed transaction rolls back."""

    user_id: int
    flag_type: str
    severity: str
    reason: str
    device_id: int | None = None
    risk_increment: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class LedgerError(Exception):
    """Base class for all ledger failures."""

    category: ErrorCategory = ErrorCategory.VALIDATION
    code: str = "LEDGER_ERROR"
    status_code: int = 400
    default_message: str = "Request rejected"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        fraud_signal: FraudSignal | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        self.fraud_signal = fraud_signal
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "category": self.category.value,
            "details": self.details,
        }


# --- Categories ---


class ValidationError(LedgerError):
    category = ErrorCategory.VALIDATION
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Malformed request"


class StateConflict(LedgerError):
    category = ErrorCategory.STATE_CONFLICT
    code = "STATE_CONFLICT"
    status_code = 409
    default_message = "Action already happened"


class PolicyViolation(LedgerError):
    category = ErrorCategory.POLICY_VIOLATION
    code = "POLICY_VIOLATION"
    status_code = 403
    default_message = "Action not allowed right now"


class NotFound(LedgerError):
    category = ErrorCategory.NOT_FOUND
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class AccountBanned(LedgerError):
    category = ErrorCategory.ACCOUNT_BANNED
    code = "ACCOUNT_BANNED"
    status_code = 403
    default_message = "Account suspended"


# --- Validation ---


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"
    default_message = "Amount must be positive"


class InvalidPayload(ValidationError):
    code = "INVALID_PAYLOAD"
    default_message = "Invalid request payload"


# --- State conflicts ---


class AlreadyCompleted(StateConflict):
    code = "ALREADY_COMPLETED"
    default_message = "Already completed"


class AlreadyClaimed(StateConflict):
    code = "ALREADY_CLAIMED"
    default_message = "Free entry already claimed"


class DuplicateSubmission(StateConflict):
    code = "DUPLICATE_SUBMISSION"
    default_message = "Reward already claimed for this token"


class UserAlreadyExists(StateConflict):
    code = "USER_ALREADY_EXISTS"
    default_message = "An account with this email already exists"


class InvalidStateTransition(StateConflict):
    code = "INVALID_STATE_TRANSITION"
    default_message = "Invalid state transition"


# --- Policy violations ---


class InsufficientBalance(PolicyViolation):
    code = "INSUFFICIENT_BALANCE"
    status_code = 402
    default_message = "Insufficient credits"


class DailyCapExceeded(PolicyViolation):
    code = "DAILY_CAP_EXCEEDED"
    status_code = 429
    default_message = "Daily credit cap reached"


class AdLimitReached(PolicyViolation):
    code = "AD_LIMIT_REACHED"
    status_code = 429
    default_message = "Daily ad limit reached"


class QuizNotPassed(PolicyViolation):
    code = "QUIZ_NOT_PASSED"
    default_message = "Quiz not passed"


class CooldownActive(PolicyViolation):
    code = "COOLDOWN_ACTIVE"
    status_code = 429
    default_message = "Bonus entry cooldown active"


class VelocityExceeded(PolicyViolation):
    code = "VELOCITY_EXCEEDED"
    status_code = 429
    default_message = "Too many requests. Please try again later."


class DeviceBlocked(PolicyViolation):
    code = "DEVICE_BLOCKED"
    default_message = "Device flagged for suspicious activity"


class OwnershipLimitReached(PolicyViolation):
    code = "OWNERSHIP_LIMIT_REACHED"
    default_message = "Maximum redemptions reached for this item"


class ItemAlreadyActive(PolicyViolation):
    code = "ITEM_ALREADY_ACTIVE"
    default_message = "Item already owned or active"


class EmailRequired(PolicyViolation):
    code = "EMAIL_REQUIRED"
    default_message = "A valid email is required for gift card redemption"


class FreeEntryRequired(PolicyViolation):
    code = "FREE_ENTRY_REQUIRED"
    default_message = "Claim the free entry first"


class BonusLimitReached(PolicyViolation):
    code = "BONUS_LIMIT_REACHED"
    default_message = "Maximum bonus entries earned"


class GiveawayClosed(PolicyViolation):
    code = "GIVEAWAY_CLOSED"
    default_message = "Giveaway is closed"


# --- Not found ---


class UserNotFound(NotFound):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class ItemNotFound(NotFound):
    code = "ITEM_NOT_FOUND"
    default_message = "Item not found"


class GiveawayNotFound(NotFound):
    code = "GIVEAWAY_NOT_FOUND"
    default_message = "Giveaway not found"


class RedemptionNotFound(NotFound):
    code = "REDEMPTION_NOT_FOUND"
    default_message = "Redemption not found"


class FraudFlagNotFound(NotFound):
    code = "FRAUD_FLAG_NOT_FOUND"
    default_message = "Fraud flag not found"
