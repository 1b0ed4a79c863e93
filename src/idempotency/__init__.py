"""
멱등성 원장 모듈
"""

from .ledger import (
    IdempotencyLedger,
    Admitted,
    AlreadyCompleted,
    SavedResponse,
    RequestInProgress,
    IdempotencyKeyReused,
    InvalidIdempotencyKey,
    fingerprint_request,
    parse_idempotency_key,
    SCOPE_NEWSLETTER_ISSUE,
    SCOPE_SUBSCRIPTION_CONFIRM,
)

__all__ = [
    "IdempotencyLedger",
    "Admitted",
    "AlreadyCompleted",
    "SavedResponse",
    "RequestInProgress",
    "IdempotencyKeyReused",
    "InvalidIdempotencyKey",
    "fingerprint_request",
    "parse_idempotency_key",
    "SCOPE_NEWSLETTER_ISSUE",
    "SCOPE_SUBSCRIPTION_CONFIRM",
]
