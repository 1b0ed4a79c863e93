"""
데이터베이스 모듈
"""

from .models import (
    Base,
    Subscriber,
    SubscriptionToken,
    SubscriptionStatus,
    IdempotencyRecord,
    IdempotencyStatus,
    Publisher,
)
from .repository import (
    Database,
    SubscriberAlreadyExists,
    SubscriberRepository,
    TokenRepository,
    IdempotencyRepository,
    PublisherRepository,
)

__all__ = [
    "Base",
    "Subscriber",
    "SubscriptionToken",
    "SubscriptionStatus",
    "IdempotencyRecord",
    "IdempotencyStatus",
    "Publisher",
    "Database",
    "SubscriberAlreadyExists",
    "SubscriberRepository",
    "TokenRepository",
    "IdempotencyRepository",
    "PublisherRepository",
]
