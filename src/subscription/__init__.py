"""
구독 모듈 - 입력 검증, 확인 토큰, 구독 워크플로
"""

from .domain import NewSubscriber, SubscriberEmail, SubscriberName
from .tokens import TokenService, MalformedToken, UnknownToken
from .email_service import ConfirmationEmailService
from .manager import (
    SubscriptionManager,
    SubscriptionResult,
    ConfirmationResult,
    SubscriberNotFound,
    AlreadyConfirmed,
)

__all__ = [
    "NewSubscriber",
    "SubscriberEmail",
    "SubscriberName",
    "TokenService",
    "MalformedToken",
    "UnknownToken",
    "ConfirmationEmailService",
    "SubscriptionManager",
    "SubscriptionResult",
    "ConfirmationResult",
    "SubscriberNotFound",
    "AlreadyConfirmed",
]
