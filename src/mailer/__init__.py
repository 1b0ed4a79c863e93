"""
이메일 발송 모듈
"""

from .email_client import EmailClient, SendResult, DeliveryStatus

__all__ = [
    "EmailClient",
    "SendResult",
    "DeliveryStatus",
]
