"""
SQLAlchemy 데이터베이스 모델 정의
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    JSON,
    PrimaryKeyConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class SubscriptionStatus(PyEnum):
    """구독자 상태 (pending → confirmed, 단방향)"""
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"


class IdempotencyStatus(PyEnum):
    """멱등성 레코드 상태"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Subscriber(Base):
    """뉴스레터 구독자"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_new_id)

    email = Column(String(320), unique=True, nullable=False)
    name = Column(String(1024), nullable=False)

    status = Column(
        Enum(SubscriptionStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=SubscriptionStatus.PENDING_CONFIRMATION,
    )

    subscribed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    confirmed_at = Column(DateTime)

    # 관계
    tokens = relationship("SubscriptionToken", back_populates="subscriber")

    # 인덱스
    __table_args__ = (
        Index("idx_subscription_status", "status"),
    )

    def __repr__(self):
        return f"<Subscriber(id='{self.id}', status='{self.status.value}')>"


class SubscriptionToken(Base):
    """구독 확인 토큰"""
    __tablename__ = "subscription_tokens"

    subscription_token = Column(String(64), primary_key=True)
    subscriber_id = Column(String(36), ForeignKey("subscriptions.id"), nullable=False)

    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    revoked_at = Column(DateTime)  # 재발급 시 이전 토큰 무효화

    # 관계
    subscriber = relationship("Subscriber", back_populates="tokens")

    __table_args__ = (
        Index("idx_token_subscriber", "subscriber_id"),
    )

    def __repr__(self):
        # 토큰 값은 출력하지 않음
        return f"<SubscriptionToken(subscriber_id='{self.subscriber_id}')>"


class IdempotencyRecord(Base):
    """멱등성 레코드 (키는 작업 범위별로 구분)"""
    __tablename__ = "idempotency_records"

    idempotency_key = Column(String(50), nullable=False)
    scope = Column(String(50), nullable=False)

    status = Column(
        Enum(IdempotencyStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=IdempotencyStatus.IN_PROGRESS,
    )

    # 같은 키로 다른 요청을 보낸 경우를 구분하기 위한 요청 본문 해시
    request_fingerprint = Column(String(64))

    # 중복 요청에 재생할 응답 스냅샷
    response_status_code = Column(Integer)
    response_body = Column(JSON)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        PrimaryKeyConstraint("idempotency_key", "scope"),
        Index("idx_idempotency_created", "created_at"),
    )

    def __repr__(self):
        return f"<IdempotencyRecord(scope='{self.scope}', status='{self.status.value}')>"


class Publisher(Base):
    """뉴스레터 발행 권한이 있는 사용자"""
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=_new_id)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(100), nullable=False)  # bcrypt

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Publisher(username='{self.username}')>"
