"""
구독 관리자 - 구독 신청, 확인 메일 발송, 토큰 확인

상태 전이: 시작 → pending_confirmation → confirmed (역방향 없음)
이 모듈은 재시도를 하지 않는다. 일시적 오류는 호출자가 재시도한다.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.database import (
    Database,
    SubscriberRepository,
    SubscriptionStatus,
)
from src.errors import ConflictError, NotFoundError
from src.idempotency import (
    AlreadyCompleted,
    IdempotencyLedger,
    SCOPE_SUBSCRIPTION_CONFIRM,
    fingerprint_request,
)
from .domain import NewSubscriber, SubscriberEmail, SubscriberName
from .email_service import ConfirmationEmailService
from .tokens import TokenService

logger = logging.getLogger(__name__)


class SubscriberNotFound(NotFoundError):
    def __init__(self):
        super().__init__("No subscriber is registered with this email address.")


class AlreadyConfirmed(ConflictError):
    def __init__(self):
        super().__init__("This subscription has already been confirmed.")


@dataclass
class SubscriptionResult:
    """구독 신청 결과"""
    subscriber_id: str
    status: SubscriptionStatus
    confirmation_sent: bool

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "confirmation_sent": self.confirmation_sent,
        }


@dataclass
class ConfirmationResult:
    """구독 확인 결과"""
    newly_confirmed: bool
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "status": SubscriptionStatus.CONFIRMED.value,
            "newly_confirmed": self.newly_confirmed,
        }

    @classmethod
    def from_snapshot(cls, body: dict) -> "ConfirmationResult":
        return cls(newly_confirmed=bool(body.get("newly_confirmed", False)), replayed=True)


class SubscriptionManager:
    """구독 관리 클래스"""

    def __init__(
        self,
        database: Database,
        token_service: TokenService,
        email_service: ConfirmationEmailService,
        ledger: IdempotencyLedger,
    ):
        self.database = database
        self.token_service = token_service
        self.email_service = email_service
        self.ledger = ledger

    def subscribe(self, email: str, name: str) -> SubscriptionResult:
        """
        구독 신청

        구독자와 확인 토큰은 하나의 트랜잭션으로 저장된다. 확인 메일은 커밋 이후
        트랜잭션 밖에서 발송하며, 발송 실패가 가입을 롤백하지는 않는다.

        Args:
            email: 이메일 주소
            name: 구독자 이름

        Returns:
            SubscriptionResult

        Raises:
            InvalidSubscriberName, InvalidSubscriberEmail: 입력 검증 실패
            SubscriberAlreadyExists: 이미 등록된 이메일
        """
        new_subscriber = NewSubscriber.parse(email=email, name=name)

        with self.database.session() as session:
            subscriber_id = SubscriberRepository.create_pending(
                session,
                email=new_subscriber.email.value,
                name=new_subscriber.name.value,
            )
            token = self.token_service.issue(session, subscriber_id)

        logger.info(f"새 구독자 등록: subscriber_id={subscriber_id}")

        confirmation_sent = self._send_confirmation(subscriber_id, new_subscriber, token)
        return SubscriptionResult(
            subscriber_id=subscriber_id,
            status=SubscriptionStatus.PENDING_CONFIRMATION,
            confirmation_sent=confirmation_sent,
        )

    def resend_confirmation(self, email: str) -> SubscriptionResult:
        """
        확인 메일 재발송

        새 토큰을 발급하고 이전 토큰은 무효화한다.
        """
        subscriber_email = SubscriberEmail.parse(email)

        with self.database.session() as session:
            subscriber = SubscriberRepository.get_by_email(session, subscriber_email.value)
            if subscriber is None:
                raise SubscriberNotFound()
            if subscriber.status is SubscriptionStatus.CONFIRMED:
                raise AlreadyConfirmed()

            subscriber_id = subscriber.id
            new_subscriber = NewSubscriber(
                email=subscriber_email,
                name=SubscriberName(subscriber.name),
            )
            token = self.token_service.issue(session, subscriber_id)

        logger.info(f"구독 확인 토큰 재발급: subscriber_id={subscriber_id}")

        confirmation_sent = self._send_confirmation(subscriber_id, new_subscriber, token)
        return SubscriptionResult(
            subscriber_id=subscriber_id,
            status=SubscriptionStatus.PENDING_CONFIRMATION,
            confirmation_sent=confirmation_sent,
        )

    def confirm(self, raw_token: str, idempotency_key: Optional[str] = None) -> ConfirmationResult:
        """
        구독 확인 (같은 링크를 여러 번 사용해도 안전)

        Raises:
            MalformedToken: 토큰 형식 오류 (DB 조회 없음)
            UnknownToken: 존재하지 않는 토큰
            IdempotencyKeyReused: 같은 키로 다른 토큰을 확인 요청
        """
        token = self.token_service.parse(raw_token)

        with self.database.session() as session:
            admitted = None
            if idempotency_key is not None:
                outcome = self.ledger.begin(
                    session,
                    SCOPE_SUBSCRIPTION_CONFIRM,
                    idempotency_key,
                    fingerprint_request({"subscription_token": token}),
                )
                if isinstance(outcome, AlreadyCompleted):
                    return ConfirmationResult.from_snapshot(outcome.response.body)
                admitted = outcome

            subscriber_id = self.token_service.resolve(session, token)
            newly_confirmed = SubscriberRepository.mark_confirmed(session, subscriber_id)
            result = ConfirmationResult(newly_confirmed=newly_confirmed)

            if admitted is not None:
                self.ledger.complete(session, admitted, 200, result.to_dict())

        if newly_confirmed:
            logger.info(f"구독 확인 완료: subscriber_id={subscriber_id}")
        else:
            logger.info(f"이미 확인된 구독: subscriber_id={subscriber_id}")
        return result

    def _send_confirmation(
        self,
        subscriber_id: str,
        new_subscriber: NewSubscriber,
        token: str,
    ) -> bool:
        result = self.email_service.send(new_subscriber, token)
        if not result.success:
            # 가입은 유지됨, resend_confirmation()으로 재발송 가능
            logger.warning(
                "구독 확인 메일 발송 실패 (재발송 필요): subscriber_id=%s status=%s error=%s",
                subscriber_id, result.status.value, result.error_message,
            )
        return result.success
