"""
멱등성 원장 - 외부에서 재시도된 쓰기 요청의 중복 처리 방지

사용 방식은 두 가지다.

- 업무 효과가 DB 쓰기뿐인 경우(구독 확인): begin()과 complete()를 효과와
  *같은* 트랜잭션에서 호출한다. 효과와 결과 기록이 한 번에 커밋된다.
- 업무 효과가 외부 호출인 경우(뉴스레터 발송): begin()을 짧은 트랜잭션으로
  먼저 커밋해 키를 선점하고, 외부 호출은 트랜잭션 밖에서 수행한 뒤
  complete()를 두 번째 짧은 트랜잭션에서 호출한다. 도중에 실패하면
  release()로 선점을 해제한다.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session
from sqlalchemy import exc as sa_exc

from src.database import IdempotencyRepository, IdempotencyStatus
from src.errors import InvalidInputError, TransientError, UnexpectedError

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 50

# 작업 범위
SCOPE_NEWSLETTER_ISSUE = "newsletter_issue"
SCOPE_SUBSCRIPTION_CONFIRM = "subscription_confirm"


class InvalidIdempotencyKey(InvalidInputError):
    pass


class IdempotencyKeyReused(InvalidInputError):
    """같은 키가 다른 내용의 요청에 재사용됨"""

    def __init__(self):
        super().__init__("This idempotency key was already used for a different request.")


class RequestInProgress(TransientError):
    """같은 키의 요청이 아직 처리 중 (같은 키로 재시도하면 완료된 결과를 받음)"""

    def __init__(self):
        super().__init__("A request with this idempotency key is still being processed. Please retry.")


def parse_idempotency_key(raw: str) -> str:
    """멱등성 키 형식 검증"""
    if raw is None or not raw.strip():
        raise InvalidIdempotencyKey("The idempotency key must not be empty.")
    key = raw.strip()
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidIdempotencyKey(
            f"The idempotency key must be at most {MAX_KEY_LENGTH} characters long."
        )
    if not all(ch.isascii() and ch.isprintable() for ch in key):
        raise InvalidIdempotencyKey("The idempotency key must contain printable ASCII characters only.")
    return key


def fingerprint_request(payload: dict) -> str:
    """요청 내용의 SHA-256 해시 (키 순서와 무관)"""
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SavedResponse:
    """재생용 응답 스냅샷"""
    status_code: int
    body: dict


@dataclass(frozen=True)
class AlreadyCompleted:
    response: SavedResponse


@dataclass(frozen=True)
class Admitted:
    scope: str
    key: str


BeginOutcome = Union[AlreadyCompleted, Admitted]


class IdempotencyLedger:
    """멱등성 원장"""

    def __init__(
        self,
        retention: timedelta = timedelta(hours=24),
        lease: timedelta = timedelta(minutes=15),
    ):
        """
        Args:
            retention: 레코드 보존 기간
            lease: 처리 중 레코드를 중단된 것으로 간주하기까지의 시간
        """
        self.retention = retention
        self.lease = lease

    def begin(
        self,
        session: Session,
        scope: str,
        key: str,
        fingerprint: Optional[str] = None,
    ) -> BeginOutcome:
        """
        키 등록

        Returns:
            AlreadyCompleted: 저장된 응답을 재생하고 업무 효과는 수행하지 않는다
            Admitted: 처리 진행, 이후 complete() 또는 release() 호출 필요

        Raises:
            IdempotencyKeyReused: 같은 키가 다른 요청 내용으로 사용됨
            RequestInProgress: 다른 요청이 같은 키를 처리 중
        """
        now = datetime.utcnow()
        record = IdempotencyRepository.get(session, scope, key)

        if record is not None and record.created_at < now - self.retention:
            logger.info("보존 기간이 지난 멱등성 레코드 삭제: scope=%s", scope)
            IdempotencyRepository.delete(session, record)
            record = None

        if record is not None and record.request_fingerprint != fingerprint:
            raise IdempotencyKeyReused()

        if (
            record is not None
            and record.status is IdempotencyStatus.IN_PROGRESS
            and record.created_at < now - self.lease
        ):
            logger.warning("처리가 중단된 멱등성 레코드 재사용: scope=%s key=%s", scope, key)
            IdempotencyRepository.delete(session, record)
            record = None

        if record is not None:
            if record.status is IdempotencyStatus.COMPLETED:
                logger.info("완료된 요청 재생: scope=%s key=%s", scope, key)
                return AlreadyCompleted(SavedResponse(
                    status_code=record.response_status_code,
                    body=record.response_body or {},
                ))
            raise RequestInProgress()

        try:
            IdempotencyRepository.insert_in_progress(session, scope, key, fingerprint)
        except sa_exc.IntegrityError as e:
            # 동시 요청이 먼저 같은 키를 커밋함
            raise RequestInProgress() from e

        return Admitted(scope=scope, key=key)

    def complete(
        self,
        session: Session,
        admitted: Admitted,
        status_code: int,
        body: dict,
    ) -> None:
        """응답 기록 (완료된 레코드는 다시 변경하지 않음)"""
        record = IdempotencyRepository.get(session, admitted.scope, admitted.key)
        if record is None or record.status is not IdempotencyStatus.IN_PROGRESS:
            raise UnexpectedError("The idempotency record could not be completed.")

        record.status = IdempotencyStatus.COMPLETED
        record.response_status_code = status_code
        record.response_body = body
        record.completed_at = datetime.utcnow()
        session.flush()

    def release(self, session: Session, admitted: Admitted) -> None:
        """업무 효과가 실패한 경우 선점 해제 (같은 키로 다시 시도 가능)"""
        record = IdempotencyRepository.get(session, admitted.scope, admitted.key)
        if record is not None and record.status is IdempotencyStatus.IN_PROGRESS:
            IdempotencyRepository.delete(session, record)
            logger.info("멱등성 키 선점 해제: scope=%s key=%s", admitted.scope, admitted.key)

    def purge_expired(self, session: Session, now: Optional[datetime] = None) -> int:
        """보존 기간이 지난 레코드 삭제"""
        cutoff = (now or datetime.utcnow()) - self.retention
        deleted = IdempotencyRepository.delete_created_before(session, cutoff)
        logger.info(f"만료된 멱등성 레코드 {deleted}건 삭제")
        return deleted
