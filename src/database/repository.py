"""
데이터베이스 저장소 패턴 구현
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional
from contextlib import contextmanager

from sqlalchemy import and_, create_engine, func, or_, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import sessionmaker, Session

from src.errors import ConflictError, storage_error
from .models import (
    Base,
    IdempotencyRecord,
    IdempotencyStatus,
    Publisher,
    Subscriber,
    SubscriptionStatus,
    SubscriptionToken,
)

logger = logging.getLogger(__name__)

# 확인된 구독자 조회 시 한 번에 가져올 행 수
CONFIRMED_BATCH_SIZE = 100


class SubscriberAlreadyExists(ConflictError):
    """이메일 중복"""

    def __init__(self):
        super().__init__("A subscriber with this email address already exists.")


def _is_in_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


class Database:
    """엔진과 세션 팩토리 (진입점에서 한 번 생성해 주입)"""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 5,
        pool_timeout: float = 5.0,
    ):
        self.database_url = database_url
        is_sqlite = database_url.startswith("sqlite")

        # data 디렉토리 생성
        if database_url.startswith("sqlite:///") and not _is_in_memory_sqlite(database_url):
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine_kwargs = {"echo": False}
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        if not _is_in_memory_sqlite(database_url):
            # 풀 고갈 시 pool_timeout 이후 TimeoutError (무한 대기 없음)
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=not is_sqlite,
            )

        self.engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        """테이블 생성"""
        Base.metadata.create_all(bind=self.engine)
        logger.info("데이터베이스 초기화 완료: %s", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        세션 컨텍스트 매니저 (하나의 트랜잭션)

        블록이 정상 종료되면 커밋하고, 예외 발생 시 롤백한다.
        SQLAlchemy 오류는 ServiceError로 변환되어 원인과 함께 전파된다.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except sa_exc.SQLAlchemyError as e:
            session.rollback()
            raise storage_error(e, "complete a database transaction") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SubscriberRepository:
    """구독자 저장소"""

    @staticmethod
    def create_pending(session: Session, email: str, name: str) -> str:
        """
        확인 대기 상태의 구독자 생성

        Returns:
            구독자 ID

        Raises:
            SubscriberAlreadyExists: 이메일 유일성 제약 위반
        """
        if SubscriberRepository.get_by_email(session, email) is not None:
            raise SubscriberAlreadyExists()

        subscriber = Subscriber(
            email=email,
            name=name,
            status=SubscriptionStatus.PENDING_CONFIRMATION,
            subscribed_at=datetime.utcnow(),
        )
        session.add(subscriber)
        try:
            session.flush()
        except sa_exc.IntegrityError as e:
            # 동시 가입 경쟁: 사전 조회 이후 다른 트랜잭션이 먼저 삽입
            raise SubscriberAlreadyExists() from e
        return subscriber.id

    @staticmethod
    def get(session: Session, subscriber_id: str) -> Optional[Subscriber]:
        """ID로 구독자 조회"""
        return session.get(Subscriber, subscriber_id)

    @staticmethod
    def get_by_email(session: Session, email: str) -> Optional[Subscriber]:
        """이메일로 구독자 조회"""
        return session.query(Subscriber).filter(Subscriber.email == email).first()

    @staticmethod
    def list_confirmed_page(
        session: Session,
        after: Optional[tuple[datetime, str]] = None,
        limit: int = CONFIRMED_BATCH_SIZE,
    ) -> list:
        """
        확인된 구독자 한 페이지 조회 (subscribed_at, id 기준 키셋 페이지네이션)

        Args:
            after: 직전 페이지 마지막 행의 (subscribed_at, id)
            limit: 페이지 크기

        Returns:
            (subscribed_at, id, email) 행 목록
        """
        stmt = (
            select(Subscriber.subscribed_at, Subscriber.id, Subscriber.email)
            .where(Subscriber.status == SubscriptionStatus.CONFIRMED)
        )
        if after is not None:
            last_subscribed_at, last_id = after
            stmt = stmt.where(or_(
                Subscriber.subscribed_at > last_subscribed_at,
                and_(Subscriber.subscribed_at == last_subscribed_at, Subscriber.id > last_id),
            ))
        stmt = stmt.order_by(Subscriber.subscribed_at, Subscriber.id).limit(limit)
        return list(session.execute(stmt).all())

    @staticmethod
    def iter_confirmed_emails(database: Database, batch_size: int = CONFIRMED_BATCH_SIZE) -> Iterator[str]:
        """
        확인된 구독자의 이메일을 페이지 단위로 순회

        페이지마다 짧은 트랜잭션으로 읽고 즉시 닫기 때문에, 호출자가 값을
        소비하는 동안(예: 메일 발송) 연결이나 잠금을 잡고 있지 않다.
        호출할 때마다 처음부터 다시 시작한다.
        """
        after = None
        while True:
            with database.session() as session:
                page = SubscriberRepository.list_confirmed_page(session, after=after, limit=batch_size)

            for row in page:
                yield row.email

            if len(page) < batch_size:
                return
            after = (page[-1].subscribed_at, page[-1].id)

    @staticmethod
    def mark_confirmed(session: Session, subscriber_id: str) -> bool:
        """
        구독 확인 처리 (멱등)

        이미 확인된 구독자는 변경하지 않는다. 동시 요청도 잠금 없이
        조건부 UPDATE 하나로 처리된다.

        Returns:
            이번 호출로 상태가 전이되었는지 여부
        """
        result = session.execute(
            update(Subscriber)
            .where(
                Subscriber.id == subscriber_id,
                Subscriber.status == SubscriptionStatus.PENDING_CONFIRMATION,
            )
            .values(status=SubscriptionStatus.CONFIRMED, confirmed_at=datetime.utcnow())
        )
        return result.rowcount == 1

    @staticmethod
    def count_by_status(session: Session) -> dict[str, int]:
        """상태별 구독자 수"""
        rows = (
            session.query(Subscriber.status, func.count(Subscriber.id))
            .group_by(Subscriber.status)
            .all()
        )
        counts = {status.value: 0 for status in SubscriptionStatus}
        for status, count in rows:
            counts[status.value] = count
        return counts


class TokenRepository:
    """구독 확인 토큰 저장소"""

    @staticmethod
    def store(session: Session, subscriber_id: str, token: str) -> None:
        """토큰 저장 (해당 구독자의 기존 유효 토큰은 무효화)"""
        now = datetime.utcnow()
        session.execute(
            update(SubscriptionToken)
            .where(
                SubscriptionToken.subscriber_id == subscriber_id,
                SubscriptionToken.revoked_at.is_(None),
            )
            .values(revoked_at=now)
        )
        session.add(SubscriptionToken(
            subscription_token=token,
            subscriber_id=subscriber_id,
            issued_at=now,
        ))
        session.flush()

    @staticmethod
    def get_subscriber_id(session: Session, token: str) -> Optional[str]:
        """유효한 토큰의 구독자 ID 조회"""
        return session.execute(
            select(SubscriptionToken.subscriber_id).where(
                SubscriptionToken.subscription_token == token,
                SubscriptionToken.revoked_at.is_(None),
            )
        ).scalar_one_or_none()

    @staticmethod
    def list_for_subscriber(session: Session, subscriber_id: str) -> list[SubscriptionToken]:
        """구독자의 전체 토큰 (무효화된 토큰 포함)"""
        return (
            session.query(SubscriptionToken)
            .filter(SubscriptionToken.subscriber_id == subscriber_id)
            .order_by(SubscriptionToken.issued_at)
            .all()
        )


class IdempotencyRepository:
    """멱등성 레코드 저장소"""

    @staticmethod
    def get(session: Session, scope: str, key: str) -> Optional[IdempotencyRecord]:
        return session.get(IdempotencyRecord, (key, scope))

    @staticmethod
    def insert_in_progress(
        session: Session,
        scope: str,
        key: str,
        fingerprint: Optional[str] = None,
    ) -> IdempotencyRecord:
        record = IdempotencyRecord(
            idempotency_key=key,
            scope=scope,
            status=IdempotencyStatus.IN_PROGRESS,
            request_fingerprint=fingerprint,
            created_at=datetime.utcnow(),
        )
        session.add(record)
        session.flush()
        return record

    @staticmethod
    def delete(session: Session, record: IdempotencyRecord) -> None:
        session.delete(record)
        session.flush()

    @staticmethod
    def delete_created_before(session: Session, cutoff: datetime) -> int:
        """보존 기간이 지난 레코드 삭제"""
        return (
            session.query(IdempotencyRecord)
            .filter(IdempotencyRecord.created_at < cutoff)
            .delete(synchronize_session=False)
        )


class PublisherRepository:
    """발행자 계정 저장소"""

    @staticmethod
    def create(session: Session, username: str, password_hash: str) -> Publisher:
        publisher = Publisher(username=username, password_hash=password_hash)
        session.add(publisher)
        session.flush()
        return publisher

    @staticmethod
    def get_by_username(session: Session, username: str) -> Optional[Publisher]:
        return session.query(Publisher).filter(Publisher.username == username).first()
