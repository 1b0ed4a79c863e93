"""
공용 테스트 픽스처
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.database import Database, Subscriber, SubscriptionStatus
from src.idempotency import IdempotencyLedger
from src.subscription import ConfirmationEmailService, SubscriptionManager, TokenService

from .fakes import BASE_URL, FakeEmailClient


@pytest.fixture
def database(tmp_path):
    """테스트마다 새 SQLite 데이터베이스"""
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def email_client():
    return FakeEmailClient()


@pytest.fixture
def ledger():
    return IdempotencyLedger(retention=timedelta(hours=24))


@pytest.fixture
def token_service():
    return TokenService()


@pytest.fixture
def manager(database, email_client, ledger, token_service):
    return SubscriptionManager(
        database=database,
        token_service=token_service,
        email_service=ConfirmationEmailService(email_client, base_url=BASE_URL),
        ledger=ledger,
    )


@pytest.fixture
def add_subscriber(database):
    """검증을 거치지 않고 구독자를 직접 저장"""

    def _add(email: str, status: SubscriptionStatus = SubscriptionStatus.CONFIRMED, name: str = "Reader") -> str:
        with database.session() as session:
            subscriber = Subscriber(
                email=email,
                name=name,
                status=status,
                subscribed_at=datetime.utcnow(),
            )
            session.add(subscriber)
            session.flush()
            return subscriber.id

    return _add
