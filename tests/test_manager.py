"""
구독 워크플로 테스트
"""

import re
import threading

import pytest

from src.database import (
    SubscriberAlreadyExists,
    SubscriberRepository,
    Subscriber,
    SubscriptionStatus,
    SubscriptionToken,
)
from src.errors import ErrorKind
from src.idempotency import IdempotencyKeyReused
from src.mailer import DeliveryStatus
from src.subscription import (
    AlreadyConfirmed,
    ConfirmationEmailService,
    MalformedToken,
    SubscriberNotFound,
    SubscriptionManager,
    UnknownToken,
)
from src.subscription.domain import InvalidSubscriberEmail, InvalidSubscriberName

from .fakes import BASE_URL, FakeEmailClient

TOKEN_PATTERN = re.compile(r"subscription_token=([A-Za-z0-9]+)")


def extract_token(confirmation: dict) -> str:
    return TOKEN_PATTERN.search(confirmation["text_body"]).group(1)


def count_rows(database, model) -> int:
    with database.session() as session:
        return session.query(model).count()


class TestSubscribe:
    """구독 신청 테스트"""

    def test_subscribe_persists_one_pending_subscriber_and_one_token(self, manager, database):
        result = manager.subscribe("ursula_le_guin@gmail.com", "le guin")

        assert result.status is SubscriptionStatus.PENDING_CONFIRMATION
        with database.session() as session:
            subscribers = session.query(Subscriber).all()
            assert len(subscribers) == 1
            assert subscribers[0].status is SubscriptionStatus.PENDING_CONFIRMATION
            assert subscribers[0].email == "ursula_le_guin@gmail.com"
            assert subscribers[0].name == "le guin"

            tokens = session.query(SubscriptionToken).all()
            assert len(tokens) == 1
            assert tokens[0].subscriber_id == result.subscriber_id

    def test_subscribe_sends_confirmation_with_link(self, manager, email_client):
        result = manager.subscribe("ursula_le_guin@gmail.com", "le guin")

        assert result.confirmation_sent
        assert len(email_client.confirmations) == 1

        confirmation = email_client.confirmations[0]
        assert confirmation["recipient"] == "ursula_le_guin@gmail.com"
        assert f"{BASE_URL}/subscriptions/confirm?subscription_token=" in confirmation["text_body"]
        assert f"{BASE_URL}/subscriptions/confirm?subscription_token=" in confirmation["html_body"]
        assert "le guin" in confirmation["html_body"]

    def test_duplicate_email_is_a_conflict(self, manager, database):
        manager.subscribe("ursula_le_guin@gmail.com", "le guin")

        with pytest.raises(SubscriberAlreadyExists) as exc_info:
            manager.subscribe("ursula_le_guin@gmail.com", "someone else")

        assert exc_info.value.kind is ErrorKind.CONFLICT
        assert count_rows(database, Subscriber) == 1
        assert count_rows(database, SubscriptionToken) == 1

    @pytest.mark.parametrize("email, name, error", [
        ("ursula_le_guin@gmail.com", "", InvalidSubscriberName),
        ("ursula_le_guin@gmail.com", "<script>", InvalidSubscriberName),
        ("", "le guin", InvalidSubscriberEmail),
        ("definitely-not-an-email", "le guin", InvalidSubscriberEmail),
    ])
    def test_invalid_input_persists_nothing(self, manager, database, email_client, email, name, error):
        with pytest.raises(error) as exc_info:
            manager.subscribe(email, name)

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert count_rows(database, Subscriber) == 0
        assert email_client.confirmations == []

    def test_delivery_failure_does_not_roll_back_signup(self, database, ledger, token_service):
        failing_client = FakeEmailClient(lambda n, r: DeliveryStatus.TRANSIENT_FAILURE)
        manager = SubscriptionManager(
            database=database,
            token_service=token_service,
            email_service=ConfirmationEmailService(failing_client, base_url=BASE_URL),
            ledger=ledger,
        )

        result = manager.subscribe("ursula_le_guin@gmail.com", "le guin")

        assert not result.confirmation_sent
        assert count_rows(database, Subscriber) == 1
        assert count_rows(database, SubscriptionToken) == 1


class TestConfirm:
    """구독 확인 테스트"""

    def test_confirm_marks_subscriber_confirmed(self, manager, email_client, database):
        result = manager.subscribe("ursula_le_guin@gmail.com", "le guin")

        confirmation = manager.confirm(extract_token(email_client.confirmations[0]))

        assert confirmation.newly_confirmed
        with database.session() as session:
            subscriber = SubscriberRepository.get(session, result.subscriber_id)
            assert subscriber.status is SubscriptionStatus.CONFIRMED
            assert subscriber.confirmed_at is not None

    def test_confirming_twice_is_harmless(self, manager, email_client, database):
        result = manager.subscribe("ursula_le_guin@gmail.com", "le guin")
        token = extract_token(email_client.confirmations[0])

        first = manager.confirm(token)
        with database.session() as session:
            confirmed_at = SubscriberRepository.get(session, result.subscriber_id).confirmed_at

        second = manager.confirm(token)

        assert first.newly_confirmed
        assert not second.newly_confirmed
        with database.session() as session:
            subscriber = SubscriberRepository.get(session, result.subscriber_id)
            assert subscriber.status is SubscriptionStatus.CONFIRMED
            assert subscriber.confirmed_at == confirmed_at

    def test_concurrent_confirmations_both_succeed(self, manager, email_client, database):
        result = manager.subscribe("ursula_le_guin@gmail.com", "le guin")
        token = extract_token(email_client.confirmations[0])

        outcomes, errors = [], []

        def redeem():
            try:
                outcomes.append(manager.confirm(token))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=redeem) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sum(1 for o in outcomes if o.newly_confirmed) == 1
        with database.session() as session:
            assert SubscriberRepository.get(session, result.subscriber_id).status is SubscriptionStatus.CONFIRMED

    def test_unknown_token_is_not_found(self, manager, token_service):
        with pytest.raises(UnknownToken) as exc_info:
            manager.confirm(token_service.generate())
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_malformed_token_is_rejected(self, manager):
        with pytest.raises(MalformedToken):
            manager.confirm("not a token")

    def test_confirm_with_idempotency_key_replays_result(self, manager, email_client):
        manager.subscribe("ursula_le_guin@gmail.com", "le guin")
        token = extract_token(email_client.confirmations[0])

        first = manager.confirm(token, idempotency_key="confirm-1")
        second = manager.confirm(token, idempotency_key="confirm-1")

        assert first.newly_confirmed and not first.replayed
        assert second.replayed
        assert second.newly_confirmed

    def test_idempotency_key_reused_with_another_token_is_rejected(self, manager, email_client, token_service):
        manager.subscribe("ursula_le_guin@gmail.com", "le guin")
        token = extract_token(email_client.confirmations[0])
        manager.confirm(token, idempotency_key="confirm-1")

        with pytest.raises(IdempotencyKeyReused) as exc_info:
            manager.confirm(token_service.generate(), idempotency_key="confirm-1")
        assert exc_info.value.kind is ErrorKind.VALIDATION


class TestResendConfirmation:
    """확인 메일 재발송 테스트"""

    def test_resend_issues_new_token_and_revokes_old(self, manager, email_client, database):
        manager.subscribe("ursula_le_guin@gmail.com", "le guin")
        old_token = extract_token(email_client.confirmations[0])

        result = manager.resend_confirmation("ursula_le_guin@gmail.com")

        assert result.confirmation_sent
        assert len(email_client.confirmations) == 2
        new_token = extract_token(email_client.confirmations[1])
        assert new_token != old_token

        with pytest.raises(UnknownToken):
            manager.confirm(old_token)
        assert manager.confirm(new_token).newly_confirmed

    def test_resend_for_unknown_email(self, manager):
        with pytest.raises(SubscriberNotFound):
            manager.resend_confirmation("nobody@example.com")

    def test_resend_for_confirmed_subscriber(self, manager, email_client):
        manager.subscribe("ursula_le_guin@gmail.com", "le guin")
        manager.confirm(extract_token(email_client.confirmations[0]))

        with pytest.raises(AlreadyConfirmed) as exc_info:
            manager.resend_confirmation("ursula_le_guin@gmail.com")
        assert exc_info.value.kind is ErrorKind.CONFLICT
