"""
구독 확인 토큰 서비스 테스트
"""

import pytest

from src.database import SubscriptionStatus, TokenRepository
from src.errors import ErrorKind
from src.subscription import MalformedToken, UnknownToken
from src.subscription.tokens import TOKEN_ALPHABET, TOKEN_LENGTH


class TestTokenService:
    """TokenService 테스트"""

    def test_generated_tokens_are_long_and_alphanumeric(self, token_service):
        token = token_service.generate()
        assert len(token) == TOKEN_LENGTH >= 32
        assert all(ch in TOKEN_ALPHABET for ch in token)

    def test_generated_tokens_are_unique(self, token_service):
        tokens = {token_service.generate() for _ in range(200)}
        assert len(tokens) == 200

    @pytest.mark.parametrize("raw", [
        "",
        "short",
        "a" * (TOKEN_LENGTH + 1),
        "a" * (TOKEN_LENGTH - 1) + "!",
        "a" * (TOKEN_LENGTH - 1) + "é",
    ])
    def test_malformed_tokens_are_rejected(self, token_service, raw):
        with pytest.raises(MalformedToken) as exc_info:
            token_service.parse(raw)
        assert exc_info.value.kind is ErrorKind.VALIDATION

    def test_unknown_token_is_not_found(self, database, token_service):
        with pytest.raises(UnknownToken) as exc_info:
            with database.session() as session:
                token_service.resolve(session, token_service.generate())
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_issued_token_resolves_to_subscriber(self, database, token_service, add_subscriber):
        subscriber_id = add_subscriber("reader@example.com", SubscriptionStatus.PENDING_CONFIRMATION)

        with database.session() as session:
            token = token_service.issue(session, subscriber_id)

        with database.session() as session:
            assert token_service.resolve(session, token) == subscriber_id

    def test_reissue_revokes_previous_token(self, database, token_service, add_subscriber):
        subscriber_id = add_subscriber("reader@example.com", SubscriptionStatus.PENDING_CONFIRMATION)

        with database.session() as session:
            first = token_service.issue(session, subscriber_id)
        with database.session() as session:
            second = token_service.issue(session, subscriber_id)

        with database.session() as session:
            assert token_service.resolve(session, second) == subscriber_id
            with pytest.raises(UnknownToken):
                token_service.resolve(session, first)

            tokens = TokenRepository.list_for_subscriber(session, subscriber_id)
            assert len(tokens) == 2
            assert sum(1 for t in tokens if t.revoked_at is None) == 1
