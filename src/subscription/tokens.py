"""
구독 확인 토큰 서비스 - 발급, 형식 검증, 조회
"""

import secrets
import string
import logging

from sqlalchemy.orm import Session

from src.database import TokenRepository
from src.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 32
TOKEN_ALPHABET = string.ascii_letters + string.digits


class MalformedToken(InvalidInputError):
    def __init__(self):
        super().__init__("The subscription token is malformed.")


class UnknownToken(NotFoundError):
    def __init__(self):
        super().__init__("The subscription token is not recognised.")


class TokenService:
    """구독 확인 토큰 관리"""

    def __init__(self, token_length: int = TOKEN_LENGTH):
        self.token_length = token_length

    def generate(self) -> str:
        """CSPRNG 기반 영숫자 토큰 생성"""
        return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(self.token_length))

    def issue(self, session: Session, subscriber_id: str) -> str:
        """
        토큰 발급 및 저장

        같은 구독자의 이전 토큰은 무효화된다.
        """
        token = self.generate()
        TokenRepository.store(session, subscriber_id, token)
        logger.debug("구독 확인 토큰 발급: subscriber_id=%s", subscriber_id)
        return token

    def parse(self, raw: str) -> str:
        """
        토큰 형식 검증 (DB 조회 전)

        Raises:
            MalformedToken: 길이 또는 문자 구성이 맞지 않음
        """
        if (
            not raw
            or len(raw) != self.token_length
            or any(ch not in TOKEN_ALPHABET for ch in raw)
        ):
            raise MalformedToken()
        return raw

    def resolve(self, session: Session, raw: str) -> str:
        """
        토큰으로 구독자 ID 조회

        Raises:
            MalformedToken: 형식 오류
            UnknownToken: 형식은 맞지만 존재하지 않거나 무효화된 토큰
        """
        token = self.parse(raw)
        subscriber_id = TokenRepository.get_subscriber_id(session, token)
        if subscriber_id is None:
            raise UnknownToken()
        return subscriber_id
