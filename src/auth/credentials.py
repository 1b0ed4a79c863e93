"""
발행자 인증 - HTTP Basic 자격 증명 파싱 및 bcrypt 검증
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Optional

import bcrypt

from src.database import Database, PublisherRepository
from src.errors import ConflictError, UnauthorizedError

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

# 존재하지 않는 사용자에 대해서도 같은 비용의 검증을 수행하기 위한 해시
_DUMMY_PASSWORD_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt()).decode()


class InvalidCredentials(UnauthorizedError):
    pass


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


def hash_password(password: str) -> str:
    """비밀번호 해시 생성"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def parse_basic_authorization(header_value: Optional[str]) -> Credentials:
    """
    Authorization 헤더에서 Basic 자격 증명 추출

    Raises:
        InvalidCredentials: 헤더 누락 또는 형식 오류
    """
    if not header_value:
        raise InvalidCredentials("The 'Authorization' header is missing.")

    scheme, _, encoded = header_value.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        raise InvalidCredentials("The authorization scheme is not 'Basic'.")

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise InvalidCredentials("Failed to decode 'Basic' credentials.") from e

    username, separator, password = decoded.partition(":")
    if not separator:
        raise InvalidCredentials("A password must be provided in 'Basic' auth.")
    if not username:
        raise InvalidCredentials("A username must be provided in 'Basic' auth.")

    return Credentials(username=username, password=password)


class CredentialValidator:
    """발행자 자격 증명 검증"""

    def __init__(self, database: Database):
        self.database = database

    def validate(self, credentials: Credentials) -> str:
        """
        자격 증명 검증

        Returns:
            발행자 user_id

        Raises:
            InvalidCredentials: 사용자 없음 또는 비밀번호 불일치
        """
        with self.database.session() as session:
            publisher = PublisherRepository.get_by_username(session, credentials.username)
            user_id = publisher.user_id if publisher else None
            expected_hash = publisher.password_hash if publisher else _DUMMY_PASSWORD_HASH

        password_ok = bcrypt.checkpw(
            credentials.password.encode("utf-8"),
            expected_hash.encode("utf-8"),
        )

        if user_id is None or not password_ok:
            security_logger.warning("발행자 인증 실패: username=%s", credentials.username)
            raise InvalidCredentials("Invalid username or password.")

        security_logger.info("발행자 인증 성공: username=%s", credentials.username)
        return user_id

    def authenticate(self, header_value: Optional[str]) -> str:
        """Authorization 헤더 값으로 인증"""
        return self.validate(parse_basic_authorization(header_value))

    def create_publisher(self, username: str, password: str) -> str:
        """발행자 계정 생성"""
        with self.database.session() as session:
            if PublisherRepository.get_by_username(session, username) is not None:
                raise ConflictError("A publisher with this username already exists.")
            publisher = PublisherRepository.create(session, username, hash_password(password))
            user_id = publisher.user_id
        logger.info(f"발행자 계정 생성: {username}")
        return user_id
