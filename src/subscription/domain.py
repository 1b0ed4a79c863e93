"""
구독자 입력 검증 (이름, 이메일)

파싱에 성공한 값만 도메인 타입으로 감싸 전달한다. 실패는 항상
InvalidInputError로 보고되며 요청 처리를 중단시키지 않는다.
"""

import unicodedata
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email

from src.errors import InvalidInputError

MAX_NAME_LENGTH = 256
FORBIDDEN_NAME_CHARACTERS = frozenset('/()"<>\\{}')


class InvalidSubscriberName(InvalidInputError):
    pass


class InvalidSubscriberEmail(InvalidInputError):
    pass


def _has_control_characters(value: str) -> bool:
    # Cc: 제어 문자, Cf: 서식 문자 (zero-width 등)
    return any(unicodedata.category(ch) in ("Cc", "Cf") for ch in value)


@dataclass(frozen=True)
class SubscriberName:
    """검증된 구독자 이름"""
    value: str

    @classmethod
    def parse(cls, raw: str) -> "SubscriberName":
        if raw is None or not raw.strip():
            raise InvalidSubscriberName("Subscriber name must not be empty.")
        # str.strip()는 \x1c-\x1f 같은 제어 문자도 제거하므로 원본 값을 먼저 검사
        if _has_control_characters(raw):
            raise InvalidSubscriberName("Subscriber name contains forbidden characters.")

        name = unicodedata.normalize("NFC", raw.strip())

        if len(name) > MAX_NAME_LENGTH:
            raise InvalidSubscriberName(
                f"Subscriber name must be at most {MAX_NAME_LENGTH} characters long."
            )
        if any(ch in FORBIDDEN_NAME_CHARACTERS for ch in name) or _has_control_characters(name):
            raise InvalidSubscriberName("Subscriber name contains forbidden characters.")

        return cls(name)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SubscriberEmail:
    """검증된 구독자 이메일"""
    value: str

    @classmethod
    def parse(cls, raw: str) -> "SubscriberEmail":
        if raw is None or not raw.strip():
            raise InvalidSubscriberEmail("Subscriber email must not be empty.")

        try:
            result = validate_email(raw.strip(), check_deliverability=False)
        except EmailNotValidError as e:
            raise InvalidSubscriberEmail("Subscriber email is not a valid email address.") from e

        return cls(result.normalized)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class NewSubscriber:
    """가입 요청 (검증 완료)"""
    email: SubscriberEmail
    name: SubscriberName

    @classmethod
    def parse(cls, email: str, name: str) -> "NewSubscriber":
        return cls(email=SubscriberEmail.parse(email), name=SubscriberName.parse(name))
