"""
오류 분류 모듈

모든 내부 오류를 HTTP 경계에서 사용하는 작은 분류 체계로 변환한다.
각 컴포넌트는 ServiceError 하위 클래스를 `raise ... from cause` 형태로 발생시키고,
전체 원인 체인은 경계(web.app)에서 한 번만 로깅한다.
"""

from enum import Enum
from typing import Optional

import httpx
from sqlalchemy import exc as sa_exc


class ErrorKind(str, Enum):
    """오류 종류"""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    TRANSIENT_INFRASTRUCTURE = "transient_infrastructure"
    UNEXPECTED = "unexpected"


# 종류별 HTTP 상태 코드
STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.TRANSIENT_INFRASTRUCTURE: 503,
    ErrorKind.UNEXPECTED: 500,
}

# 종류별 기본 메시지 (호출자에게 노출해도 안전한 문구)
DEFAULT_MESSAGES = {
    ErrorKind.VALIDATION: "The request contained invalid data.",
    ErrorKind.CONFLICT: "The request conflicts with existing data.",
    ErrorKind.NOT_FOUND: "The requested resource was not found.",
    ErrorKind.UNAUTHORIZED: "Authentication failed.",
    ErrorKind.TRANSIENT_INFRASTRUCTURE: "The service is temporarily unavailable. Please retry.",
    ErrorKind.UNEXPECTED: "An unexpected error occurred.",
}

# 재시도해도 안전한 종류
RETRYABLE_KINDS = frozenset({ErrorKind.TRANSIENT_INFRASTRUCTURE})


class ServiceError(Exception):
    """서비스 오류 기본 클래스"""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: Optional[str] = None):
        self.message = message or DEFAULT_MESSAGES[self.kind]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "message": self.message}


class InvalidInputError(ServiceError):
    kind = ErrorKind.VALIDATION


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND


class UnauthorizedError(ServiceError):
    kind = ErrorKind.UNAUTHORIZED


class TransientError(ServiceError):
    kind = ErrorKind.TRANSIENT_INFRASTRUCTURE


class UnexpectedError(ServiceError):
    kind = ErrorKind.UNEXPECTED


class StorageUnavailable(TransientError):
    """DB 연결 실패, 풀 고갈, 타임아웃"""


class StorageFailure(UnexpectedError):
    """재시도로 해결되지 않는 DB 오류"""


_TRANSIENT_DB_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.TimeoutError,
    sa_exc.DisconnectionError,
    sa_exc.InterfaceError,
)


def classify(error: BaseException) -> ServiceError:
    """
    임의의 예외를 ServiceError로 분류

    이미 ServiceError인 경우 그대로 반환하고, 그 외에는 원인을 연결한
    새 ServiceError를 만든다.
    """
    if isinstance(error, ServiceError):
        return error

    if isinstance(error, _TRANSIENT_DB_ERRORS):
        wrapped: ServiceError = StorageUnavailable()
    elif isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        wrapped = TransientError()
    else:
        wrapped = UnexpectedError()

    wrapped.__cause__ = error
    return wrapped


def storage_error(error: sa_exc.SQLAlchemyError, action: str) -> ServiceError:
    """SQLAlchemy 오류를 원인이 연결된 스토리지 오류로 변환"""
    if isinstance(error, _TRANSIENT_DB_ERRORS):
        wrapped: ServiceError = StorageUnavailable()
    else:
        wrapped = StorageFailure(f"A database error occurred while trying to {action}.")
    wrapped.__cause__ = error
    return wrapped


def format_error_chain(error: BaseException) -> str:
    """예외와 원인 체인 전체를 로그용 문자열로 변환"""
    lines = [f"{type(error).__name__}: {error}"]
    seen = {id(error)}
    current = error.__cause__ or error.__context__

    while current is not None and id(current) not in seen:
        seen.add(id(current))
        lines.append(f"Caused by:\n\t{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__

    return "\n".join(lines)
