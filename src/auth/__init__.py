"""
발행자 인증 모듈
"""

from .credentials import (
    Credentials,
    CredentialValidator,
    InvalidCredentials,
    hash_password,
    parse_basic_authorization,
)

__all__ = [
    "Credentials",
    "CredentialValidator",
    "InvalidCredentials",
    "hash_password",
    "parse_basic_authorization",
]
