"""
Newsletter 설정 관리 모듈
"""

from pathlib import Path
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 프로젝트 경로
    BASE_DIR: Path = Path(__file__).parent.parent

    # 애플리케이션
    app_host: str = Field(default="127.0.0.1")
    app_port: int = Field(default=8000)
    app_base_url: str = Field(default="http://127.0.0.1:8000")

    # 데이터베이스
    database_url: str = Field(default="sqlite:///./data/newsletter.db")
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=5, ge=0)
    db_pool_timeout: float = Field(default=5.0, gt=0)

    # 이메일 발송 (트랜잭션 메일 API)
    email_base_url: str = Field(default="https://api.postmarkapp.com")
    email_sender: str = Field(default="newsletter@example.com")
    email_authorization_token: SecretStr = Field(default=SecretStr(""))
    email_timeout_milliseconds: int = Field(default=10_000, gt=0)
    email_message_stream: str = Field(default="outbound")

    # 멱등성 키 보존 기간
    idempotency_ttl_hours: int = Field(default=24, gt=0)
    # 처리 중 레코드가 이 시간을 넘기면 중단된 것으로 간주
    idempotency_lease_minutes: int = Field(default=15, gt=0)

    # 로깅
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))

    @property
    def email_timeout(self) -> float:
        """이메일 API 타임아웃 (초)"""
        return self.email_timeout_milliseconds / 1000


@lru_cache()
def get_settings() -> Settings:
    """설정 싱글톤 반환 (진입점에서만 호출)"""
    return Settings()
