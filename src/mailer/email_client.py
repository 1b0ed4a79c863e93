"""
트랜잭션 메일 API 클라이언트

하나의 httpx.Client를 공유해 연결을 재사용하며, 모든 호출은 클라이언트 전역
타임아웃으로 제한된다. 내부 재시도는 하지 않는다. 재시도 정책은 호출자 몫이다.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
from pydantic import SecretStr

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "X-Postmark-Server-Token"


class DeliveryStatus(str, Enum):
    """발송 결과 분류"""
    SENT = "sent"
    TRANSIENT_FAILURE = "transient_failure"  # 타임아웃, 네트워크 오류, 5xx
    PERMANENT_FAILURE = "permanent_failure"  # 4xx, 수신자 거부


@dataclass
class SendResult:
    """발송 결과"""
    recipient: str
    status: DeliveryStatus
    error_message: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status is DeliveryStatus.SENT

    @property
    def is_transient(self) -> bool:
        return self.status is DeliveryStatus.TRANSIENT_FAILURE


class EmailClient:
    """트랜잭션 메일 발송기"""

    def __init__(
        self,
        base_url: str,
        sender: str,
        authorization_token: SecretStr,
        timeout: float = 10.0,
        message_stream: str = "outbound",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            base_url: 메일 API 주소
            sender: 발신자 이메일
            authorization_token: API 토큰 (로그에 남기지 않음)
            timeout: 요청 하나에 허용되는 최대 시간 (초)
            message_stream: 메일 스트림 이름
            transport: 테스트용 대체 전송 계층
        """
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        self.message_stream = message_stream
        self._authorization_token = authorization_token

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "EmailClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def send_confirmation(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> SendResult:
        """구독 확인 메일 발송"""
        return self.send_email(recipient, subject, html_body, text_body)

    def send_issue(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> SendResult:
        """뉴스레터 발송"""
        return self.send_email(recipient, subject, html_body, text_body)

    def send_email(
        self,
        recipient: str,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> SendResult:
        """
        이메일 발송 (동기)

        Returns:
            분류된 SendResult. 예외는 발생시키지 않는다.
        """
        payload = {
            "From": self.sender,
            "To": recipient,
            "Subject": subject,
            "HtmlBody": html_body,
            "TextBody": text_body,
            "MessageStream": self.message_stream,
        }
        headers = {AUTHORIZATION_HEADER: self._authorization_token.get_secret_value()}

        try:
            response = self._client.post("/email", json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"이메일 발송 타임아웃: {recipient}")
            return SendResult(recipient, DeliveryStatus.TRANSIENT_FAILURE, f"timeout: {e}")
        except httpx.TransportError as e:
            logger.warning(f"이메일 발송 네트워크 오류: {recipient} - {e}")
            return SendResult(recipient, DeliveryStatus.TRANSIENT_FAILURE, f"network error: {e}")

        return self._classify_response(recipient, response)

    @staticmethod
    def _classify_response(recipient: str, response: httpx.Response) -> SendResult:
        """API 응답을 발송 결과로 분류"""
        code = response.status_code

        if code >= 500 or code == 429:
            logger.warning(f"이메일 발송 실패 (일시적): {recipient} - HTTP {code}")
            return SendResult(
                recipient, DeliveryStatus.TRANSIENT_FAILURE, f"provider returned HTTP {code}", code
            )

        if code >= 400:
            detail = _provider_message(response)
            logger.error(f"이메일 발송 실패 (영구적): {recipient} - HTTP {code} {detail}")
            return SendResult(
                recipient, DeliveryStatus.PERMANENT_FAILURE,
                f"provider rejected the message: HTTP {code} {detail}".strip(), code
            )

        if 200 <= code < 300:
            try:
                body = response.json()
            except ValueError:
                body = None

            if isinstance(body, dict) and body.get("ErrorCode") == 0:
                logger.info(f"이메일 발송 성공: {recipient}")
                return SendResult(recipient, DeliveryStatus.SENT, status_code=code)

            error_code = body.get("ErrorCode") if isinstance(body, dict) else None
            logger.error(f"이메일 발송 실패: {recipient} - 인식할 수 없는 응답 (ErrorCode={error_code})")
            return SendResult(
                recipient, DeliveryStatus.PERMANENT_FAILURE,
                f"unrecognised provider response (ErrorCode={error_code})", code
            )

        logger.error(f"이메일 발송 실패: {recipient} - 예상하지 못한 상태 코드 {code}")
        return SendResult(
            recipient, DeliveryStatus.PERMANENT_FAILURE, f"unexpected HTTP status {code}", code
        )


def _provider_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("Message", ""))
    return ""
