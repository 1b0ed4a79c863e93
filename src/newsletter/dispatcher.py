"""
뉴스레터 발송 엔진

확인된 모든 구독자에게 뉴스레터를 순차 발송한다. 수신자 한 명의 실패는
리포트에 기록될 뿐 나머지 발송을 중단시키지 않는다.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.database import Database, SubscriberRepository
from src.errors import InvalidInputError, format_error_chain
from src.idempotency import (
    AlreadyCompleted,
    IdempotencyLedger,
    SCOPE_NEWSLETTER_ISSUE,
    fingerprint_request,
)
from src.mailer import EmailClient
from src.subscription import SubscriberEmail

logger = logging.getLogger(__name__)


class InvalidIssue(InvalidInputError):
    pass


@dataclass(frozen=True)
class NewsletterIssue:
    """발송할 뉴스레터 (저장하지 않음)"""
    title: str
    html: str
    text: str

    @classmethod
    def parse(cls, title: str, html: str, text: str) -> "NewsletterIssue":
        if not title or not title.strip():
            raise InvalidIssue("The newsletter title must not be empty.")
        if not html or not html.strip():
            raise InvalidIssue("The newsletter HTML content must not be empty.")
        if not text or not text.strip():
            raise InvalidIssue("The newsletter text content must not be empty.")
        return cls(title=title.strip(), html=html, text=text)

    def fingerprint(self) -> str:
        return fingerprint_request({"title": self.title, "html": self.html, "text": self.text})


@dataclass
class DispatchReport:
    """발송 결과 집계 (배치 전체의 성공 여부는 호출자가 판단)"""
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    replayed: bool = False

    @property
    def total(self) -> int:
        return self.sent + self.skipped + self.failed

    def to_dict(self) -> dict:
        return {"sent": self.sent, "skipped": self.skipped, "failed": self.failed}

    @classmethod
    def from_snapshot(cls, body: dict) -> "DispatchReport":
        return cls(
            sent=int(body.get("sent", 0)),
            skipped=int(body.get("skipped", 0)),
            failed=int(body.get("failed", 0)),
            replayed=True,
        )


class NewsletterDispatcher:
    """뉴스레터 발송기"""

    def __init__(
        self,
        database: Database,
        email_client: EmailClient,
        ledger: IdempotencyLedger,
    ):
        self.database = database
        self.email_client = email_client
        self.ledger = ledger

    def dispatch(
        self,
        issue: NewsletterIssue,
        idempotency_key: Optional[str] = None,
    ) -> DispatchReport:
        """
        확인된 구독자 전체에게 발송

        발송 중에는 트랜잭션을 열어 두지 않는다. 멱등성 키가 주어지면 키를
        짧은 트랜잭션으로 먼저 선점하고, 발송이 끝난 뒤 결과를 두 번째
        트랜잭션에서 기록한다. 이미 완료된 키는 저장된 리포트를 반환하고
        아무것도 발송하지 않는다.

        Args:
            issue: 발송할 뉴스레터
            idempotency_key: 클라이언트가 지정한 멱등성 키 (선택)

        Returns:
            DispatchReport

        Raises:
            IdempotencyKeyReused: 같은 키로 다른 뉴스레터를 요청
            RequestInProgress: 같은 키의 발송이 진행 중
        """
        admitted = None
        if idempotency_key is not None:
            with self.database.session() as session:
                outcome = self.ledger.begin(
                    session, SCOPE_NEWSLETTER_ISSUE, idempotency_key, issue.fingerprint()
                )
            if isinstance(outcome, AlreadyCompleted):
                logger.info("이미 발송된 뉴스레터 요청, 저장된 리포트 반환")
                return DispatchReport.from_snapshot(outcome.response.body)
            admitted = outcome

        try:
            report = DispatchReport()
            for stored_email in SubscriberRepository.iter_confirmed_emails(self.database):
                self._deliver(issue, stored_email, report)
        except Exception:
            if admitted is not None:
                with self.database.session() as session:
                    self.ledger.release(session, admitted)
            raise

        if admitted is not None:
            with self.database.session() as session:
                self.ledger.complete(session, admitted, 200, report.to_dict())

        logger.info(
            f"뉴스레터 발송 완료: 성공 {report.sent}, 건너뜀 {report.skipped}, 실패 {report.failed}"
        )
        return report

    def _deliver(self, issue: NewsletterIssue, stored_email: str, report: DispatchReport) -> None:
        """수신자 한 명에게 발송하고 결과를 리포트에 반영"""
        try:
            recipient = SubscriberEmail.parse(stored_email)
        except InvalidInputError as e:
            # 저장된 값이 잘못된 경우 배치를 중단하지 않고 건너뜀
            logger.warning(
                "확인된 구독자 건너뜀 - 저장된 이메일이 유효하지 않음\n%s",
                format_error_chain(e),
            )
            report.skipped += 1
            return

        result = self.email_client.send_issue(
            recipient=recipient.value,
            subject=issue.title,
            html_body=issue.html,
            text_body=issue.text,
        )
        if result.success:
            report.sent += 1
        else:
            logger.error(
                f"뉴스레터 발송 실패: {recipient.value} ({result.status.value}) - {result.error_message}"
            )
            report.failed += 1
