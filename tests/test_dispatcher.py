"""
뉴스레터 발송 엔진 테스트
"""

import threading
import time

import pytest

from src.database import IdempotencyRecord, IdempotencyStatus, SubscriptionStatus
from src.idempotency import IdempotencyKeyReused, RequestInProgress
from src.mailer import DeliveryStatus
from src.newsletter import DispatchReport, InvalidIssue, NewsletterDispatcher, NewsletterIssue

from .fakes import FakeEmailClient


@pytest.fixture
def issue():
    return NewsletterIssue.parse(
        title="Newsletter title",
        html="<p>Newsletter body as HTML</p>",
        text="Newsletter body as plain text",
    )


def make_dispatcher(database, ledger, client) -> NewsletterDispatcher:
    return NewsletterDispatcher(database=database, email_client=client, ledger=ledger)


class TestNewsletterDispatcher:
    """NewsletterDispatcher 테스트"""

    def test_only_confirmed_subscribers_receive_the_issue(self, database, ledger, add_subscriber, issue):
        add_subscriber("confirmed@example.com")
        add_subscriber("pending@example.com", SubscriptionStatus.PENDING_CONFIRMATION)
        client = FakeEmailClient()

        report = make_dispatcher(database, ledger, client).dispatch(issue)

        assert [call["recipient"] for call in client.issues] == ["confirmed@example.com"]
        assert report.to_dict() == {"sent": 1, "skipped": 0, "failed": 0}

    def test_issue_content_is_forwarded(self, database, ledger, add_subscriber, issue):
        add_subscriber("confirmed@example.com")
        client = FakeEmailClient()

        make_dispatcher(database, ledger, client).dispatch(issue)

        call = client.issues[0]
        assert call["subject"] == issue.title
        assert call["html_body"] == issue.html
        assert call["text_body"] == issue.text

    def test_malformed_stored_email_is_skipped(self, database, ledger, add_subscriber, issue):
        add_subscriber("first@example.com")
        add_subscriber("not-an-email")
        add_subscriber("third@example.com")
        client = FakeEmailClient()

        report = make_dispatcher(database, ledger, client).dispatch(issue)

        assert len(client.issues) == 2
        assert report.to_dict() == {"sent": 2, "skipped": 1, "failed": 0}

    def test_transient_failure_does_not_abort_the_batch(self, database, ledger, add_subscriber, issue):
        for i in range(3):
            add_subscriber(f"reader{i}@example.com")
        client = FakeEmailClient(
            lambda n, r: DeliveryStatus.TRANSIENT_FAILURE if n == 2 else DeliveryStatus.SENT
        )

        report = make_dispatcher(database, ledger, client).dispatch(issue)

        assert len(client.issues) == 3
        assert report.sent == 2
        assert report.failed == 1
        assert report.skipped == 0

    def test_permanent_failure_is_counted_as_failed(self, database, ledger, add_subscriber, issue):
        add_subscriber("rejected@example.com")
        client = FakeEmailClient(lambda n, r: DeliveryStatus.PERMANENT_FAILURE)

        report = make_dispatcher(database, ledger, client).dispatch(issue)

        assert report.to_dict() == {"sent": 0, "skipped": 0, "failed": 1}

    def test_no_confirmed_subscribers(self, database, ledger, issue):
        client = FakeEmailClient()

        report = make_dispatcher(database, ledger, client).dispatch(issue)

        assert client.issues == []
        assert report.total == 0

    def test_repeated_dispatch_with_same_key_sends_nothing(self, database, ledger, add_subscriber, issue):
        add_subscriber("first@example.com")
        add_subscriber("second@example.com")
        client = FakeEmailClient()
        dispatcher = make_dispatcher(database, ledger, client)

        first = dispatcher.dispatch(issue, idempotency_key="issue-42")
        second = dispatcher.dispatch(issue, idempotency_key="issue-42")

        assert len(client.issues) == 2
        assert not first.replayed
        assert second.replayed
        assert second.to_dict() == first.to_dict()

        with database.session() as session:
            record = session.query(IdempotencyRecord).one()
            assert record.status is IdempotencyStatus.COMPLETED
            assert record.response_body == {"sent": 2, "skipped": 0, "failed": 0}

    def test_different_keys_dispatch_independently(self, database, ledger, add_subscriber, issue):
        add_subscriber("first@example.com")
        client = FakeEmailClient()
        dispatcher = make_dispatcher(database, ledger, client)

        dispatcher.dispatch(issue, idempotency_key="issue-1")
        dispatcher.dispatch(issue, idempotency_key="issue-2")

        assert len(client.issues) == 2

    def test_without_key_every_dispatch_sends(self, database, ledger, add_subscriber, issue):
        add_subscriber("first@example.com")
        client = FakeEmailClient()
        dispatcher = make_dispatcher(database, ledger, client)

        dispatcher.dispatch(issue)
        dispatcher.dispatch(issue)

        assert len(client.issues) == 2


class TestNewsletterIssue:
    """NewsletterIssue 검증 테스트"""

    @pytest.mark.parametrize("title, html, text", [
        ("", "<p>body</p>", "body"),
        ("title", " ", "body"),
        ("title", "<p>body</p>", ""),
    ])
    def test_empty_fields_are_rejected(self, title, html, text):
        with pytest.raises(InvalidIssue):
            NewsletterIssue.parse(title=title, html=html, text=text)


class TestDispatchReport:
    """DispatchReport 테스트"""

    def test_snapshot_restores_counts(self):
        report = DispatchReport.from_snapshot({"sent": 3, "skipped": 1, "failed": 2})
        assert report.to_dict() == {"sent": 3, "skipped": 1, "failed": 2}
        assert report.replayed
        assert report.total == 6


class BlockingEmailClient(FakeEmailClient):
    """첫 뉴스레터 발송에서 release 이벤트가 설정될 때까지 대기"""

    def __init__(self):
        super().__init__()
        self.sending = threading.Event()
        self.release = threading.Event()

    def send_issue(self, recipient, subject, html_body, text_body):
        self.sending.set()
        self.release.wait(timeout=10)
        return super().send_issue(recipient, subject, html_body, text_body)


class FailingEmailClient(FakeEmailClient):
    """발송 중 예상하지 못한 예외 발생"""

    def send_issue(self, recipient, subject, html_body, text_body):
        raise RuntimeError("mail client crashed")


class TestDispatchConcurrency:
    """발송 중 다른 요청과의 동시 실행"""

    def run_in_background(self, dispatcher, issue, key):
        outcome = {}

        def target():
            try:
                outcome["report"] = dispatcher.dispatch(issue, idempotency_key=key)
            except Exception as e:
                outcome["error"] = e

        thread = threading.Thread(target=target)
        thread.start()
        return thread, outcome

    def test_signup_succeeds_while_keyed_dispatch_is_sending(
        self, database, ledger, add_subscriber, manager, issue
    ):
        add_subscriber("confirmed@example.com")
        client = BlockingEmailClient()
        dispatcher = make_dispatcher(database, ledger, client)

        thread, outcome = self.run_in_background(dispatcher, issue, "issue-42")
        try:
            assert client.sending.wait(timeout=5)
            started = time.monotonic()
            result = manager.subscribe("new_reader@example.com", "le guin")
            elapsed = time.monotonic() - started
        finally:
            client.release.set()
            thread.join(timeout=10)

        assert result.confirmation_sent
        assert elapsed < 2
        assert outcome["report"].to_dict() == {"sent": 1, "skipped": 0, "failed": 0}

    def test_same_key_while_sending_asks_caller_to_retry(self, database, ledger, add_subscriber, issue):
        add_subscriber("confirmed@example.com")
        client = BlockingEmailClient()
        dispatcher = make_dispatcher(database, ledger, client)

        thread, outcome = self.run_in_background(dispatcher, issue, "issue-42")
        try:
            assert client.sending.wait(timeout=5)
            with pytest.raises(RequestInProgress):
                dispatcher.dispatch(issue, idempotency_key="issue-42")
        finally:
            client.release.set()
            thread.join(timeout=10)

        assert len(client.issues) == 1
        assert dispatcher.dispatch(issue, idempotency_key="issue-42").replayed


class TestDispatchIdempotency:
    """멱등성 키 재사용 및 실패 처리"""

    def test_same_key_with_different_issue_is_rejected(self, database, ledger, add_subscriber, issue):
        add_subscriber("confirmed@example.com")
        client = FakeEmailClient()
        dispatcher = make_dispatcher(database, ledger, client)
        dispatcher.dispatch(issue, idempotency_key="issue-42")

        other = NewsletterIssue.parse(title="Another title", html="<p>x</p>", text="x")
        with pytest.raises(IdempotencyKeyReused):
            dispatcher.dispatch(other, idempotency_key="issue-42")

        assert len(client.issues) == 1

    def test_crashed_dispatch_releases_the_key(self, database, ledger, add_subscriber, issue):
        add_subscriber("confirmed@example.com")

        with pytest.raises(RuntimeError):
            make_dispatcher(database, ledger, FailingEmailClient()).dispatch(
                issue, idempotency_key="issue-42"
            )

        with database.session() as session:
            assert session.query(IdempotencyRecord).count() == 0

        client = FakeEmailClient()
        report = make_dispatcher(database, ledger, client).dispatch(issue, idempotency_key="issue-42")
        assert report.sent == 1
        assert not report.replayed
