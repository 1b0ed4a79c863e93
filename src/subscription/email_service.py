"""
구독 확인 메일 서비스 - 확인 링크 생성 및 메일 발송
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.mailer import EmailClient, SendResult
from .domain import NewSubscriber

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "email"


class ConfirmationEmailService:
    """구독 확인 메일 서비스"""

    SUBJECT = "Welcome! Please confirm your subscription"

    def __init__(
        self,
        email_client: EmailClient,
        base_url: str,
        template_dir: Optional[Path] = None,
    ):
        self.email_client = email_client
        self.base_url = base_url.rstrip("/")
        self.template_dir = Path(template_dir or DEFAULT_TEMPLATE_DIR)

        # Jinja2 환경 설정
        self._env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def confirmation_link(self, token: str) -> str:
        """확인 링크 생성"""
        query = urlencode({"subscription_token": token})
        return f"{self.base_url}/subscriptions/confirm?{query}"

    def render(self, new_subscriber: NewSubscriber, token: str) -> tuple[str, str]:
        """
        확인 메일 본문 생성

        Returns:
            (HTML 본문, 텍스트 본문)
        """
        context = {
            "name": new_subscriber.name.value,
            "confirmation_link": self.confirmation_link(token),
        }
        html_body = self._env.get_template("confirmation.html").render(**context)
        text_body = self._env.get_template("confirmation.txt").render(**context)
        return html_body, text_body

    def send(self, new_subscriber: NewSubscriber, token: str) -> SendResult:
        """확인 메일 발송"""
        html_body, text_body = self.render(new_subscriber, token)
        return self.email_client.send_confirmation(
            recipient=new_subscriber.email.value,
            subject=self.SUBJECT,
            html_body=html_body,
            text_body=text_body,
        )
