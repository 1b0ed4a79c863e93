"""Application dependencies - constructed once at startup and shared by all requests"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx
from fastapi import Depends, Header, Request

from src.auth import CredentialValidator
from src.config import Settings
from src.database import Database
from src.idempotency import IdempotencyLedger
from src.mailer import EmailClient
from src.newsletter import NewsletterDispatcher
from src.subscription import ConfirmationEmailService, SubscriptionManager, TokenService


@dataclass
class AppContainer:
    settings: Settings
    database: Database
    email_client: EmailClient
    ledger: IdempotencyLedger
    subscriptions: SubscriptionManager
    dispatcher: NewsletterDispatcher
    credentials: CredentialValidator

    def close(self) -> None:
        self.email_client.close()
        self.database.dispose()


def build_container(
    settings: Settings,
    email_transport: Optional[httpx.BaseTransport] = None,
) -> AppContainer:
    """Wire every component from settings"""
    database = Database(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
    )
    database.create_all()

    email_client = EmailClient(
        base_url=settings.email_base_url,
        sender=settings.email_sender,
        authorization_token=settings.email_authorization_token,
        timeout=settings.email_timeout,
        message_stream=settings.email_message_stream,
        transport=email_transport,
    )
    ledger = IdempotencyLedger(
        retention=timedelta(hours=settings.idempotency_ttl_hours),
        lease=timedelta(minutes=settings.idempotency_lease_minutes),
    )

    subscriptions = SubscriptionManager(
        database=database,
        token_service=TokenService(),
        email_service=ConfirmationEmailService(email_client, base_url=settings.app_base_url),
        ledger=ledger,
    )
    dispatcher = NewsletterDispatcher(database=database, email_client=email_client, ledger=ledger)

    return AppContainer(
        settings=settings,
        database=database,
        email_client=email_client,
        ledger=ledger,
        subscriptions=subscriptions,
        dispatcher=dispatcher,
        credentials=CredentialValidator(database),
    )


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def require_publisher(
    authorization: Optional[str] = Header(default=None),
    container: AppContainer = Depends(get_container),
) -> str:
    """Authenticate the publisher before the request body is touched"""
    return container.credentials.authenticate(authorization)
