"""Subscription Routes - 구독 신청 및 확인"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, Query

from src.idempotency import parse_idempotency_key
from src.subscription import MalformedToken
from ..dependencies import AppContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/subscriptions")
def subscribe(
    name: str = Form(...),
    email: str = Form(...),
    container: AppContainer = Depends(get_container),
):
    result = container.subscriptions.subscribe(email=email, name=name)
    return result.to_dict()


@router.post("/subscriptions/resend")
def resend_confirmation(
    email: str = Form(...),
    container: AppContainer = Depends(get_container),
):
    result = container.subscriptions.resend_confirmation(email=email)
    return result.to_dict()


@router.get("/subscriptions/confirm")
def confirm(
    subscription_token: Optional[str] = Query(default=None),
    token: Optional[str] = Query(default=None),
    idempotency_key: Optional[str] = Header(default=None),
    container: AppContainer = Depends(get_container),
):
    raw_token = subscription_token if subscription_token is not None else token
    if raw_token is None:
        raise MalformedToken()

    key = parse_idempotency_key(idempotency_key) if idempotency_key is not None else None
    result = container.subscriptions.confirm(raw_token, idempotency_key=key)
    return result.to_dict()
