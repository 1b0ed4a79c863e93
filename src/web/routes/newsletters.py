"""Newsletter Routes - 뉴스레터 발행 (인증 필요)"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from src.idempotency import parse_idempotency_key
from src.newsletter import InvalidIssue, NewsletterIssue
from ..dependencies import AppContainer, get_container, require_publisher

logger = logging.getLogger(__name__)

router = APIRouter()

REPLAYED_HEADER = "Idempotent-Replayed"


class Content(BaseModel):
    html: str
    text: str


class BodyData(BaseModel):
    title: str
    content: Content


@router.post("/newsletters")
async def publish_newsletter(
    request: Request,
    user_id: str = Depends(require_publisher),
    idempotency_key: Optional[str] = Header(default=None),
    container: AppContainer = Depends(get_container),
):
    # The body is read only after authentication succeeded
    try:
        body = BodyData.model_validate_json(await request.body())
    except ValidationError as e:
        raise InvalidIssue("The request body is not a valid newsletter issue.") from e

    logger.info("Publishing newsletter issue: user_id=%s", user_id)

    issue = NewsletterIssue.parse(
        title=body.title,
        html=body.content.html,
        text=body.content.text,
    )
    key = parse_idempotency_key(idempotency_key) if idempotency_key is not None else None

    report = await run_in_threadpool(container.dispatcher.dispatch, issue, idempotency_key=key)

    headers = {REPLAYED_HEADER: "true"} if report.replayed else {}
    return JSONResponse(content=report.to_dict(), headers=headers)
