"""API Routes - 상태 확인 엔드포인트"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends

from src.database import SubscriberRepository
from ..dependencies import AppContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health_check")
def health_check():
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@router.get("/api/subscribers/count")
def get_subscriber_count(container: AppContainer = Depends(get_container)):
    with container.database.session() as session:
        return SubscriberRepository.count_by_status(session)
