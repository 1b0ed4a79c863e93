from .subscriptions import router as subscriptions_router
from .newsletters import router as newsletters_router
from .api import router as api_router

__all__ = ["subscriptions_router", "newsletters_router", "api_router"]
