"""
Newsletter Web Application
Subscription signup, confirmation and newsletter publishing
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.errors import ErrorKind, InvalidInputError, ServiceError, classify, format_error_chain
from .dependencies import AppContainer
from .routes import api_router, newsletters_router, subscriptions_router

logger = logging.getLogger(__name__)

# 종류별 로그 레벨 (원인 체인은 여기서 한 번만 기록)
_LOG_LEVELS = {
    ErrorKind.VALIDATION: logging.INFO,
    ErrorKind.CONFLICT: logging.INFO,
    ErrorKind.NOT_FOUND: logging.INFO,
    ErrorKind.UNAUTHORIZED: logging.WARNING,
    ErrorKind.TRANSIENT_INFRASTRUCTURE: logging.WARNING,
    ErrorKind.UNEXPECTED: logging.ERROR,
}


def _error_response(request: Request, error: ServiceError) -> JSONResponse:
    logger.log(
        _LOG_LEVELS[error.kind],
        "%s %s failed (%s)\n%s",
        request.method, request.url.path, error.kind.value, format_error_chain(error),
    )
    headers = {}
    if error.kind is ErrorKind.UNAUTHORIZED:
        headers["WWW-Authenticate"] = 'Basic realm="publish"'
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


def create_app(container: AppContainer) -> FastAPI:
    """Create the FastAPI application around an already-built container"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        container.close()

    app = FastAPI(
        title="Newsletter",
        description="Newsletter subscription and delivery service",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.container = container

    app.include_router(subscriptions_router)
    app.include_router(newsletters_router)
    app.include_router(api_router)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = InvalidInputError()
        error.__cause__ = exc
        return _error_response(request, error)

    # 처리되지 않은 예외는 여기서 500 응답으로 변환 (다시 raise하지 않음)
    @app.middleware("http")
    async def unexpected_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return _error_response(request, classify(exc))

    return app
