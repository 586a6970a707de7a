"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from blockmarket import __version__
from blockmarket.api.dependencies import AppServices
from blockmarket.config import Settings, load_settings
from blockmarket.errors import (
    AuthenticationRequired,
    ConflictError,
    MarketplaceError,
    NotFoundError,
    PermissionDenied,
    TransientError,
    ValidationError,
)
from blockmarket.handlers.purchasing import (
    checkout_handler,
    license_list_handler,
    purchase_query_handler,
    purchase_webhook_handler,
)
from blockmarket.handlers.system import health
from blockmarket.logging import get_logger
from blockmarket.security.permissions import PermissionChecker
from blockmarket.services.stripe_gateway import StripeCheckoutService, StripeTransferGateway
from blockmarket.storage.database import Database
from blockmarket.storage.redis_locks import RedisLockHelper

logger = get_logger(__name__)

_ERROR_STATUS: list[tuple[type[MarketplaceError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationRequired, status.HTTP_401_UNAUTHORIZED),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def build_services(settings: Settings) -> AppServices:
    """Construct the process-wide collaborators from settings (not yet connected)."""
    return AppServices(
        settings=settings,
        database=Database(settings),
        checkout_service=StripeCheckoutService(
            settings.stripe_secret_key,
            success_url=settings.checkout_success_url,
            cancel_url=settings.checkout_cancel_url,
        ),
        transfer_gateway=StripeTransferGateway(settings.stripe_secret_key),
        lock_helper=RedisLockHelper(
            settings.redis_url, ttl_seconds=settings.redis_lock_ttl_seconds
        ),
        permission_checker=PermissionChecker(admin_user_ids=settings.admin_user_ids),
    )


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    log = logger.warning if status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
        status_code=status_code,
    )
    return JSONResponse({"message": str(exc)}, status_code=status_code)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.info("request_invalid", path=request.url.path, errors=len(errors))
    return JSONResponse(
        {"message": message, "errors": [dict(loc=e.get("loc"), msg=e.get("msg")) for e in errors]},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[AppServices] = None,
    create_tables: bool = False,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Loaded from the environment when omitted
        services: Pre-built collaborators; built from settings when omitted
        create_tables: Create the schema on startup (tests and local runs)

    Returns:
        FastAPI app whose lifespan connects and disconnects the database and Redis
    """
    if services is None:
        services = build_services(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.database.connect()
        if create_tables:
            await services.database.create_tables()
        if services.lock_helper is not None:
            await services.lock_helper.connect()

        logger.info(
            "api_started",
            app=services.settings.app_name,
            environment=services.settings.environment,
        )
        try:
            yield
        finally:
            if services.lock_helper is not None:
                await services.lock_helper.disconnect()
            await services.database.disconnect()
            logger.info("api_stopped")

    app = FastAPI(
        title="Blockmarket API",
        description="Purchases, licenses and creator payouts for the block marketplace",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.include_router(checkout_handler.router, tags=["checkout"])
    app.include_router(purchase_query_handler.router, tags=["purchases"])
    app.include_router(license_list_handler.router, tags=["licenses"])
    app.include_router(purchase_webhook_handler.router, tags=["webhooks"])
    app.include_router(health.router, tags=["system"])

    return app
