"""FastAPI application factory."""

import logging
import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from photo_enhancer.api.admin import router as admin_router
from photo_enhancer.api.auth import require_account
from photo_enhancer.api.models import (
    AccountResponse,
    EnhanceRequest,
    PhotoResponse,
    RegisterPhotoRequest,
)
from photo_enhancer.app_logging import configure_logging
from photo_enhancer.containers import AppContainer
from photo_enhancer.errors import (
    AccountNotFoundError,
    EnhancementError,
    InsufficientCreditsError,
    LedgerError,
    NotFoundError,
    StateError,
    StepTimeoutError,
    ValidationError,
    WebhookError,
)
from photo_enhancer.services.rate_limit import RateLimitExceededError

_UNPROCESSABLE = 422

_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (InsufficientCreditsError, status.HTTP_402_PAYMENT_REQUIRED),
    (AccountNotFoundError, status.HTTP_404_NOT_FOUND),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateError, status.HTTP_409_CONFLICT),
    (ValidationError, _UNPROCESSABLE),
    (RateLimitExceededError, status.HTTP_429_TOO_MANY_REQUESTS),
    (StepTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
]


def error_status(exc: Exception) -> int:
    """Map a domain error to its HTTP status; upstream failures are 502."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_502_BAD_GATEWAY


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    async def failure_response(request: Request, exc: Exception) -> JSONResponse:
        reason = exc.reason if isinstance(exc, EnhancementError) else str(exc)
        status_code = error_status(exc)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.warning(
                "Request failed upstream",
                extra={"path": request.url.path, "code": getattr(exc, "code", None)},
            )
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(math.ceil(exc.retry_after_seconds))}
        return JSONResponse(
            status_code=status_code,
            content={
                "status": "FAILED",
                "reason": reason,
                "code": getattr(exc, "code", "ERROR"),
            },
            headers=headers,
        )

    app.add_exception_handler(EnhancementError, failure_response)
    app.add_exception_handler(LedgerError, failure_response)
    app.add_exception_handler(RateLimitExceededError, failure_response)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/photos", status_code=status.HTTP_201_CREATED)
    async def register_photo(
        body: RegisterPhotoRequest,
        request: Request,
        account_id: UUID = Depends(require_account),
    ) -> PhotoResponse:
        """Register an uploaded original for later enhancement."""
        state_container: AppContainer = request.app.state.container
        try:
            photo = state_container.orchestrator.register_photo(
                account_id, body.source_url
            )
        except ValueError as exc:
            raise HTTPException(status_code=_UNPROCESSABLE, detail=str(exc)) from exc
        return PhotoResponse.from_record(photo)

    @app.get("/photos")
    async def list_photos(
        request: Request,
        limit: int = 20,
        account_id: UUID = Depends(require_account),
    ) -> dict[str, list[PhotoResponse]]:
        """Return the caller's recent photos."""
        state_container: AppContainer = request.app.state.container
        photos = state_container.orchestrator.list_photos(account_id, min(limit, 100))
        return {"photos": [PhotoResponse.from_record(photo) for photo in photos]}

    @app.get("/photos/{photo_id}")
    async def get_photo(
        photo_id: UUID,
        request: Request,
        account_id: UUID = Depends(require_account),
    ) -> PhotoResponse:
        """Return one of the caller's photos."""
        state_container: AppContainer = request.app.state.container
        photo = state_container.orchestrator.get_photo(photo_id, account_id)
        return PhotoResponse.from_record(photo)

    @app.post("/photos/enhance")
    async def enhance_photo(
        body: EnhanceRequest,
        request: Request,
        account_id: UUID = Depends(require_account),
    ) -> dict[str, object]:
        """Run the enhancement pipeline and report the terminal outcome."""
        state_container: AppContainer = request.app.state.container
        state_container.rate_limiter.hit(str(account_id))
        result = await state_container.orchestrator.enhance(body.photo_id, account_id)
        return {
            "status": "COMPLETED",
            "photo_id": str(result.photo_id),
            "artifact_url": result.artifact_url,
            "analysis": result.analysis.model_dump(),
            "used_default_analysis": result.used_default_analysis,
            "processing_seconds": round(result.processing_seconds, 3),
        }

    @app.get("/account")
    async def account(
        request: Request,
        account_id: UUID = Depends(require_account),
    ) -> AccountResponse:
        """Return the caller's balance and recent ledger entries."""
        state_container: AppContainer = request.app.state.container
        ledger = state_container.ledger
        record = ledger.get_account(account_id)
        return AccountResponse.build(
            record,
            free_remaining=ledger.free_uses_remaining(record),
            transactions=ledger.list_transactions(account_id),
        )

    @app.post("/webhooks/stripe")
    async def stripe_webhook(request: Request) -> dict[str, str]:
        """Verify and apply a Stripe webhook delivery."""
        state_container: AppContainer = request.app.state.container
        payload = await request.body()
        try:
            event = state_container.payment_events.parse(
                payload, request.headers.get("stripe-signature")
            )
            outcome = state_container.payment_processor.apply(event)
        except WebhookError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc
        return {"status": "received", "outcome": outcome.value}

    return app
