"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from photo_enhancer.api.models import (
    AccountResponse,
    AdminGrantRequest,
    RecoverStaleRequest,
)
from photo_enhancer.domain.accounts import TransactionKind

if TYPE_CHECKING:
    from photo_enhancer.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or not secrets.compare_digest(x_admin_token, admin_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/accounts/{account_id}", dependencies=[Depends(require_admin)])
async def account_detail(account_id: UUID, request: Request) -> AccountResponse:
    """Return an account's balance and recent ledger entries."""
    container: AppContainer = request.app.state.container
    ledger = container.ledger
    account = ledger.get_account(account_id)
    return AccountResponse.build(
        account,
        free_remaining=ledger.free_uses_remaining(account),
        transactions=ledger.list_transactions(account_id, limit=50),
    )


@router.post("/accounts/{account_id}/credits", dependencies=[Depends(require_admin)])
async def grant_credits(
    account_id: UUID, body: AdminGrantRequest, request: Request
) -> dict[str, object]:
    """Grant credits manually; the reference makes the grant idempotent."""
    container: AppContainer = request.app.state.container
    applied = container.ledger.grant(
        account_id, body.amount, body.reference, TransactionKind.ADMIN_GRANT
    )
    account = container.ledger.get_account(account_id)
    return {"applied": applied, "credits": account.credits}


@router.post("/photos/recover-stale", dependencies=[Depends(require_admin)])
async def recover_stale(
    request: Request, body: RecoverStaleRequest | None = None
) -> dict[str, object]:
    """Fail enhancement attempts stuck in PROCESSING."""
    container: AppContainer = request.app.state.container
    threshold = container.settings.stale_processing_seconds
    if body is not None and body.older_than_seconds is not None:
        threshold = body.older_than_seconds
    recovered = container.orchestrator.recover_stale(threshold)
    return {"recovered": [str(photo_id) for photo_id in recovered]}
