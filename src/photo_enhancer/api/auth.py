"""Caller authentication for the public API.

Authenticators run in order. The first one that recognises its credentials
decides the outcome; ``NotPresent`` passes the request to the next one.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from fastapi import HTTPException, Request, status

if TYPE_CHECKING:
    from photo_enhancer.containers import AppContainer


@dataclass(frozen=True)
class Authenticated:
    account_id: UUID


@dataclass(frozen=True)
class Rejected:
    reason: str


@dataclass(frozen=True)
class NotPresent:
    pass


AuthResult = Authenticated | Rejected | NotPresent


class Authenticator(Protocol):
    """Resolves request headers to an account."""

    def authenticate(self, headers: Mapping[str, str]) -> AuthResult:
        """Return the authentication outcome for these headers."""


@dataclass
class ServiceTokenAuthenticator(Authenticator):
    """Internal services send a shared bearer token plus ``X-User-Id``."""

    token: str

    def authenticate(self, headers: Mapping[str, str]) -> AuthResult:
        authorization = headers.get("authorization")
        if not authorization:
            return NotPresent()
        scheme, _, credential = authorization.partition(" ")
        if scheme.lower() != "bearer" or not secrets.compare_digest(
            credential.strip(), self.token
        ):
            return Rejected("Invalid service token")
        return _parse_account(headers.get("x-user-id"), "X-User-Id")


@dataclass
class AccountHeaderAuthenticator(Authenticator):
    """Trusts an ``X-Account-Id`` header set by the upstream auth gateway."""

    header: str = "x-account-id"

    def authenticate(self, headers: Mapping[str, str]) -> AuthResult:
        raw = headers.get(self.header)
        if raw is None:
            return NotPresent()
        return _parse_account(raw, self.header)


def authenticate(
    authenticators: list[Authenticator], headers: Mapping[str, str]
) -> AuthResult:
    """Run the chain and return the first decisive result."""
    for authenticator in authenticators:
        result = authenticator.authenticate(headers)
        if not isinstance(result, NotPresent):
            return result
    return NotPresent()


async def require_account(request: Request) -> UUID:
    """Return the authenticated account id or fail with 401."""
    container: AppContainer = request.app.state.container
    result = authenticate(container.authenticators, request.headers)
    if isinstance(result, Authenticated):
        return result.account_id
    detail = result.reason if isinstance(result, Rejected) else "Authentication required"
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _parse_account(raw: str | None, header: str) -> AuthResult:
    if not raw:
        return Rejected(f"Missing {header} header")
    try:
        return Authenticated(UUID(raw))
    except ValueError:
        return Rejected(f"Invalid {header} header")
