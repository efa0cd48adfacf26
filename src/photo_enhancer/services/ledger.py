"""Credit ledger: spending capacity, reservations and idempotent grants."""

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from photo_enhancer.domain.accounts import (
    GRANT_KINDS,
    AccountRecord,
    ReservationSource,
    ReservationToken,
    TransactionKind,
    TransactionRecord,
)
from photo_enhancer.errors import AccountNotFoundError, InsufficientCreditsError

_logger = logging.getLogger(__name__)


class LedgerRepository(Protocol):
    """Persistence interface for accounts and ledger entries.

    Every mutating method is a single atomic read-modify-write.
    """

    def get_account(self, account_id: UUID) -> AccountRecord | None:
        """Return an account by id, if present."""

    def debit_if_sufficient(self, account_id: UUID, amount: int, reference: str) -> bool:
        """Decrement credits and record a DEBIT row if the balance covers it."""

    def consume_free_use(self, account_id: UUID, allotment: int, reference: str) -> bool:
        """Consume one free enhancement if fewer than ``allotment`` were used."""

    def release(self, reference: str) -> bool:
        """Reverse the reservation recorded under ``reference`` exactly once."""

    def grant(
        self, account_id: UUID, amount: int, kind: TransactionKind, external_ref: str
    ) -> bool:
        """Add credits unless ``(kind, external_ref)`` was already applied."""

    def set_subscription(
        self, account_id: UUID, plan_id: str, subscription_id: str
    ) -> None:
        """Attach subscription metadata to an account."""

    def clear_subscription(self, subscription_id: str) -> UUID | None:
        """Remove subscription metadata and return the affected account id."""

    def list_transactions(self, account_id: UUID, limit: int) -> list[TransactionRecord]:
        """Return recent ledger entries, newest first."""


@dataclass
class CreditLedger:
    """Sole owner of account balance mutations."""

    repository: LedgerRepository
    enhancement_cost: int = 1
    free_allotment: int = 0

    def get_account(self, account_id: UUID) -> AccountRecord:
        """Return an account or raise AccountNotFoundError."""
        account = self.repository.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def free_uses_remaining(self, account: AccountRecord) -> int:
        return max(0, self.free_allotment - account.free_enhancements_used)

    def has_capacity(self, account_id: UUID) -> bool:
        """Return true if the account can pay for one enhancement."""
        account = self.get_account(account_id)
        if account.is_admin:
            return True
        if self.free_uses_remaining(account) > 0:
            return True
        return account.credits >= self.enhancement_cost

    def reserve(self, account_id: UUID, reference: str) -> ReservationToken:
        """Atomically claim capacity for one enhancement attempt."""
        account = self.get_account(account_id)
        if account.is_admin:
            return ReservationToken(
                account_id=account_id,
                reference=reference,
                source=ReservationSource.UNLIMITED,
                amount=0,
            )
        if self.free_allotment > 0 and self.repository.consume_free_use(
            account_id, self.free_allotment, reference
        ):
            _logger.info(
                "Reserved free enhancement",
                extra={"account_id": str(account_id), "reference": reference},
            )
            return ReservationToken(
                account_id=account_id,
                reference=reference,
                source=ReservationSource.FREE_TIER,
                amount=0,
            )
        if self.repository.debit_if_sufficient(
            account_id, self.enhancement_cost, reference
        ):
            _logger.info(
                "Reserved credits",
                extra={
                    "account_id": str(account_id),
                    "reference": reference,
                    "amount": self.enhancement_cost,
                },
            )
            return ReservationToken(
                account_id=account_id,
                reference=reference,
                source=ReservationSource.CREDITS,
                amount=self.enhancement_cost,
            )
        latest = self.get_account(account_id)
        raise InsufficientCreditsError(
            balance=latest.credits, required=self.enhancement_cost
        )

    def release(self, token: ReservationToken) -> bool:
        """Undo a reservation whose attempt produced no artifact."""
        if token.source == ReservationSource.UNLIMITED:
            return False
        return self.release_reference(token.reference)

    def release_reference(self, reference: str) -> bool:
        """Undo whatever reservation was recorded under ``reference``."""
        released = self.repository.release(reference)
        if released:
            _logger.info("Released reservation", extra={"reference": reference})
        return released

    def grant(
        self,
        account_id: UUID,
        amount: int,
        external_ref: str,
        kind: TransactionKind,
    ) -> bool:
        """Add credits once per ``(kind, external_ref)``.

        Returns False when the grant was already applied.
        """
        if kind not in GRANT_KINDS:
            raise ValueError(f"{kind} is not a grant kind")
        if amount <= 0:
            raise ValueError("Grant amount must be positive")
        self.get_account(account_id)
        applied = self.repository.grant(account_id, amount, kind, external_ref)
        if applied:
            _logger.info(
                "Granted credits",
                extra={
                    "account_id": str(account_id),
                    "amount": amount,
                    "kind": str(kind),
                    "external_ref": external_ref,
                },
            )
        else:
            _logger.info(
                "Skipped duplicate grant",
                extra={"kind": str(kind), "external_ref": external_ref},
            )
        return applied

    def set_subscription(
        self, account_id: UUID, plan_id: str, subscription_id: str
    ) -> None:
        """Record an active subscription on the account."""
        self.get_account(account_id)
        self.repository.set_subscription(account_id, plan_id, subscription_id)

    def clear_subscription(self, subscription_id: str) -> UUID | None:
        """Drop subscription metadata; granted credits are kept."""
        return self.repository.clear_subscription(subscription_id)

    def list_transactions(
        self, account_id: UUID, limit: int = 20
    ) -> list[TransactionRecord]:
        return self.repository.list_transactions(account_id, limit)
