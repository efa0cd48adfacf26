"""Domain models for accounts and the credit ledger."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID


class AccountRole(StrEnum):
    """Account privilege level."""

    USER = "USER"
    ADMIN = "ADMIN"


class TransactionKind(StrEnum):
    """Kinds of ledger entries."""

    PURCHASE = "PURCHASE"
    SUBSCRIPTION_GRANT = "SUBSCRIPTION_GRANT"
    ADMIN_GRANT = "ADMIN_GRANT"
    DEBIT = "DEBIT"
    FREE_USE = "FREE_USE"
    REFUND = "REFUND"


GRANT_KINDS = frozenset(
    {
        TransactionKind.PURCHASE,
        TransactionKind.SUBSCRIPTION_GRANT,
        TransactionKind.ADMIN_GRANT,
    }
)


class ReservationSource(StrEnum):
    """Where the capacity for a reservation came from."""

    UNLIMITED = "UNLIMITED"
    FREE_TIER = "FREE_TIER"
    CREDITS = "CREDITS"


@dataclass(frozen=True)
class AccountRecord:
    """Spending state of an account."""

    id: UUID
    role: AccountRole
    credits: int
    free_enhancements_used: int = 0
    subscription_plan: str | None = None
    subscription_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN


@dataclass(frozen=True)
class TransactionRecord:
    """Ledger audit entry."""

    id: UUID
    account_id: UUID
    kind: TransactionKind
    amount: int
    external_ref: str
    created_at: datetime


@dataclass(frozen=True)
class ReservationToken:
    """Proof that capacity was provisionally consumed for one attempt."""

    account_id: UUID
    reference: str
    source: ReservationSource
    amount: int
