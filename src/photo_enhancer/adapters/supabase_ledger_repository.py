"""Supabase-backed ledger repository.

Balance mutations go through Postgres functions (see
``supabase/migrations``) so each one runs as a single transaction.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from photo_enhancer.domain.accounts import (
    AccountRecord,
    AccountRole,
    TransactionKind,
    TransactionRecord,
)
from photo_enhancer.services.ledger import LedgerRepository

_ACCOUNT_COLUMNS = (
    "id, role, credits, free_enhancements_used, subscription_plan, subscription_id"
)


@dataclass
class SupabaseLedgerRepository(LedgerRepository):
    """Supabase implementation for accounts and credit transactions."""

    client: Client

    def get_account(self, account_id: UUID) -> AccountRecord | None:
        """Return an account by id, if present."""
        response = (
            self.client.table("accounts")
            .select(_ACCOUNT_COLUMNS)
            .eq("id", str(account_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return AccountRecord(
            id=UUID(row["id"]),
            role=AccountRole(row["role"]),
            credits=int(row["credits"]),
            free_enhancements_used=int(row.get("free_enhancements_used") or 0),
            subscription_plan=row.get("subscription_plan"),
            subscription_id=row.get("subscription_id"),
        )

    def debit_if_sufficient(self, account_id: UUID, amount: int, reference: str) -> bool:
        """Conditionally decrement credits via the debit_credits function."""
        return self._call(
            "debit_credits",
            {
                "p_account_id": str(account_id),
                "p_amount": amount,
                "p_reference": reference,
            },
        )

    def consume_free_use(self, account_id: UUID, allotment: int, reference: str) -> bool:
        """Consume a free enhancement via the consume_free_enhancement function."""
        return self._call(
            "consume_free_enhancement",
            {
                "p_account_id": str(account_id),
                "p_allotment": allotment,
                "p_reference": reference,
            },
        )

    def release(self, reference: str) -> bool:
        """Reverse a reservation via the release_reservation function."""
        return self._call("release_reservation", {"p_reference": reference})

    def grant(
        self, account_id: UUID, amount: int, kind: TransactionKind, external_ref: str
    ) -> bool:
        """Apply an idempotent grant via the grant_credits function."""
        return self._call(
            "grant_credits",
            {
                "p_account_id": str(account_id),
                "p_amount": amount,
                "p_kind": kind.value,
                "p_external_ref": external_ref,
            },
        )

    def set_subscription(
        self, account_id: UUID, plan_id: str, subscription_id: str
    ) -> None:
        """Store subscription metadata on the account row."""
        self.client.table("accounts").update(
            {"subscription_plan": plan_id, "subscription_id": subscription_id}
        ).eq("id", str(account_id)).execute()

    def clear_subscription(self, subscription_id: str) -> UUID | None:
        """Clear subscription metadata and return the affected account."""
        response = (
            self.client.table("accounts")
            .update({"subscription_plan": None, "subscription_id": None})
            .eq("subscription_id", subscription_id)
            .execute()
        )
        if not response.data:
            return None
        return UUID(response.data[0]["id"])

    def list_transactions(self, account_id: UUID, limit: int) -> list[TransactionRecord]:
        """Return recent ledger entries for an account."""
        response = (
            self.client.table("credit_transactions")
            .select("id, account_id, kind, amount, external_ref, created_at")
            .eq("account_id", str(account_id))
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [
            TransactionRecord(
                id=UUID(row["id"]),
                account_id=UUID(row["account_id"]),
                kind=TransactionKind(row["kind"]),
                amount=int(row["amount"]),
                external_ref=row["external_ref"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in response.data or []
        ]

    def _call(self, function: str, params: dict[str, object]) -> bool:
        response = self.client.rpc(function, params).execute()
        return response.data is True
