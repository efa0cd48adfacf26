"""Domain models for payment events."""

from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID


class PaymentEventType(StrEnum):
    """Payment event kinds the ledger understands."""

    PURCHASE_COMPLETED = "purchase.completed"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_RENEWED = "subscription.renewed"
    SUBSCRIPTION_CANCELED = "subscription.canceled"


class ApplyOutcome(StrEnum):
    """Result of applying a payment event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentEvent:
    """Verified payment event delivered by the payment provider."""

    event_id: str
    type: str
    account_id: UUID | None = None
    amount: int | None = None
    metadata: dict[str, str] = field(default_factory=dict)
