"""Tests for payment event reconciliation."""

from uuid import uuid4

import pytest

from photo_enhancer.domain.accounts import TransactionKind
from photo_enhancer.domain.payments import ApplyOutcome, PaymentEvent, PaymentEventType
from photo_enhancer.errors import WebhookError
from photo_enhancer.services.payments import PaymentWebhookProcessor


def test_duplicate_purchase_event_grants_once(ledger, ledger_repository) -> None:
    account = ledger_repository.create_account()
    processor = PaymentWebhookProcessor(ledger)
    event = PaymentEvent(
        event_id="evt_1",
        type=PaymentEventType.PURCHASE_COMPLETED,
        account_id=account.id,
        amount=10,
    )

    first = processor.apply(event)
    second = processor.apply(event)

    assert first == ApplyOutcome.APPLIED
    assert second == ApplyOutcome.DUPLICATE
    assert ledger.get_account(account.id).credits == 10
    purchases = [
        entry
        for entry in ledger.list_transactions(account.id)
        if entry.kind == TransactionKind.PURCHASE
    ]
    assert len(purchases) == 1
    assert purchases[0].external_ref == "evt_1"


def test_purchase_uses_package_catalog(ledger, ledger_repository) -> None:
    account = ledger_repository.create_account()
    processor = PaymentWebhookProcessor(ledger)

    processor.apply(
        PaymentEvent(
            event_id="evt_pkg",
            type=PaymentEventType.PURCHASE_COMPLETED,
            account_id=account.id,
            metadata={"package_id": "popular"},
        )
    )

    assert ledger.get_account(account.id).credits == 50


def test_subscription_grants_once_per_billing_period(ledger, ledger_repository) -> None:
    account = ledger_repository.create_account()
    processor = PaymentWebhookProcessor(ledger)

    def renewal(event_id: str, period: str) -> PaymentEvent:
        return PaymentEvent(
            event_id=event_id,
            type=PaymentEventType.SUBSCRIPTION_RENEWED,
            account_id=account.id,
            metadata={
                "plan_id": "pro",
                "subscription_id": "sub_1",
                "billing_period": period,
            },
        )

    outcomes = [
        processor.apply(renewal("evt_a", "2026-01")),
        processor.apply(renewal("evt_b", "2026-01")),
        processor.apply(renewal("evt_c", "2026-02")),
    ]

    assert outcomes == [ApplyOutcome.APPLIED, ApplyOutcome.DUPLICATE, ApplyOutcome.APPLIED]
    record = ledger.get_account(account.id)
    assert record.credits == 200
    assert record.subscription_plan == "pro"
    assert record.subscription_id == "sub_1"


def test_cancellation_keeps_granted_credits(ledger, ledger_repository) -> None:
    account = ledger_repository.create_account(credits=25)
    ledger.set_subscription(account.id, "basic", "sub_9")
    processor = PaymentWebhookProcessor(ledger)
    event = PaymentEvent(
        event_id="evt_cancel",
        type=PaymentEventType.SUBSCRIPTION_CANCELED,
        metadata={"subscription_id": "sub_9"},
    )

    assert processor.apply(event) == ApplyOutcome.APPLIED
    assert processor.apply(event) == ApplyOutcome.IGNORED
    record = ledger.get_account(account.id)
    assert record.subscription_plan is None
    assert record.credits == 25


def test_unknown_event_type_is_ignored(ledger) -> None:
    processor = PaymentWebhookProcessor(ledger)

    outcome = processor.apply(PaymentEvent(event_id="evt_x", type="charge.refunded"))

    assert outcome == ApplyOutcome.IGNORED


@pytest.mark.parametrize(
    "event",
    [
        PaymentEvent(event_id="e1", type=PaymentEventType.PURCHASE_COMPLETED, amount=10),
        PaymentEvent(
            event_id="e2",
            type=PaymentEventType.PURCHASE_COMPLETED,
            account_id=uuid4(),
            amount=10,
        ),
        PaymentEvent(
            event_id="e3",
            type=PaymentEventType.SUBSCRIPTION_CREATED,
            account_id=uuid4(),
            metadata={"plan_id": "pro"},
        ),
        PaymentEvent(event_id="e4", type=PaymentEventType.SUBSCRIPTION_CANCELED),
    ],
)
def test_malformed_events_are_rejected(ledger, event) -> None:
    processor = PaymentWebhookProcessor(ledger)

    with pytest.raises(WebhookError):
        processor.apply(event)


def test_unknown_package_is_rejected_without_touching_ledger(
    ledger, ledger_repository
) -> None:
    account = ledger_repository.create_account()
    processor = PaymentWebhookProcessor(ledger)

    with pytest.raises(WebhookError):
        processor.apply(
            PaymentEvent(
                event_id="evt_bad",
                type=PaymentEventType.PURCHASE_COMPLETED,
                account_id=account.id,
                metadata={"package_id": "mystery"},
            )
        )

    assert ledger.list_transactions(account.id) == []
