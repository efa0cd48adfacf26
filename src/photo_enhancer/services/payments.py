"""Payment event reconciliation against the credit ledger."""

import logging
from dataclasses import dataclass
from uuid import UUID

from photo_enhancer.domain.accounts import TransactionKind
from photo_enhancer.domain.payments import ApplyOutcome, PaymentEvent, PaymentEventType
from photo_enhancer.errors import AccountNotFoundError, WebhookError
from photo_enhancer.services.ledger import CreditLedger

_logger = logging.getLogger(__name__)

CREDIT_PACKAGES: dict[str, int] = {
    "starter": 10,
    "popular": 50,
    "professional": 200,
}

SUBSCRIPTION_PLANS: dict[str, int] = {
    "basic": 25,
    "pro": 100,
    "enterprise": 500,
}


@dataclass
class PaymentWebhookProcessor:
    """Applies verified payment events to the ledger exactly once."""

    ledger: CreditLedger

    def apply(self, event: PaymentEvent) -> ApplyOutcome:
        """Apply an event and report whether it changed the ledger."""
        try:
            event_type = PaymentEventType(event.type)
        except ValueError:
            _logger.info(
                "Ignoring unhandled payment event",
                extra={"event_id": event.event_id, "event_type": event.type},
            )
            return ApplyOutcome.IGNORED

        try:
            if event_type == PaymentEventType.PURCHASE_COMPLETED:
                return self._apply_purchase(event)
            if event_type == PaymentEventType.SUBSCRIPTION_CANCELED:
                return self._apply_cancellation(event)
            return self._apply_subscription_grant(event)
        except AccountNotFoundError as exc:
            _logger.error(
                "Payment event references unknown account",
                extra={"event_id": event.event_id, "account_id": str(exc.account_id)},
            )
            raise WebhookError(str(exc)) from exc

    def _apply_purchase(self, event: PaymentEvent) -> ApplyOutcome:
        account_id = _require_account(event)
        credits = event.amount
        if credits is None:
            package_id = event.metadata.get("package_id")
            credits = CREDIT_PACKAGES.get(package_id or "")
            if credits is None:
                _reject(event, f"Unknown credit package: {package_id}")
        _require_positive(event, credits)
        applied = self.ledger.grant(
            account_id, credits, event.event_id, TransactionKind.PURCHASE
        )
        return ApplyOutcome.APPLIED if applied else ApplyOutcome.DUPLICATE

    def _apply_subscription_grant(self, event: PaymentEvent) -> ApplyOutcome:
        account_id = _require_account(event)
        plan_id = event.metadata.get("plan_id")
        subscription_id = event.metadata.get("subscription_id")
        period = event.metadata.get("billing_period")
        if not subscription_id or not period:
            _reject(event, "Subscription event is missing subscription_id or billing_period")
        credits = event.amount
        if credits is None:
            credits = SUBSCRIPTION_PLANS.get(plan_id or "")
            if credits is None:
                _reject(event, f"Unknown subscription plan: {plan_id}")
        _require_positive(event, credits)

        self.ledger.set_subscription(account_id, plan_id or "custom", subscription_id)
        applied = self.ledger.grant(
            account_id,
            credits,
            f"{subscription_id}:{period}",
            TransactionKind.SUBSCRIPTION_GRANT,
        )
        return ApplyOutcome.APPLIED if applied else ApplyOutcome.DUPLICATE

    def _apply_cancellation(self, event: PaymentEvent) -> ApplyOutcome:
        subscription_id = event.metadata.get("subscription_id")
        if not subscription_id:
            _reject(event, "Cancellation is missing subscription_id")
        account_id = self.ledger.clear_subscription(subscription_id)
        if account_id is None:
            _logger.info(
                "No account holds canceled subscription",
                extra={"event_id": event.event_id, "subscription_id": subscription_id},
            )
            return ApplyOutcome.IGNORED
        _logger.info(
            "Canceled subscription",
            extra={"account_id": str(account_id), "subscription_id": subscription_id},
        )
        return ApplyOutcome.APPLIED


def _require_account(event: PaymentEvent) -> UUID:
    if event.account_id is None:
        _reject(event, "Payment event has no account")
    return event.account_id


def _require_positive(event: PaymentEvent, credits: int) -> None:
    if credits <= 0:
        _reject(event, f"Credit amount must be positive, got {credits}")


def _reject(event: PaymentEvent, message: str) -> None:
    _logger.error(message, extra={"event_id": event.event_id, "event_type": event.type})
    raise WebhookError(message)
