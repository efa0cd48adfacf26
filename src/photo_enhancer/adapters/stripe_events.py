"""Stripe webhook verification and translation into payment events."""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import stripe

from photo_enhancer.domain.payments import PaymentEvent, PaymentEventType
from photo_enhancer.errors import WebhookError

_logger = logging.getLogger(__name__)


@dataclass
class StripeEventSource:
    """Turns signed Stripe webhook deliveries into ``PaymentEvent`` objects.

    Checkout metadata carries ``userId``, ``type`` (``credits`` or
    ``subscription``), ``planId``, ``credits`` and ``monthlyCredits``.
    Events that do not map to a ledger change keep their raw Stripe type.
    """

    webhook_secret: str
    tolerance_seconds: int = stripe.Webhook.DEFAULT_TOLERANCE

    def parse(self, payload: bytes, signature: str | None) -> PaymentEvent:
        """Verify the signature and translate the event."""
        if not signature:
            raise WebhookError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, self.tolerance_seconds
            )
            event = json.loads(body)
        except stripe.SignatureVerificationError as exc:
            _logger.warning("Stripe signature verification failed: %s", exc)
            raise WebhookError("Invalid Stripe signature") from exc
        except (UnicodeDecodeError, ValueError) as exc:
            raise WebhookError(f"Invalid Stripe payload: {exc}") from exc

        try:
            return self._translate(event)
        except (KeyError, TypeError, AttributeError) as exc:
            raise WebhookError(f"Malformed Stripe event: {exc}") from exc

    def _translate(self, event: dict[str, Any]) -> PaymentEvent:
        event_id = event["id"]
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "checkout.session.completed":
            return self._checkout_completed(event_id, event, obj)
        if event_type == "invoice.paid" and obj.get("billing_reason") == "subscription_cycle":
            return self._invoice_paid(event_id, event, obj)
        if event_type == "customer.subscription.deleted":
            return PaymentEvent(
                event_id=event_id,
                type=PaymentEventType.SUBSCRIPTION_CANCELED,
                metadata={"subscription_id": obj["id"]},
            )
        return PaymentEvent(event_id=event_id, type=event_type)

    def _checkout_completed(
        self, event_id: str, event: dict[str, Any], session: dict[str, Any]
    ) -> PaymentEvent:
        metadata = session.get("metadata") or {}
        account_id = _parse_account(metadata.get("userId"))
        kind = metadata.get("type")
        if kind == "credits":
            extra = {"session_id": session["id"]}
            if metadata.get("packageId"):
                extra["package_id"] = metadata["packageId"]
            return PaymentEvent(
                event_id=event_id,
                type=PaymentEventType.PURCHASE_COMPLETED,
                account_id=account_id,
                amount=_parse_int(metadata.get("credits")),
                metadata=extra,
            )
        if kind == "subscription":
            return PaymentEvent(
                event_id=event_id,
                type=PaymentEventType.SUBSCRIPTION_CREATED,
                account_id=account_id,
                amount=_parse_int(metadata.get("monthlyCredits")),
                metadata=_subscription_metadata(
                    plan_id=metadata.get("planId"),
                    subscription_id=session.get("subscription"),
                    period_start=event.get("created"),
                ),
            )
        return PaymentEvent(event_id=event_id, type=event["type"])

    def _invoice_paid(
        self, event_id: str, event: dict[str, Any], invoice: dict[str, Any]
    ) -> PaymentEvent:
        details = _subscription_details(invoice)
        metadata = details.get("metadata") or {}
        lines = (invoice.get("lines") or {}).get("data") or []
        period_start = lines[0]["period"]["start"] if lines else event.get("created")
        return PaymentEvent(
            event_id=event_id,
            type=PaymentEventType.SUBSCRIPTION_RENEWED,
            account_id=_parse_account(metadata.get("userId")),
            amount=_parse_int(metadata.get("monthlyCredits")),
            metadata=_subscription_metadata(
                plan_id=metadata.get("planId"),
                subscription_id=details.get("subscription") or invoice.get("subscription"),
                period_start=period_start,
            ),
        )


def billing_period(timestamp: int) -> str:
    """Return the ``YYYY-MM`` billing period for a Unix timestamp."""
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m")


def _subscription_details(invoice: dict[str, Any]) -> dict[str, Any]:
    # Newer API versions nest subscription details under ``parent``.
    parent = invoice.get("parent") or {}
    return parent.get("subscription_details") or invoice.get("subscription_details") or {}


def _subscription_metadata(
    plan_id: str | None, subscription_id: str | None, period_start: int | None
) -> dict[str, str]:
    metadata: dict[str, str] = {}
    if plan_id:
        metadata["plan_id"] = plan_id.lower()
    if subscription_id:
        metadata["subscription_id"] = subscription_id
    if period_start is not None:
        metadata["billing_period"] = billing_period(int(period_start))
    return metadata


def _parse_account(raw: str | None) -> UUID | None:
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError as exc:
        raise WebhookError(f"Invalid userId in Stripe metadata: {raw}") from exc


def _parse_int(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise WebhookError(f"Invalid credit amount in Stripe metadata: {raw}") from exc
