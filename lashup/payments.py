"""Stripe Checkout as the payment provider.

The lifecycle code only needs two calls: open a hosted checkout for an amount
under our own reference, and later ask Stripe what happened to it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import stripe
from flask import current_app

from .errors import InvalidInput, PaymentInitError, UpstreamFailure

VERDICT_SUCCESS = "success"
VERDICT_FAILED = "failed"
VERDICT_PENDING = "pending"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: str


@dataclass(frozen=True)
class PaymentVerdict:
    verdict: str
    amount_cents: Optional[int]

    @property
    def settled(self) -> bool:
        return self.verdict == VERDICT_SUCCESS


def _configure() -> None:
    stripe_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe_key:
        current_app.logger.warning("Stripe secret key not configured")
        raise UpstreamFailure("Payments are not currently available. Please contact support.")
    stripe.api_key = stripe_key


def open_checkout(amount_cents: int, reference: str, metadata: dict[str, str]) -> CheckoutSession:
    """Create a hosted Checkout Session and return where to send the buyer."""
    try:
        _configure()
    except UpstreamFailure as exc:
        raise PaymentInitError(exc.message) from exc

    config = current_app.config
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            client_reference_id=reference,
            customer_email=metadata.get("email") or None,
            line_items=[
                {
                    "price_data": {
                        "currency": config.get("PAYMENT_CURRENCY", "usd"),
                        "unit_amount": int(amount_cents),
                        "product_data": {"name": f"LashUp And More order {reference}"},
                    },
                    "quantity": 1,
                }
            ],
            metadata={"reference": reference, **metadata},
            success_url=config["PAYMENT_SUCCESS_URL"].format(reference=reference),
            cancel_url=config["PAYMENT_CANCEL_URL"].format(reference=reference),
        )
    except stripe.StripeError as exc:
        current_app.logger.exception("Stripe API error while opening checkout", exc_info=exc)
        raise PaymentInitError("Payment initialization failed") from exc

    if not getattr(session, "url", None) or not getattr(session, "id", None):
        raise PaymentInitError("Payment provider did not return a checkout URL")

    return CheckoutSession(session_id=session.id, redirect_url=session.url)


def query_checkout(session_id: str) -> PaymentVerdict:
    """Ask Stripe for the current outcome of a Checkout Session."""
    _configure()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as exc:
        current_app.logger.exception("Stripe API error while retrieving checkout session", exc_info=exc)
        raise UpstreamFailure("Failed to verify payment with the provider") from exc

    amount = getattr(session, "amount_total", None)
    amount_cents = int(amount) if amount is not None else None

    if session.payment_status == "paid":
        return PaymentVerdict(VERDICT_SUCCESS, amount_cents)
    if session.status == "expired":
        return PaymentVerdict(VERDICT_FAILED, amount_cents)
    return PaymentVerdict(VERDICT_PENDING, amount_cents)


def construct_webhook_event(payload: bytes, signature: Optional[str]):
    """Verify a webhook signature and return the parsed Stripe event."""
    try:
        return stripe.Webhook.construct_event(
            payload, signature, current_app.config.get("STRIPE_WEBHOOK_SECRET")
        )
    except ValueError:
        current_app.logger.warning("Invalid webhook payload")
        raise InvalidInput("Invalid webhook payload") from None
    except stripe.SignatureVerificationError:
        current_app.logger.warning("Invalid signature for webhook")
        raise InvalidInput("Invalid webhook signature", code="invalid_signature") from None
