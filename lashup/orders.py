"""Order and payment lifecycle.

A checkout opens one provider transaction under a fresh payment reference and
writes one ``ProductOrder`` per line item, all sharing that reference.
Verification asks the provider for the verdict every time it runs and settles
every sibling in a single transaction, so repeated provider callbacks are safe.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from . import email_templates, payments
from .errors import (Forbidden, InvalidInput, InvalidState, NotFound, PaymentInitError,
                     PaymentRequired, UpstreamFailure)
from .extensions import db, notifier
from .models import ORDER_STATUSES, Payment, Product, ProductOrder, User
from .payload import whole_number

REQUIRED_SHIPPING_FIELDS = ("full_name", "phone", "address", "city", "state")
FULFILLMENT_STATUSES = ("confirmed", "shipped", "delivered")
USER_UNCANCELLABLE = ("shipped", "delivered", "cancelled")

REFERENCE_ATTEMPTS = 5


@dataclass
class CheckoutResult:
    authorization_url: str
    reference: str
    amount_cents: int
    shipping_fee_cents: int
    orders: list[ProductOrder] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "authorization_url": self.authorization_url,
            "reference": self.reference,
            "amount_cents": self.amount_cents,
            "amount_dollars": self.amount_cents / 100.0,
            "shipping_fee_cents": self.shipping_fee_cents,
            "orders": [order.to_dict() for order in self.orders],
        }


@dataclass
class VerificationResult:
    status: str  # success | failed | pending
    payment: Payment
    orders: list[ProductOrder]
    transitioned: bool = False

    def to_dict(self) -> dict[str, Any]:
        messages = {
            payments.VERDICT_SUCCESS: "Payment verified, order confirmed",
            payments.VERDICT_FAILED: "Payment failed, order cancelled",
            payments.VERDICT_PENDING: "Payment has not been completed yet",
        }
        return {
            "status": self.status,
            "message": messages[self.status],
            "payment": self.payment.to_dict(),
            "orders": [order.to_dict() for order in self.orders],
        }


def _parse_items(items: object) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise InvalidInput("At least one item is required")

    lines: list[tuple[int, int]] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidInput(f"items[{index}] must be an object")
        product_id = whole_number(item.get("product_id", item.get("productId")), f"items[{index}].product_id")
        quantity = whole_number(item.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise InvalidInput(f"items[{index}] quantity must be positive")
        lines.append((product_id, quantity))
    return lines


def _validate_shipping(shipping_info: object) -> dict[str, str]:
    if not isinstance(shipping_info, dict):
        raise InvalidInput("Shipping information is required")

    cleaned: dict[str, str] = {}
    missing = []
    for name in REQUIRED_SHIPPING_FIELDS:
        value = shipping_info.get(name)
        value = value.strip() if isinstance(value, str) else ""
        if not value:
            missing.append(name)
        cleaned[name] = value
    if missing:
        raise InvalidInput("Incomplete shipping information", details={"missing": missing})

    for optional in ("postal_code", "country", "notes"):
        value = shipping_info.get(optional)
        if isinstance(value, str) and value.strip():
            cleaned[optional] = value.strip()
    return cleaned


def generate_reference() -> str:
    return f"LUM-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _unused_reference() -> str:
    for _ in range(REFERENCE_ATTEMPTS):
        reference = generate_reference()
        if Payment.query.filter_by(reference=reference).first() is None:
            return reference
    raise PaymentInitError("Could not allocate a payment reference")


def initialize_checkout(user_id: int, items: object, shipping_info: object) -> CheckoutResult:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    lines = _parse_items(items)
    shipping = _validate_shipping(shipping_info)

    product_ids = {product_id for product_id, _ in lines}
    products = {
        product.product_id: product
        for product in Product.query.filter(Product.product_id.in_(sorted(product_ids))).all()
    }
    for product_id in product_ids:
        product = products.get(product_id)
        if product is None or not product.is_active:
            raise NotFound(f"Product {product_id} not found")

    # Snapshot prices now; later catalog changes must not touch these orders.
    priced = [(products[pid], qty, products[pid].price_cents) for pid, qty in lines]
    subtotal = sum(unit * qty for _, qty, unit in priced)
    shipping_fee = int(current_app.config.get("SHIPPING_FEE_CENTS", 0))
    total = subtotal + shipping_fee

    reference = _unused_reference()
    session = payments.open_checkout(
        total,
        reference,
        {"user_id": str(user.user_id), "email": user.email},
    )

    payment = Payment(
        reference=reference,
        user_id=user.user_id,
        amount_cents=total,
        shipping_fee_cents=shipping_fee,
        currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
        provider_session_id=session.session_id,
        status="pending",
        shipping_info=shipping,
    )
    orders = [
        ProductOrder(
            user_id=user.user_id,
            product_id=product.product_id,
            quantity=quantity,
            unit_price_cents=unit_price,
            total_cents=unit_price * quantity,
            payment_reference=reference,
            payment_status="pending",
            status="pending",
            shipping_info=shipping,
        )
        for product, quantity, unit_price in priced
    ]
    db.session.add(payment)
    db.session.add_all(orders)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to persist checkout %s", reference, exc_info=exc)
        raise PaymentInitError("Could not record the checkout, please retry") from exc

    current_app.logger.info(
        "Checkout %s opened for user %s: %s line(s), %s cents",
        reference, user.user_id, len(orders), total,
    )
    return CheckoutResult(
        authorization_url=session.redirect_url,
        reference=reference,
        amount_cents=total,
        shipping_fee_cents=shipping_fee,
        orders=orders,
    )


def _siblings(reference: str) -> list[ProductOrder]:
    return (
        ProductOrder.query.filter(ProductOrder.payment_reference == reference)
        .order_by(ProductOrder.order_id)
        .all()
    )


def _settle_successful(payment: Payment, paid_amount: Optional[int]) -> bool:
    """Mark the payment and every sibling order paid. Returns True only for the call
    that actually moved the payment out of its unpaid state."""
    changed = Payment.query.filter(
        Payment.payment_id == payment.payment_id,
        Payment.status != "successful",
    ).update(
        {"status": "successful", "paid_amount_cents": paid_amount},
        synchronize_session=False,
    )
    ProductOrder.query.filter(
        ProductOrder.payment_reference == payment.reference,
        or_(
            ProductOrder.status == "pending",
            # cancelled by an earlier failed verdict, not by a person
            and_(ProductOrder.status == "cancelled", ProductOrder.cancelled_by.is_(None)),
        ),
    ).update({"status": "confirmed"}, synchronize_session=False)
    ProductOrder.query.filter(
        ProductOrder.payment_reference == payment.reference,
        ProductOrder.payment_status != "successful",
    ).update({"payment_status": "successful"}, synchronize_session=False)
    return bool(changed)


def _settle_failed(payment: Payment, paid_amount: Optional[int]) -> bool:
    changed = Payment.query.filter(
        Payment.payment_id == payment.payment_id,
        Payment.status == "pending",
    ).update(
        {"status": "failed", "paid_amount_cents": paid_amount},
        synchronize_session=False,
    )
    ProductOrder.query.filter(
        ProductOrder.payment_reference == payment.reference,
        ProductOrder.payment_status == "pending",
    ).update({"payment_status": "failed"}, synchronize_session=False)
    ProductOrder.query.filter(
        ProductOrder.payment_reference == payment.reference,
        ProductOrder.status == "pending",
    ).update({"status": "cancelled"}, synchronize_session=False)
    return bool(changed)


def verify_payment(reference: str) -> VerificationResult:
    """Reconcile local state for ``reference`` with the provider's current verdict."""
    reference = (reference or "").strip()
    payment = Payment.query.filter_by(reference=reference).first() if reference else None
    if payment is None:
        raise NotFound("Payment reference not found")
    if not payment.provider_session_id:
        raise UpstreamFailure("Payment has no provider transaction")

    verdict = payments.query_checkout(payment.provider_session_id)
    outcome = verdict.verdict
    if (
        verdict.settled
        and verdict.amount_cents is not None
        and verdict.amount_cents < payment.amount_cents
    ):
        current_app.logger.warning(
            "Payment %s underpaid: expected %s, provider reported %s",
            reference, payment.amount_cents, verdict.amount_cents,
        )
        outcome = payments.VERDICT_FAILED

    transitioned = False
    if outcome == payments.VERDICT_SUCCESS:
        transitioned = _settle_successful(payment, verdict.amount_cents)
    elif outcome == payments.VERDICT_FAILED:
        if payment.status == "successful":
            # A confirmed payment is never downgraded by a later verdict.
            outcome = payments.VERDICT_SUCCESS
        else:
            transitioned = _settle_failed(payment, verdict.amount_cents)
    db.session.commit()

    orders = _siblings(reference)
    if outcome == payments.VERDICT_SUCCESS and transitioned:
        user = payment.user
        notifier.send(user.email, *email_templates.payment_received(user, payment, orders))
        notifier.notify_admin(*email_templates.new_paid_order_admin(user, payment, orders))
        current_app.logger.info("Payment %s settled for %s order(s)", reference, len(orders))
    elif outcome == payments.VERDICT_FAILED and transitioned:
        current_app.logger.info("Payment %s failed; %s order(s) cancelled", reference, len(orders))

    return VerificationResult(
        status=outcome, payment=payment, orders=orders, transitioned=transitioned
    )


def _transition(order: ProductOrder, values: dict[str, Any]) -> None:
    """Apply ``values`` only if the order still has the status we validated against."""
    updated = ProductOrder.query.filter(
        ProductOrder.order_id == order.order_id,
        ProductOrder.status == order.status,
        or_(ProductOrder.cancelled_by.is_(None), ProductOrder.cancelled_by != "user"),
    ).update(values, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise InvalidState("Order was modified by another request, please retry")
    db.session.commit()


def _get_order(order_id: int) -> ProductOrder:
    order = db.session.get(ProductOrder, order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


def admin_update_fulfillment(order_id: int, status: object) -> ProductOrder:
    if not isinstance(status, str) or not status.strip():
        raise InvalidInput("Status is required")
    new_status = status.strip().lower()
    if new_status not in FULFILLMENT_STATUSES:
        raise InvalidInput(
            "Invalid order status",
            details={"allowed": [value.upper() for value in FULFILLMENT_STATUSES]},
        )

    order = _get_order(order_id)
    if order.cancelled_by == "user":
        raise InvalidState("Cannot modify orders that were cancelled by the user")
    if order.payment_status != "successful":
        raise PaymentRequired("Order cannot be fulfilled before payment is confirmed")
    if order.status == "cancelled" and order.cancelled_by != "admin":
        raise InvalidState("Cancelled orders cannot be fulfilled")

    _transition(order, {"status": new_status, "cancelled_by": None})

    user = order.user
    notifier.send(user.email, *email_templates.order_status_updated(user, order, new_status))
    return order


def admin_cancel_order(order_id: int) -> ProductOrder:
    order = _get_order(order_id)
    if order.cancelled_by == "user":
        raise InvalidState("Cannot modify orders that were cancelled by the user")
    if order.status in ("shipped", "delivered", "cancelled"):
        raise InvalidState(f"Order is already {order.status}")

    _transition(order, {"status": "cancelled", "cancelled_by": "admin"})

    user = order.user
    notifier.send(user.email, *email_templates.order_status_updated(user, order, "cancelled"))
    return order


def user_cancel_order(user_id: int, order_id: int) -> ProductOrder:
    order = _get_order(order_id)
    if order.user_id != user_id:
        raise Forbidden("Unauthorized")
    if order.status in USER_UNCANCELLABLE:
        raise InvalidState("This order cannot be cancelled")

    _transition(order, {"status": "cancelled", "cancelled_by": "user"})

    user = order.user
    notifier.send(user.email, *email_templates.order_cancelled(user, order))
    return order


def list_user_orders(user_id: int) -> list[ProductOrder]:
    return (
        ProductOrder.query.filter(ProductOrder.user_id == user_id)
        .order_by(ProductOrder.created_at.desc(), ProductOrder.order_id.desc())
        .all()
    )


def list_all_orders(status: Optional[str] = None) -> list[ProductOrder]:
    query = ProductOrder.query
    if status:
        normalized = status.strip().lower()
        if normalized not in ORDER_STATUSES:
            raise InvalidInput("Invalid order status")
        query = query.filter(ProductOrder.status == normalized)
    return query.order_by(ProductOrder.created_at.desc(), ProductOrder.order_id.desc()).all()
