"""HTML bodies for transactional emails. Each helper returns ``(subject, html)``."""
from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Iterable

SIGNATURE = "<br/><p>&mdash; The LashUp And More Team</p>"


def _when(value: datetime) -> str:
    return value.strftime("%A, %B %d, %Y at %I:%M %p UTC")


def _money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def new_booking_admin(user, service, scheduled_at: datetime) -> tuple[str, str]:
    return (
        "New Booking Received",
        f"<p><b>{escape(user.name)}</b> ({escape(user.email)}) booked "
        f"<b>{escape(service.name)}</b> on {_when(scheduled_at)}.</p>",
    )


def booking_confirmation(user, service, scheduled_at: datetime) -> tuple[str, str]:
    return (
        "Booking Confirmation",
        f"<p>Thank you for your booking, {escape(user.name)}!</p>"
        f"<p>You booked <b>{escape(service.name)}</b> on {_when(scheduled_at)}.</p>"
        f"<p>We'll let you know as soon as it is confirmed.</p>{SIGNATURE}",
    )


def booking_cancelled_admin(user, service, scheduled_at: datetime) -> tuple[str, str]:
    return (
        "Booking Cancelled by User",
        f"<p>User <b>{escape(user.name)}</b> ({escape(user.email)}) cancelled their booking for "
        f"<b>{escape(service.name)}</b> on {_when(scheduled_at)}.</p>",
    )


def booking_cancelled(user, service, scheduled_at: datetime) -> tuple[str, str]:
    return (
        "Booking Cancelled",
        f"<p>Hi {escape(user.name)},</p>"
        f"<p>Your booking for <b>{escape(service.name)}</b> on {_when(scheduled_at)} "
        f"has been cancelled.</p>{SIGNATURE}",
    )


def booking_status_updated(user, service, scheduled_at: datetime, status: str) -> tuple[str, str]:
    return (
        "Booking Status Updated",
        f"<p>Hi {escape(user.name)},</p>"
        f"<p>Your booking for <b>{escape(service.name)}</b> on "
        f"{scheduled_at.strftime('%a %b %d %Y')} is now <b>{status.upper()}</b>.</p>",
    )


def _order_rows(orders: Iterable) -> str:
    rows = "".join(
        f"<li>{order.quantity} &times; <b>{escape(order.product.name)}</b> "
        f"&mdash; {_money(order.total_cents)}</li>"
        for order in orders
    )
    return f"<ul>{rows}</ul>"


def payment_received(user, payment, orders) -> tuple[str, str]:
    return (
        "Payment Received - Order Confirmed",
        f"<h3>Thank you for your order, {escape(user.name)}!</h3>"
        f"<p>We received your payment of <b>{_money(payment.amount_cents)}</b> "
        f"(reference {escape(payment.reference)}).</p>"
        f"{_order_rows(orders)}"
        f"<p>Shipping: {_money(payment.shipping_fee_cents)}</p>"
        f"<p>We'll notify you once your order is shipped.</p>{SIGNATURE}",
    )


def new_paid_order_admin(user, payment, orders) -> tuple[str, str]:
    return (
        "New Product Order Paid",
        f"<p><b>{escape(user.name)}</b> ({escape(user.email)}) paid "
        f"<b>{_money(payment.amount_cents)}</b> for reference {escape(payment.reference)}:</p>"
        f"{_order_rows(orders)}",
    )


_STATUS_MESSAGES = {
    "confirmed": "has been confirmed and is being prepared",
    "shipped": "is on its way",
    "delivered": "has been delivered. We hope you love it",
    "cancelled": "has been cancelled",
}


def order_status_updated(user, order, status: str) -> tuple[str, str]:
    message = _STATUS_MESSAGES.get(status, f"is now {status.upper()}")
    return (
        f"Order {status.capitalize()}",
        f"<p>Hi {escape(user.name)},</p>"
        f"<p>Your order for {order.quantity} &times; <b>{escape(order.product.name)}</b> "
        f"{message}.</p>{SIGNATURE}",
    )


def order_cancelled(user, order) -> tuple[str, str]:
    return (
        "Order Cancelled",
        f"<p>Hi {escape(user.name)},</p>"
        f"<p>Your order for <b>{order.quantity} &times; {escape(order.product.name)}</b> "
        f"has been cancelled successfully.</p>",
    )
