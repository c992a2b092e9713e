"""Booking lifecycle: creation, user cancellation and admin status changes."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

from . import email_templates
from .errors import Forbidden, InvalidInput, InvalidState, NotFound, SlotConflict, TooLate
from .extensions import db, notifier
from .models import ACTIVE_BOOKING_STATUSES, BOOKING_STATUSES, Booking, Service, User
from .payload import whole_number

CANCELLATION_WINDOW = timedelta(hours=24)


def utc_naive_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def compose_instant(date: object, time: object = None) -> datetime:
    """Combine a date and an optional time of day into one naive UTC instant.

    ``date`` may already be a full ISO timestamp; offsets are converted to UTC.
    """
    if not isinstance(date, str) or not date.strip():
        raise InvalidInput("Service and date are required")

    raw = date.strip()
    if time:
        if not isinstance(time, str):
            raise InvalidInput("Invalid date format")
        raw = f"{raw[:10]}T{time.strip()}"

    try:
        instant = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInput("Invalid date format") from None

    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc).replace(tzinfo=None)
    return instant.replace(microsecond=0)


def create_booking(
    user_id: int,
    service_id: object,
    date: object,
    time: object = None,
    notes: Optional[str] = None,
) -> Booking:
    if not service_id or not date:
        raise InvalidInput("Service and date are required")
    if notes is not None and not isinstance(notes, str):
        raise InvalidInput("notes must be a string")

    service = db.session.get(Service, whole_number(service_id, "service_id"))
    if service is None:
        raise NotFound("Service not found")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    scheduled_at = compose_instant(date, time)
    if scheduled_at <= utc_naive_now():
        raise InvalidInput("Booking date must be in the future")

    existing = Booking.query.filter(
        Booking.service_id == service.service_id,
        Booking.scheduled_at == scheduled_at,
        Booking.status != "cancelled",
    ).first()
    if existing:
        raise SlotConflict("This time slot is already booked")

    booking = Booking(
        user_id=user.user_id,
        service_id=service.service_id,
        scheduled_at=scheduled_at,
        status="pending",
        notes=(notes or "").strip() or None,
        slot_key=Booking.make_slot_key(service.service_id, scheduled_at),
    )
    db.session.add(booking)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request claimed the slot between our check and insert.
        db.session.rollback()
        raise SlotConflict("This time slot is already booked") from None

    notifier.notify_admin(*email_templates.new_booking_admin(user, service, scheduled_at))
    notifier.send(user.email, *email_templates.booking_confirmation(user, service, scheduled_at))
    return booking


def cancel_booking(user_id: int, booking_id: int, now: Optional[datetime] = None) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    if booking.user_id != user_id:
        raise Forbidden("You can only cancel your own bookings")
    if booking.status not in ACTIVE_BOOKING_STATUSES:
        raise InvalidState("Cannot cancel this booking")

    now = now or utc_naive_now()
    if booking.scheduled_at - now < CANCELLATION_WINDOW:
        raise TooLate("Bookings can only be cancelled at least 24 hours in advance")

    updated = Booking.query.filter(
        Booking.booking_id == booking.booking_id,
        Booking.status == booking.status,
    ).update({"status": "cancelled", "slot_key": None}, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise InvalidState("Cannot cancel this booking")
    db.session.commit()

    user, service = booking.user, booking.service
    notifier.send(user.email, *email_templates.booking_cancelled(user, service, booking.scheduled_at))
    notifier.notify_admin(*email_templates.booking_cancelled_admin(user, service, booking.scheduled_at))
    return booking


def admin_update_booking_status(booking_id: int, status: object) -> Booking:
    """Set any recognised status. Admin transitions are deliberately not graph-checked."""
    if not isinstance(status, str) or not status.strip():
        raise InvalidInput("Status is required")
    new_status = status.strip().lower()
    if new_status not in BOOKING_STATUSES:
        raise InvalidInput(
            "Invalid booking status",
            details={"allowed": [value.upper() for value in BOOKING_STATUSES]},
        )

    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound("Booking not found")

    booking.status = new_status
    booking.slot_key = (
        None
        if new_status == "cancelled"
        else Booking.make_slot_key(booking.service_id, booking.scheduled_at)
    )
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SlotConflict("This time slot has been booked by someone else") from None

    user, service = booking.user, booking.service
    notifier.send(
        user.email,
        *email_templates.booking_status_updated(user, service, booking.scheduled_at, new_status),
    )
    return booking


def list_user_bookings(user_id: int) -> list[Booking]:
    return (
        Booking.query.filter(Booking.user_id == user_id)
        .order_by(Booking.scheduled_at.desc())
        .all()
    )


def list_all_bookings(status: Optional[str] = None) -> list[Booking]:
    query = Booking.query
    if status:
        normalized = status.strip().lower()
        if normalized not in BOOKING_STATUSES:
            raise InvalidInput("Invalid booking status")
        query = query.filter(Booking.status == normalized)
    return query.order_by(Booking.scheduled_at.desc()).all()
