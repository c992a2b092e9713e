"""Database models for the LashUp And More backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _upper(value: str | None) -> str | None:
    return value.upper() if value else None


BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")

ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")
ACTIVE_ORDER_STATUSES = ("pending", "confirmed", "shipped")

PAYMENT_STATUSES = ("pending", "successful", "failed")

USER_ROLES = ("user", "admin")


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            *USER_ROLES,
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="user",
        server_default="user",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    auth_account = db.relationship(
        "AuthAccount",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    # Only inactive history can remain when a user is deleted.
    bookings = db.relationship("Booking", back_populates="user", cascade="all, delete-orphan")
    orders = db.relationship("ProductOrder", back_populates="user", cascade="all, delete-orphan")
    payments = db.relationship("Payment", back_populates="user", cascade="all, delete-orphan")

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="auth_account")


class Service(db.Model):
    """Bookable treatments offered by the studio."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(500))
    features = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price_dollars": self.price_cents / 100.0,
            "duration_minutes": self.duration_minutes,
            "image_url": self.image_url,
            "features": list(self.features or []),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Product(db.Model):
    """Retail product. Never hard-deleted so past orders keep their reference."""

    __tablename__ = "products"

    product_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default="1")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.product_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price_dollars": self.price_cents / 100.0,
            "image_url": self.image_url,
            "is_active": bool(self.is_active),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Booking(db.Model):
    """A client's reservation of a service at one exact instant."""

    __tablename__ = "bookings"

    booking_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)  # naive UTC
    status = db.Column(
        db.Enum(
            *BOOKING_STATUSES,
            name="booking_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    notes = db.Column(db.Text)
    # Set while the booking holds its slot, NULL once cancelled.
    slot_key = db.Column(db.String(64), unique=True, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    user = db.relationship("User", back_populates="bookings")
    service = db.relationship("Service")

    @staticmethod
    def make_slot_key(service_id: int, scheduled_at: datetime) -> str:
        return f"{service_id}@{scheduled_at.replace(microsecond=0).isoformat()}"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.booking_id,
            "user_id": self.user_id,
            "user": {
                "id": self.user.user_id,
                "name": self.user.name,
                "email": self.user.email,
            } if self.user else None,
            "service_id": self.service_id,
            "service": {
                "id": self.service.service_id,
                "name": self.service.name,
                "price_cents": self.service.price_cents,
                "duration_minutes": self.service.duration_minutes,
            } if self.service else None,
            "date": _iso(self.scheduled_at),
            "status": _upper(self.status),
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Payment(db.Model):
    """One checkout attempt against the payment provider."""

    __tablename__ = "payments"

    payment_id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), unique=True, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    shipping_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=False, default="usd")
    provider_session_id = db.Column(db.String(255), unique=True)
    status = db.Column(
        db.Enum(
            *PAYMENT_STATUSES,
            name="payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    paid_amount_cents = db.Column(db.Integer)
    shipping_info = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="payments")

    def to_dict(self) -> dict[str, object]:
        return {
            "reference": self.reference,
            "user_id": self.user_id,
            "amount_cents": self.amount_cents,
            "amount_dollars": self.amount_cents / 100.0,
            "shipping_fee_cents": self.shipping_fee_cents,
            "currency": self.currency,
            "status": _upper(self.status),
            "paid_amount_cents": self.paid_amount_cents,
            "created_at": _iso(self.created_at),
        }


class ProductOrder(db.Model):
    """One line item of a checkout. Siblings share a payment reference."""

    __tablename__ = "product_orders"

    order_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.product_id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    payment_reference = db.Column(db.String(64), nullable=False, index=True)
    payment_status = db.Column(
        db.Enum(
            *PAYMENT_STATUSES,
            name="order_payment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    status = db.Column(
        db.Enum(
            *ORDER_STATUSES,
            name="product_order_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    cancelled_by = db.Column(
        db.Enum("user", "admin", name="cancelled_by", native_enum=False, validate_strings=True),
        nullable=True,
    )
    shipping_info = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="orders")
    product = db.relationship("Product")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.order_id,
            "user_id": self.user_id,
            "user": {
                "id": self.user.user_id,
                "name": self.user.name,
                "email": self.user.email,
            } if self.user else None,
            "product_id": self.product_id,
            "product": {
                "id": self.product.product_id,
                "name": self.product.name,
                "image_url": self.product.image_url,
            } if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price_dollars": self.unit_price_cents / 100.0,
            "total_cents": self.total_cents,
            "total_dollars": self.total_cents / 100.0,
            "payment_reference": self.payment_reference,
            "payment_status": _upper(self.payment_status),
            "status": _upper(self.status),
            "cancelled_by": _upper(self.cancelled_by),
            "shipping_info": dict(self.shipping_info or {}),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class GalleryItem(db.Model):
    __tablename__ = "gallery_items"

    item_id = db.Column(db.Integer, primary_key=True)
    type = db.Column(
        db.Enum("image", "video", name="gallery_item_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    url = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.item_id,
            "type": self.type,
            "url": self.url,
            "created_at": _iso(self.created_at),
        }
