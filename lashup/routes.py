"""HTTP routes for accounts, bookings and product orders."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from . import bookings as booking_service
from . import orders as order_service
from .auth import admin_required, build_token, current_identity, login_required
from .errors import Forbidden, InvalidInput, NotFound
from .extensions import db
from .models import (ACTIVE_BOOKING_STATUSES, ACTIVE_ORDER_STATUSES, USER_ROLES, AuthAccount,
                     Booking, ProductOrder, User)
from .payload import json_body, text_field
from .payments import construct_webhook_event

bp = Blueprint("api", __name__)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# --- Accounts ---


def _has_active_records(user_id: int) -> bool:
    active_bookings = Booking.query.filter(
        Booking.user_id == user_id,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    ).count()
    active_orders = ProductOrder.query.filter(
        ProductOrder.user_id == user_id,
        ProductOrder.status.in_(ACTIVE_ORDER_STATUSES),
    ).count()
    return active_bookings > 0 or active_orders > 0


@bp.post("/api/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a new customer account.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            email:
              type: string
            password:
              type: string
          required:
            - name
            - email
            - password
    responses:
      201:
        description: User registered successfully
      400:
        description: Invalid payload or email already registered
    """
    payload = json_body()

    name = text_field(payload, "name")
    email = text_field(payload, "email").lower()
    password = text_field(payload, "password", strip=False)

    if not name or not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "name, email, and password are required"}),
            400,
        )
    if "@" not in email:
        return jsonify({"error": "invalid_payload", "message": "Please provide a valid email"}), 400
    if len(password) < 6:
        return (
            jsonify({"error": "invalid_payload", "message": "Password must be at least 6 characters long"}),
            400,
        )

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "conflict", "message": "Email already registered"}), 400

    try:
        # Public registration never grants admin.
        new_user = User(name=name, email=email, role="user")
        db.session.add(new_user)
        db.session.flush()

        db.session.add(AuthAccount(user_id=new_user.user_id, password_hash=generate_password_hash(password)))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    token = build_token(new_user.user_id, new_user.role)
    return (
        jsonify({"message": "User registered successfully", "token": token, "user": new_user.to_dict_basic()}),
        201,
    )


@bp.post("/api/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate by email/password and return a bearer token."""
    payload = json_body()

    email = text_field(payload, "email").lower()
    password = text_field(payload, "password", strip=False)

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    record = (
        db.session.query(User, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == User.user_id)
        .filter(User.email == email)
        .first()
    )
    if not record:
        return jsonify({"error": "unauthorized", "message": "Invalid credentials"}), 401

    user, auth_account = record
    if not check_password_hash(auth_account.password_hash, password):
        return jsonify({"error": "unauthorized", "message": "Invalid credentials"}), 401

    auth_account.last_login_at = datetime.now(timezone.utc)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update last login timestamp", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    token = build_token(user.user_id, user.role)
    return jsonify({"token": token, "user": user.to_dict_basic()}), 200


@bp.get("/api/auth/profile")
@login_required
def get_profile() -> tuple[dict[str, object], int]:
    user = db.session.get(User, current_identity().user_id)
    if user is None:
        raise NotFound("User not found")
    return jsonify({"user": user.to_dict_basic()}), 200


@bp.put("/api/auth/profile")
@login_required
def update_profile() -> tuple[dict[str, object], int]:
    payload = json_body()
    name = text_field(payload, "name")
    email = text_field(payload, "email").lower()

    if not name or not email:
        raise InvalidInput("Name and email are required")
    if "@" not in email:
        raise InvalidInput("Please provide a valid email")
    if len(name) < 2:
        raise InvalidInput("Name must be at least 2 characters")

    user_id = current_identity().user_id
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    existing = User.query.filter_by(email=email).first()
    if existing and existing.user_id != user_id:
        return jsonify({"error": "conflict", "message": "Email is already taken"}), 400

    user.name = name
    user.email = email
    db.session.commit()

    return jsonify({"message": "Profile updated successfully", "user": user.to_dict_basic()}), 200


@bp.put("/api/auth/change-password")
@login_required
def change_password() -> tuple[dict[str, object], int]:
    payload = json_body()
    current_password = text_field(payload, "current_password", "currentPassword", strip=False)
    new_password = text_field(payload, "new_password", "newPassword", strip=False)

    if not current_password or not new_password:
        raise InvalidInput("Current password and new password are required")
    if len(new_password) < 6:
        raise InvalidInput("New password must be at least 6 characters long")
    if current_password == new_password:
        raise InvalidInput("New password must be different from current password")

    account = db.session.get(AuthAccount, current_identity().user_id)
    if account is None:
        raise NotFound("User not found")
    if not check_password_hash(account.password_hash, current_password):
        raise InvalidInput("Current password is incorrect", code="invalid_credentials")

    account.password_hash = generate_password_hash(new_password)
    db.session.commit()
    return jsonify({"message": "Password changed successfully"}), 200


@bp.delete("/api/auth/account")
@login_required
def delete_account() -> tuple[dict[str, object], int]:
    password = text_field(json_body(), "password", strip=False)
    if not password:
        raise InvalidInput("Password is required to delete account")

    user_id = current_identity().user_id
    user = db.session.get(User, user_id)
    if user is None or user.auth_account is None:
        raise NotFound("User not found")
    if not check_password_hash(user.auth_account.password_hash, password):
        raise InvalidInput("Incorrect password", code="invalid_credentials")

    if _has_active_records(user_id):
        raise InvalidInput(
            "Cannot delete account with active bookings or orders. "
            "Please cancel or complete them first.",
            code="active_records",
        )

    db.session.delete(user)
    db.session.commit()
    return jsonify({"message": "Account deleted successfully"}), 200


@bp.get("/api/auth/admin/users")
@admin_required
def list_users() -> tuple[dict[str, object], int]:
    users = User.query.order_by(User.created_at.desc(), User.user_id.desc()).all()
    return jsonify({"users": [user.to_dict_basic() for user in users], "total": len(users)}), 200


@bp.put("/api/auth/admin/user/<int:user_id>/role")
@admin_required
def update_user_role(user_id: int) -> tuple[dict[str, object], int]:
    """Promote or demote a user (admins only, never themselves)."""
    actor_id = current_identity().user_id

    # Tokens live for days, so re-check the actor's stored role.
    actor = db.session.get(User, actor_id)
    if actor is None or actor.role != "admin":
        raise Forbidden("Access denied. Admin required.")
    if actor_id == user_id:
        raise InvalidInput("Cannot change your own role", code="self_role_change")

    role = text_field(json_body(), "role").lower()
    if role not in USER_ROLES:
        raise InvalidInput("Invalid role", details={"allowed": list(USER_ROLES)})

    target = db.session.get(User, user_id)
    if target is None:
        raise NotFound("User not found")

    target.role = role
    db.session.commit()
    current_app.logger.info("User %s set role of user %s to %s", actor_id, user_id, role)
    return jsonify({"message": "User role updated successfully", "user": target.to_dict_basic()}), 200


@bp.get("/api/auth/users/<int:user_id>")
@admin_required
def get_user_details(user_id: int) -> tuple[dict[str, object], int]:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    data = user.to_dict_basic()
    data["bookings"] = [booking.to_dict() for booking in booking_service.list_user_bookings(user_id)]
    data["orders"] = [order.to_dict() for order in order_service.list_user_orders(user_id)]
    return jsonify({"user": data}), 200


@bp.delete("/api/auth/users/<int:user_id>")
@admin_required
def delete_user(user_id: int) -> tuple[dict[str, object], int]:
    if user_id == current_identity().user_id:
        raise InvalidInput("Use account deletion to remove your own account")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if _has_active_records(user_id):
        raise InvalidInput(
            "Cannot delete a user with active bookings or orders",
            code="active_records",
        )

    db.session.delete(user)
    db.session.commit()
    return jsonify({"message": "User deleted successfully"}), 200


# --- Bookings ---


@bp.post("/api/bookings")
@login_required
def create_booking() -> tuple[dict[str, object], int]:
    """Book a service slot.
    ---
    tags:
      - Bookings
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: integer
            date:
              type: string
              example: "2025-06-01"
            time:
              type: string
              example: "10:00"
            notes:
              type: string
          required:
            - service_id
            - date
    responses:
      201:
        description: Booking created with status PENDING
      400:
        description: Invalid payload, past date or slot already booked
      401:
        description: Missing or invalid token
      404:
        description: Service not found
    """
    payload = json_body()
    booking = booking_service.create_booking(
        current_identity().user_id,
        payload.get("service_id", payload.get("service")),
        payload.get("date"),
        payload.get("time"),
        text_field(payload, "notes"),
    )
    return jsonify({"message": "Booking created", "booking": booking.to_dict()}), 201


@bp.get("/api/bookings/me")
@login_required
def get_my_bookings() -> tuple[dict[str, object], int]:
    bookings = booking_service.list_user_bookings(current_identity().user_id)
    return jsonify({"bookings": [booking.to_dict() for booking in bookings]}), 200


@bp.put("/api/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int) -> tuple[dict[str, object], int]:
    """Cancel one of the caller's bookings, at least 24 hours ahead."""
    booking = booking_service.cancel_booking(current_identity().user_id, booking_id)
    return jsonify({"message": "Booking cancelled", "booking": booking.to_dict()}), 200


@bp.get("/api/bookings")
@admin_required
def list_bookings() -> tuple[dict[str, object], int]:
    bookings = booking_service.list_all_bookings(request.args.get("status"))
    return jsonify({"bookings": [booking.to_dict() for booking in bookings]}), 200


@bp.put("/api/bookings/<int:booking_id>/status")
@admin_required
def update_booking_status(booking_id: int) -> tuple[dict[str, object], int]:
    """Set a booking's status.
    ---
    tags:
      - Bookings
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            status:
              type: string
              enum: [PENDING, CONFIRMED, CANCELLED, COMPLETED]
    responses:
      200:
        description: Booking status updated
      400:
        description: Invalid status
      404:
        description: Booking not found
    """
    booking = booking_service.admin_update_booking_status(booking_id, json_body().get("status"))
    return jsonify({"message": "Booking status updated", "booking": booking.to_dict()}), 200


# --- Orders and payments ---


@bp.post("/api/orders/payment/initialize")
@login_required
def initialize_payment() -> tuple[dict[str, object], int]:
    """Open a checkout for one or more products and return the provider redirect.
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            items:
              type: array
              items:
                type: object
                properties:
                  product_id:
                    type: integer
                  quantity:
                    type: integer
            shipping_info:
              type: object
              properties:
                full_name:
                  type: string
                phone:
                  type: string
                address:
                  type: string
                city:
                  type: string
                state:
                  type: string
    responses:
      200:
        description: Checkout opened; redirect the buyer to authorization_url
      400:
        description: Invalid items or shipping information
      404:
        description: Unknown product
      502:
        description: Payment provider rejected the checkout
    """
    payload = json_body()
    result = order_service.initialize_checkout(
        current_identity().user_id,
        payload.get("items"),
        payload.get("shipping_info", payload.get("shippingInfo")),
    )
    return jsonify({"message": "Payment initialized", **result.to_dict()}), 200


@bp.get("/api/orders/payment/verify/<string:reference>")
def verify_payment(reference: str) -> tuple[dict[str, object], int]:
    """Settle a checkout against the provider's verdict. Safe to call repeatedly."""
    result = order_service.verify_payment(reference)
    return jsonify(result.to_dict()), 200


@bp.post("/api/orders/payment/webhook")
def payment_webhook():
    """Stripe webhook endpoint; re-runs verification for the referenced checkout."""
    if not current_app.config.get("STRIPE_WEBHOOK_SECRET"):
        current_app.logger.error("Stripe webhook secret not configured - webhooks will not be processed")
        return jsonify({"received": True}), 200

    event = construct_webhook_event(request.get_data(), request.headers.get("Stripe-Signature"))

    evt_type = event.get("type")
    data = event.get("data", {}).get("object", {}) or {}

    if evt_type in (
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
        "checkout.session.expired",
    ):
        metadata = data.get("metadata") or {}
        reference = data.get("client_reference_id") or metadata.get("reference")
        if not reference:
            current_app.logger.info("Webhook %s without a payment reference; ignoring", evt_type)
            return jsonify({"received": True}), 200
        try:
            order_service.verify_payment(reference)
        except NotFound:
            current_app.logger.warning("Webhook %s for unknown reference %s", evt_type, reference)

    return jsonify({"received": True}), 200


@bp.get("/api/orders/me")
@login_required
def get_my_orders() -> tuple[dict[str, object], int]:
    orders = order_service.list_user_orders(current_identity().user_id)
    return jsonify({"orders": [order.to_dict() for order in orders]}), 200


@bp.put("/api/orders/<int:order_id>/cancel")
@login_required
def cancel_order(order_id: int) -> tuple[dict[str, object], int]:
    order = order_service.user_cancel_order(current_identity().user_id, order_id)
    return jsonify({"message": "Order cancelled successfully", "order": order.to_dict()}), 200


@bp.get("/api/orders")
@admin_required
def list_orders() -> tuple[dict[str, object], int]:
    orders = order_service.list_all_orders(request.args.get("status"))
    return jsonify({"orders": [order.to_dict() for order in orders]}), 200


@bp.put("/api/orders/<int:order_id>/status")
@admin_required
def update_order_status(order_id: int) -> tuple[dict[str, object], int]:
    """Move a paid order through fulfillment (CONFIRMED, SHIPPED, DELIVERED)."""
    order = order_service.admin_update_fulfillment(order_id, json_body().get("status"))
    return jsonify({"message": "Order status updated", "order": order.to_dict()}), 200


@bp.put("/api/orders/<int:order_id>/admin-cancel")
@admin_required
def admin_cancel_order(order_id: int) -> tuple[dict[str, object], int]:
    order = order_service.admin_cancel_order(order_id)
    return jsonify({"message": "Order cancelled", "order": order.to_dict()}), 200


def register_routes(app: Flask) -> None:
    from .routes_catalog import bp_catalog

    app.register_blueprint(bp)
    app.register_blueprint(bp_catalog)
