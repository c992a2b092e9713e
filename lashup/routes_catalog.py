"""Catalog routes: services, products and the media gallery."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import Blueprint, jsonify, request

from .auth import admin_required, authenticate, require_role
from .errors import InvalidInput, NotFound
from .extensions import db
from .models import Booking, GalleryItem, Product, Service
from .payload import flag, json_body, text_field, whole_number

bp_catalog = Blueprint("api_catalog", __name__)


def _price_cents(payload: dict) -> int:
    """Accept ``price_cents`` or a dollar ``price`` and return cents."""
    if payload.get("price_cents") is not None:
        cents = whole_number(payload["price_cents"], "price_cents")
    else:
        try:
            cents = int((Decimal(str(payload.get("price"))) * 100).quantize(Decimal("1")))
        except (InvalidOperation, ValueError):
            raise InvalidInput("price is required and must be a number") from None
    if cents < 0:
        raise InvalidInput("price must not be negative")
    return cents


def _features(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value).strip()] if str(value).strip() else []


# UC: Services


@bp_catalog.get("/api/services")
def list_services() -> tuple[dict[str, object], int]:
    services = Service.query.order_by(Service.created_at.desc(), Service.service_id.desc()).all()
    return jsonify({"services": [service.to_dict() for service in services]}), 200


@bp_catalog.get("/api/services/<int:service_id>")
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")
    return jsonify({"service": service.to_dict()}), 200


@bp_catalog.post("/api/services")
@admin_required
def create_service() -> tuple[dict[str, object], int]:
    """Create a bookable service.
    ---
    tags:
      - Services
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
              example: Classic Lash Set
            price:
              type: number
              example: 85.00
            duration_minutes:
              type: integer
              example: 120
            features:
              type: array
              items:
                type: string
          required:
            - name
            - price
            - duration_minutes
    responses:
      201:
        description: Service created
      400:
        description: Invalid payload
    """
    payload = json_body()
    name = text_field(payload, "name")
    if not name:
        raise InvalidInput("name is required")

    duration = whole_number(payload.get("duration_minutes", payload.get("duration")), "duration_minutes")
    if duration <= 0:
        raise InvalidInput("duration_minutes must be a positive integer")

    service = Service(
        name=name,
        description=text_field(payload, "description") or None,
        price_cents=_price_cents(payload),
        duration_minutes=duration,
        image_url=text_field(payload, "image_url", "imageUrl") or None,
        features=_features(payload.get("features")),
    )
    db.session.add(service)
    db.session.commit()
    return jsonify({"message": "Service created", "service": service.to_dict()}), 201


@bp_catalog.put("/api/services/<int:service_id>")
@admin_required
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")

    payload = json_body()
    if "name" in payload:
        name = text_field(payload, "name")
        if not name:
            raise InvalidInput("name must not be empty")
        service.name = name
    if "description" in payload:
        service.description = text_field(payload, "description") or None
    if "price" in payload or "price_cents" in payload:
        service.price_cents = _price_cents(payload)
    if "duration_minutes" in payload or "duration" in payload:
        duration = whole_number(payload.get("duration_minutes", payload.get("duration")), "duration_minutes")
        if duration <= 0:
            raise InvalidInput("duration_minutes must be a positive integer")
        service.duration_minutes = duration
    if "image_url" in payload or "imageUrl" in payload:
        service.image_url = text_field(payload, "image_url", "imageUrl") or None
    if "features" in payload:
        service.features = _features(payload.get("features"))

    db.session.commit()
    return jsonify({"message": "Service updated", "service": service.to_dict()}), 200


@bp_catalog.delete("/api/services/<int:service_id>")
@admin_required
def delete_service(service_id: int) -> tuple[dict[str, str], int]:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")

    if Booking.query.filter(Booking.service_id == service_id).first():
        raise InvalidInput("Service has bookings and cannot be deleted", code="service_in_use")

    db.session.delete(service)
    db.session.commit()
    return jsonify({"message": "Service deleted"}), 200


# UC: Products


@bp_catalog.get("/api/products")
def list_products() -> tuple[dict[str, object], int]:
    """List active products. Admins may pass ``include_inactive=true`` to see all."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    if include_inactive:
        require_role(authenticate(request.headers.get("Authorization")), "admin")
    query = Product.query
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    products = query.order_by(Product.created_at.desc(), Product.product_id.desc()).all()
    return jsonify({"products": [product.to_dict() for product in products]}), 200


@bp_catalog.get("/api/products/<int:product_id>")
def get_product(product_id: int) -> tuple[dict[str, object], int]:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return jsonify({"product": product.to_dict()}), 200


@bp_catalog.post("/api/products")
@admin_required
def create_product() -> tuple[dict[str, object], int]:
    payload = json_body()
    name = text_field(payload, "name")
    if not name:
        raise InvalidInput("name is required")

    product = Product(
        name=name,
        description=text_field(payload, "description") or None,
        price_cents=_price_cents(payload),
        image_url=text_field(payload, "image_url", "imageUrl") or None,
        is_active=True,
    )
    db.session.add(product)
    db.session.commit()
    return jsonify({"message": "Product created", "product": product.to_dict()}), 201


@bp_catalog.put("/api/products/<int:product_id>")
@admin_required
def update_product(product_id: int) -> tuple[dict[str, object], int]:
    """Update catalog fields. Existing orders keep their snapshotted price."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")

    payload = json_body()
    if "name" in payload:
        name = text_field(payload, "name")
        if not name:
            raise InvalidInput("name must not be empty")
        product.name = name
    if "description" in payload:
        product.description = text_field(payload, "description") or None
    if "price" in payload or "price_cents" in payload:
        product.price_cents = _price_cents(payload)
    if "image_url" in payload or "imageUrl" in payload:
        product.image_url = text_field(payload, "image_url", "imageUrl") or None
    if "is_active" in payload:
        product.is_active = flag(payload, "is_active")

    db.session.commit()
    return jsonify({"message": "Product updated", "product": product.to_dict()}), 200


@bp_catalog.delete("/api/products/<int:product_id>")
@admin_required
def delete_product(product_id: int) -> tuple[dict[str, object], int]:
    # Soft delete: orders keep pointing at the row.
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")

    product.is_active = False
    db.session.commit()
    return jsonify({"message": "Product deactivated", "product": product.to_dict()}), 200


# UC: Gallery


@bp_catalog.get("/api/gallery")
def list_gallery_items() -> tuple[dict[str, object], int]:
    items = GalleryItem.query.order_by(GalleryItem.created_at.desc(), GalleryItem.item_id.desc()).all()
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@bp_catalog.post("/api/gallery")
@admin_required
def add_gallery_item() -> tuple[dict[str, object], int]:
    payload = json_body()
    item_type = text_field(payload, "type").lower()
    url = text_field(payload, "url")

    if item_type not in ("image", "video"):
        raise InvalidInput("type must be 'image' or 'video'")
    if not url:
        raise InvalidInput("url is required")

    item = GalleryItem(type=item_type, url=url)
    db.session.add(item)
    db.session.commit()
    return jsonify({"message": "Gallery item added", "item": item.to_dict()}), 201


@bp_catalog.delete("/api/gallery/<int:item_id>")
@admin_required
def delete_gallery_item(item_id: int) -> tuple[dict[str, str], int]:
    item = db.session.get(GalleryItem, item_id)
    if item is None:
        raise NotFound("Gallery item not found")

    db.session.delete(item)
    db.session.commit()
    return jsonify({"message": "Gallery item deleted"}), 200
