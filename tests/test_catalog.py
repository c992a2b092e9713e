"""Tests for the service, product and gallery catalog."""
from __future__ import annotations

from datetime import timedelta

from lashup.bookings import utc_naive_now
from lashup.extensions import db
from lashup.models import Booking, GalleryItem, Product, Service


def test_services_are_public(client, service_id) -> None:
    listing = client.get("/api/services")
    detail = client.get(f"/api/services/{service_id}")

    assert listing.status_code == 200
    assert [s["name"] for s in listing.get_json()["services"]] == ["Classic Lash Set"]
    assert detail.get_json()["service"]["features"] == ["Consultation", "Aftercare kit"]
    assert client.get("/api/services/999").status_code == 404


def test_admin_creates_service_from_dollar_price(app, client, admin) -> None:
    _, headers = admin

    response = client.post(
        "/api/services",
        headers=headers,
        json={"name": "Volume Set", "price": 120.5, "duration_minutes": 150, "features": ["Fans", " "]},
    )

    assert response.status_code == 201
    service = response.get_json()["service"]
    assert service["price_cents"] == 12050
    assert service["features"] == ["Fans"]


def test_service_creation_validates_payload(client, admin) -> None:
    _, headers = admin

    no_price = client.post("/api/services", headers=headers, json={"name": "Tint", "duration_minutes": 30})
    bad_duration = client.post("/api/services", headers=headers, json={"name": "Tint", "price": 20, "duration_minutes": 0})
    fractional = client.post("/api/services", headers=headers, json={"name": "Tint", "price": 20, "duration_minutes": 29.5})
    numeric_name = client.post("/api/services", headers=headers, json={"name": 42, "price": 20, "duration_minutes": 30})

    assert no_price.status_code == 400
    assert bad_duration.status_code == 400
    assert fractional.status_code == 400
    assert numeric_name.status_code == 400
    assert numeric_name.get_json()["error"] == "invalid_payload"


def test_customers_cannot_manage_services(client, customer) -> None:
    _, headers = customer

    response = client.post("/api/services", headers=headers, json={"name": "Tint", "price": 20, "duration_minutes": 30})

    assert response.status_code == 403


def test_admin_updates_service(client, admin, service_id) -> None:
    _, headers = admin

    response = client.put(f"/api/services/{service_id}", headers=headers, json={"price_cents": 9000})

    assert response.status_code == 200
    assert response.get_json()["service"]["price_cents"] == 9000
    assert response.get_json()["service"]["name"] == "Classic Lash Set"


def test_service_with_bookings_cannot_be_deleted(app, client, admin, customer, service_id) -> None:
    user_id, _ = customer
    _, headers = admin
    with app.app_context():
        db.session.add(Booking(
            user_id=user_id,
            service_id=service_id,
            scheduled_at=utc_naive_now() + timedelta(days=2),
            status="pending",
        ))
        db.session.commit()

    response = client.delete(f"/api/services/{service_id}", headers=headers)

    assert response.status_code == 400
    assert response.get_json()["error"] == "service_in_use"


def test_admin_deletes_unused_service(app, client, admin, service_id) -> None:
    _, headers = admin

    response = client.delete(f"/api/services/{service_id}", headers=headers)

    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(Service, service_id) is None


def test_product_delete_is_soft(app, client, admin, products) -> None:
    _, headers = admin
    serum_id, spoolies_id = products

    response = client.delete(f"/api/products/{serum_id}", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["product"]["is_active"] is False
    with app.app_context():
        assert db.session.get(Product, serum_id) is not None

    public = client.get("/api/products").get_json()["products"]
    assert [p["id"] for p in public] == [spoolies_id]

    everything = client.get("/api/products?include_inactive=true", headers=headers).get_json()["products"]
    assert {p["id"] for p in everything} == {serum_id, spoolies_id}


def test_inactive_listing_is_admin_only(client, customer, products) -> None:
    _, headers = customer

    anonymous = client.get("/api/products?include_inactive=true")
    as_customer = client.get("/api/products?include_inactive=true", headers=headers)

    assert anonymous.status_code == 401
    assert as_customer.status_code == 403


def test_product_active_flag_must_be_boolean(app, client, admin, products) -> None:
    _, headers = admin
    serum_id, _ = products
    client.delete(f"/api/products/{serum_id}", headers=headers)

    stringly = client.put(f"/api/products/{serum_id}", headers=headers, json={"is_active": "false"})

    assert stringly.status_code == 400
    with app.app_context():
        assert db.session.get(Product, serum_id).is_active is False

    restored = client.put(f"/api/products/{serum_id}", headers=headers, json={"is_active": True})
    assert restored.status_code == 200
    assert restored.get_json()["product"]["is_active"] is True


def test_admin_creates_and_updates_product(client, admin) -> None:
    _, headers = admin

    created = client.post("/api/products", headers=headers, json={"name": "Lash Cleanser", "price": "14.99"})
    product_id = created.get_json()["product"]["id"]
    updated = client.put(f"/api/products/{product_id}", headers=headers, json={"name": "Foaming Lash Cleanser"})

    assert created.status_code == 201
    assert created.get_json()["product"]["price_cents"] == 1499
    assert updated.status_code == 200
    assert updated.get_json()["product"]["name"] == "Foaming Lash Cleanser"
    assert updated.get_json()["product"]["price_cents"] == 1499


def test_product_price_cannot_be_negative(client, admin) -> None:
    _, headers = admin

    response = client.post("/api/products", headers=headers, json={"name": "Refund", "price_cents": -100})

    assert response.status_code == 400


def test_gallery_lifecycle(app, client, admin) -> None:
    _, headers = admin

    added = client.post(
        "/api/gallery", headers=headers, json={"type": "IMAGE", "url": "https://cdn.example.com/set.jpg"}
    )
    item_id = added.get_json()["item"]["id"]

    assert added.status_code == 201
    assert client.get("/api/gallery").get_json()["items"][0]["type"] == "image"

    deleted = client.delete(f"/api/gallery/{item_id}", headers=headers)
    assert deleted.status_code == 200
    with app.app_context():
        assert GalleryItem.query.count() == 0


def test_gallery_rejects_unknown_type(client, admin) -> None:
    _, headers = admin

    response = client.post("/api/gallery", headers=headers, json={"type": "audio", "url": "https://x.example/a.mp3"})

    assert response.status_code == 400


def test_gallery_rejects_non_string_url(client, admin) -> None:
    _, headers = admin

    response = client.post("/api/gallery", headers=headers, json={"type": "image", "url": 5})

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
