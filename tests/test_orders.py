"""Tests for checkout, payment verification and order fulfillment."""
from __future__ import annotations

from conftest import SHIPPING, FakeStripeError, provider_says

from lashup.extensions import db
from lashup.models import Payment, Product, ProductOrder


def _checkout(client, headers, items):
    return client.post(
        "/api/orders/payment/initialize",
        headers=headers,
        json={"items": items, "shipping_info": SHIPPING},
    )


def _paid_checkout(client, headers, stripe_mock, products):
    serum_id, spoolies_id = products
    body = _checkout(
        client, headers, [{"product_id": serum_id, "quantity": 2}, {"product_id": spoolies_id, "quantity": 1}]
    ).get_json()
    provider_says(stripe_mock, payment_status="paid", status="complete", amount_total=body["amount_cents"])
    client.get(f"/api/orders/payment/verify/{body['reference']}")
    return body


# Checkout


def test_checkout_totals_line_items_plus_shipping(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, spoolies_id = products

    response = _checkout(
        client, headers, [{"product_id": serum_id, "quantity": 2}, {"product_id": spoolies_id, "quantity": 1}]
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["amount_cents"] == 2 * 2000 + 1000 + 1500
    assert body["shipping_fee_cents"] == 1500
    assert body["reference"].startswith("LUM-")
    assert body["authorization_url"] == "https://checkout.stripe.com/c/pay/cs_test_1"
    assert [order["status"] for order in body["orders"]] == ["PENDING", "PENDING"]
    assert {order["payment_reference"] for order in body["orders"]} == {body["reference"]}

    kwargs = stripe_mock.checkout.Session.create.call_args.kwargs
    assert kwargs["client_reference_id"] == body["reference"]
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 6500
    assert kwargs["metadata"]["reference"] == body["reference"]

    with app.app_context():
        payment = Payment.query.filter_by(reference=body["reference"]).one()
        assert payment.provider_session_id == "cs_test_1"
        assert payment.status == "pending"
        assert payment.shipping_info["city"] == "Newark"


def test_checkout_snapshots_unit_price(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    body = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()

    with app.app_context():
        db.session.get(Product, serum_id).price_cents = 9900
        db.session.commit()
        order = ProductOrder.query.filter_by(payment_reference=body["reference"]).one()
        assert order.unit_price_cents == 2000
        assert order.total_cents == 2000


def test_checkout_unknown_product_writes_nothing(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products

    response = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}, {"product_id": 999, "quantity": 1}])

    assert response.status_code == 404
    assert response.get_json()["message"] == "Product 999 not found"
    stripe_mock.checkout.Session.create.assert_not_called()
    with app.app_context():
        assert ProductOrder.query.count() == 0
        assert Payment.query.count() == 0


def test_checkout_inactive_product_is_not_sold(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    with app.app_context():
        db.session.get(Product, serum_id).is_active = False
        db.session.commit()

    response = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}])

    assert response.status_code == 404


def test_checkout_requires_complete_shipping(client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products

    response = client.post(
        "/api/orders/payment/initialize",
        headers=headers,
        json={"items": [{"product_id": serum_id, "quantity": 1}], "shipping_info": {"full_name": "Jane"}},
    )

    assert response.status_code == 400
    assert response.get_json()["details"]["missing"] == ["phone", "address", "city", "state"]


def test_checkout_rejects_bad_items(client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products

    empty = _checkout(client, headers, [])
    zero = _checkout(client, headers, [{"product_id": serum_id, "quantity": 0}])

    assert empty.status_code == 400
    assert zero.status_code == 400


def test_checkout_rejects_fractional_numbers(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products

    fractional_quantity = _checkout(client, headers, [{"product_id": serum_id, "quantity": 2.7}])
    fractional_product = _checkout(client, headers, [{"product_id": serum_id + 0.9, "quantity": 1}])

    assert fractional_quantity.status_code == 400
    assert fractional_quantity.get_json()["error"] == "invalid_payload"
    assert fractional_product.status_code == 400
    stripe_mock.checkout.Session.create.assert_not_called()
    with app.app_context():
        assert ProductOrder.query.count() == 0


def test_checkout_provider_failure_writes_nothing(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    stripe_mock.checkout.Session.create.side_effect = FakeStripeError("card network down")

    response = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}])

    assert response.status_code == 502
    assert response.get_json()["error"] == "payment_init_failed"
    with app.app_context():
        assert ProductOrder.query.count() == 0
        assert Payment.query.count() == 0


def test_checkout_requires_login(client, products) -> None:
    response = client.post("/api/orders/payment/initialize", json={"items": [], "shipping_info": SHIPPING})

    assert response.status_code == 401


# Verification


def test_verify_success_confirms_all_siblings_once(app, client, customer, products, stripe_mock, outbox) -> None:
    _, headers = customer
    body = _paid_checkout(client, headers, stripe_mock, products)

    again = client.get(f"/api/orders/payment/verify/{body['reference']}")

    assert again.status_code == 200
    result = again.get_json()
    assert result["status"] == "success"
    assert result["payment"]["status"] == "SUCCESSFUL"
    assert {order["status"] for order in result["orders"]} == {"CONFIRMED"}
    assert {order["payment_status"] for order in result["orders"]} == {"SUCCESSFUL"}
    subjects = [message.subject for message in outbox]
    assert subjects.count("Payment Received - Order Confirmed") == 1
    assert subjects.count("New Product Order Paid") == 1


def test_verify_pending_changes_nothing(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    reference = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()["reference"]

    response = client.get(f"/api/orders/payment/verify/{reference}")

    assert response.status_code == 200
    assert response.get_json()["status"] == "pending"
    with app.app_context():
        assert {order.status for order in ProductOrder.query.all()} == {"pending"}
        assert Payment.query.one().status == "pending"


def test_verify_expired_cancels_siblings(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, spoolies_id = products
    reference = _checkout(
        client, headers, [{"product_id": serum_id, "quantity": 1}, {"product_id": spoolies_id, "quantity": 1}]
    ).get_json()["reference"]
    provider_says(stripe_mock, payment_status="unpaid", status="expired")

    response = client.get(f"/api/orders/payment/verify/{reference}")

    assert response.status_code == 200
    result = response.get_json()
    assert result["status"] == "failed"
    assert {order["status"] for order in result["orders"]} == {"CANCELLED"}
    assert {order["payment_status"] for order in result["orders"]} == {"FAILED"}
    assert {order["cancelled_by"] for order in result["orders"]} == {None}


def test_late_success_revives_system_cancelled_orders(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    body = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()
    provider_says(stripe_mock, payment_status="unpaid", status="expired")
    client.get(f"/api/orders/payment/verify/{body['reference']}")

    provider_says(stripe_mock, payment_status="paid", status="complete", amount_total=body["amount_cents"])
    response = client.get(f"/api/orders/payment/verify/{body['reference']}")

    assert response.get_json()["status"] == "success"
    assert response.get_json()["orders"][0]["status"] == "CONFIRMED"


def test_later_failed_verdict_never_downgrades_success(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    body = _paid_checkout(client, headers, stripe_mock, products)
    provider_says(stripe_mock, payment_status="unpaid", status="expired")

    response = client.get(f"/api/orders/payment/verify/{body['reference']}")

    assert response.get_json()["status"] == "success"
    with app.app_context():
        assert Payment.query.one().status == "successful"
        assert {order.status for order in ProductOrder.query.all()} == {"confirmed"}


def test_underpaid_checkout_is_treated_as_failed(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    body = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()
    provider_says(stripe_mock, payment_status="paid", status="complete", amount_total=body["amount_cents"] - 1)

    response = client.get(f"/api/orders/payment/verify/{body['reference']}")

    assert response.get_json()["status"] == "failed"
    with app.app_context():
        assert Payment.query.one().status == "failed"


def test_verify_unknown_reference(client, stripe_mock) -> None:
    response = client.get("/api/orders/payment/verify/LUM-0-deadbeef")

    assert response.status_code == 404
    stripe_mock.checkout.Session.retrieve.assert_not_called()


def test_verify_provider_outage_is_502(client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    reference = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()["reference"]
    stripe_mock.checkout.Session.retrieve.side_effect = FakeStripeError("timeout")

    response = client.get(f"/api/orders/payment/verify/{reference}")

    assert response.status_code == 502


def test_verify_keeps_user_cancelled_order_cancelled(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, spoolies_id = products
    body = _checkout(
        client, headers, [{"product_id": serum_id, "quantity": 1}, {"product_id": spoolies_id, "quantity": 1}]
    ).get_json()
    first_order_id = body["orders"][0]["id"]
    client.put(f"/api/orders/{first_order_id}/cancel", headers=headers)
    provider_says(stripe_mock, payment_status="paid", status="complete", amount_total=body["amount_cents"])

    client.get(f"/api/orders/payment/verify/{body['reference']}")

    with app.app_context():
        first = db.session.get(ProductOrder, first_order_id)
        assert first.status == "cancelled"
        assert first.cancelled_by == "user"
        assert first.payment_status == "successful"


# Webhook


def test_webhook_completed_runs_verification(app, client, customer, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    body = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()
    provider_says(stripe_mock, payment_status="paid", status="complete", amount_total=body["amount_cents"])
    stripe_mock.Webhook.construct_event.return_value = {
        "type": "checkout.session.completed",
        "data": {"object": {"client_reference_id": body["reference"]}},
    }

    response = client.post(
        "/api/orders/payment/webhook", data=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"}
    )

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    with app.app_context():
        assert Payment.query.one().status == "successful"


def test_webhook_bad_signature(client, stripe_mock) -> None:
    stripe_mock.Webhook.construct_event.side_effect = stripe_mock.SignatureVerificationError("bad")

    response = client.post("/api/orders/payment/webhook", data=b"{}", headers={"Stripe-Signature": "bogus"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_signature"


def test_webhook_unknown_reference_is_acknowledged(client, stripe_mock) -> None:
    stripe_mock.Webhook.construct_event.return_value = {
        "type": "checkout.session.expired",
        "data": {"object": {"metadata": {"reference": "LUM-0-unknown"}}},
    }

    response = client.post("/api/orders/payment/webhook", data=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})

    assert response.status_code == 200


# Fulfillment and cancellation


def test_admin_cannot_ship_unpaid_order(app, client, admin, customer, products, stripe_mock) -> None:
    _, headers = customer
    _, admin_headers = admin
    serum_id, _ = products
    order_id = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()["orders"][0]["id"]

    response = client.put(f"/api/orders/{order_id}/status", headers=admin_headers, json={"status": "SHIPPED"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "payment_required"
    with app.app_context():
        assert db.session.get(ProductOrder, order_id).status == "pending"


def test_admin_ships_paid_order(client, admin, customer, products, stripe_mock, outbox) -> None:
    _, headers = customer
    _, admin_headers = admin
    order_id = _paid_checkout(client, headers, stripe_mock, products)["orders"][0]["id"]
    outbox.clear()

    shipped = client.put(f"/api/orders/{order_id}/status", headers=admin_headers, json={"status": "SHIPPED"})

    assert shipped.status_code == 200
    assert shipped.get_json()["order"]["status"] == "SHIPPED"
    assert [message.subject for message in outbox] == ["Order Shipped"]

    user_cancel = client.put(f"/api/orders/{order_id}/cancel", headers=headers)
    assert user_cancel.status_code == 400
    assert user_cancel.get_json()["message"] == "This order cannot be cancelled"


def test_admin_status_must_be_fulfillment_status(client, admin, customer, products, stripe_mock) -> None:
    _, headers = customer
    _, admin_headers = admin
    order_id = _paid_checkout(client, headers, stripe_mock, products)["orders"][0]["id"]

    response = client.put(f"/api/orders/{order_id}/status", headers=admin_headers, json={"status": "PENDING"})

    assert response.status_code == 400
    assert response.get_json()["message"] == "Invalid order status"


def test_user_cancellation_locks_out_admin(app, client, admin, customer, products, stripe_mock) -> None:
    _, headers = customer
    _, admin_headers = admin
    order_id = _paid_checkout(client, headers, stripe_mock, products)["orders"][0]["id"]

    cancelled = client.put(f"/api/orders/{order_id}/cancel", headers=headers)
    assert cancelled.status_code == 200
    assert cancelled.get_json()["order"]["cancelled_by"] == "USER"

    for status in ("CONFIRMED", "SHIPPED", "DELIVERED"):
        response = client.put(f"/api/orders/{order_id}/status", headers=admin_headers, json={"status": status})
        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_state"

    assert client.put(f"/api/orders/{order_id}/admin-cancel", headers=admin_headers).status_code == 400
    with app.app_context():
        order = db.session.get(ProductOrder, order_id)
        assert (order.status, order.cancelled_by) == ("cancelled", "user")


def test_admin_cancellation_is_reversible(client, admin, customer, products, stripe_mock) -> None:
    _, headers = customer
    _, admin_headers = admin
    order_id = _paid_checkout(client, headers, stripe_mock, products)["orders"][0]["id"]

    cancelled = client.put(f"/api/orders/{order_id}/admin-cancel", headers=admin_headers)
    assert cancelled.status_code == 200
    assert cancelled.get_json()["order"]["cancelled_by"] == "ADMIN"

    restored = client.put(f"/api/orders/{order_id}/status", headers=admin_headers, json={"status": "CONFIRMED"})
    assert restored.status_code == 200
    assert restored.get_json()["order"]["status"] == "CONFIRMED"
    assert restored.get_json()["order"]["cancelled_by"] is None


def test_user_cannot_cancel_someone_elses_order(client, customer, make_user, auth_header, products, stripe_mock) -> None:
    _, headers = customer
    serum_id, _ = products
    order_id = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()["orders"][0]["id"]
    stranger = auth_header(make_user(email="sam@example.com", name="Sam"))

    response = client.put(f"/api/orders/{order_id}/cancel", headers=stranger)

    assert response.status_code == 403


def test_user_cancel_sends_confirmation(client, customer, products, stripe_mock, outbox) -> None:
    _, headers = customer
    serum_id, _ = products
    order_id = _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}]).get_json()["orders"][0]["id"]

    response = client.put(f"/api/orders/{order_id}/cancel", headers=headers)

    assert response.status_code == 200
    assert [message.subject for message in outbox] == ["Order Cancelled"]


def test_order_listings(client, admin, customer, make_user, auth_header, products, stripe_mock) -> None:
    _, headers = customer
    _, admin_headers = admin
    serum_id, _ = products
    other_headers = auth_header(make_user(email="sam@example.com", name="Sam"))
    _checkout(client, headers, [{"product_id": serum_id, "quantity": 1}])
    _checkout(client, other_headers, [{"product_id": serum_id, "quantity": 3}])

    mine = client.get("/api/orders/me", headers=headers).get_json()["orders"]
    everything = client.get("/api/orders", headers=admin_headers).get_json()["orders"]
    pending = client.get("/api/orders?status=pending", headers=admin_headers).get_json()["orders"]

    assert [order["quantity"] for order in mine] == [1]
    assert len(everything) == 2
    assert len(pending) == 2
    assert client.get("/api/orders", headers=headers).status_code == 403
