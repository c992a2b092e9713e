"""pytest configuration: path management and shared fixtures."""
from __future__ import annotations

import itertools
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the lashup package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lashup import create_app  # noqa: E402
from lashup.auth import build_token  # noqa: E402
from lashup.config import TestingConfig  # noqa: E402
from lashup.extensions import db  # noqa: E402
from lashup.models import AuthAccount, Product, Service, User  # noqa: E402


class FakeStripeError(Exception):
    """Stands in for ``stripe.StripeError`` while the module is patched."""


class FakeSignatureError(Exception):
    """Stands in for ``stripe.SignatureVerificationError``."""


@pytest.fixture
def app():
    flask_app = create_app(TestingConfig)
    with flask_app.app_context():
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(app):
    return app.extensions["notifier"].outbox


@pytest.fixture
def make_user(app):
    """Factory creating a user with a password; returns the new user id."""

    def _make_user(email: str = "jane@example.com", role: str = "user",
                   password: str = "secret123", name: str = "Jane Doe") -> int:
        with app.app_context():
            user = User(name=name, email=email, role=role)
            db.session.add(user)
            db.session.flush()
            db.session.add(AuthAccount(user_id=user.user_id, password_hash=generate_password_hash(password)))
            db.session.commit()
            return user.user_id

    return _make_user


@pytest.fixture
def auth_header(app):
    def _auth_header(user_id: int, role: str = "user") -> dict[str, str]:
        with app.app_context():
            return {"Authorization": f"Bearer {build_token(user_id, role)}"}

    return _auth_header


@pytest.fixture
def customer(make_user, auth_header):
    user_id = make_user()
    return user_id, auth_header(user_id)


@pytest.fixture
def admin(make_user, auth_header):
    user_id = make_user(email="owner@example.com", role="admin", name="Studio Owner")
    return user_id, auth_header(user_id, "admin")


@pytest.fixture
def service_id(app):
    with app.app_context():
        service = Service(
            name="Classic Lash Set",
            description="Natural one-to-one extensions",
            price_cents=8500,
            duration_minutes=120,
            features=["Consultation", "Aftercare kit"],
        )
        db.session.add(service)
        db.session.commit()
        return service.service_id


@pytest.fixture
def products(app):
    """Two active products: a 20.00 serum and a 10.00 spoolie set."""
    with app.app_context():
        serum = Product(name="Lash Growth Serum", price_cents=2000, is_active=True)
        spoolies = Product(name="Spoolie Set", price_cents=1000, is_active=True)
        db.session.add_all([serum, spoolies])
        db.session.commit()
        return serum.product_id, spoolies.product_id


@pytest.fixture
def stripe_mock():
    """Mock the Stripe SDK as seen by the payments module."""
    with patch("lashup.payments.stripe") as mock_stripe:
        mock_stripe.StripeError = FakeStripeError
        mock_stripe.SignatureVerificationError = FakeSignatureError

        counter = itertools.count(1)

        def _create_session(**kwargs):
            number = next(counter)
            session = MagicMock()
            session.id = f"cs_test_{number}"
            session.url = f"https://checkout.stripe.com/c/pay/cs_test_{number}"
            return session

        mock_stripe.checkout.Session.create.side_effect = _create_session
        mock_stripe.checkout.Session.retrieve.return_value = MagicMock(
            payment_status="unpaid", status="open", amount_total=None
        )

        yield mock_stripe


def provider_says(stripe_mock, *, payment_status: str, status: str, amount_total=None) -> None:
    stripe_mock.checkout.Session.retrieve.return_value = MagicMock(
        payment_status=payment_status, status=status, amount_total=amount_total
    )


SHIPPING = {
    "full_name": "Jane Doe",
    "phone": "+1 555 0100",
    "address": "12 Main St",
    "city": "Newark",
    "state": "NJ",
}
