"""Bearer-token identity guard.

Tokens are signed ``{"user_id", "role"}`` payloads, so a request is
authenticated without a database round trip.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional

from flask import current_app, g, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

from .errors import Forbidden, Unauthorized

TOKEN_SALT = "auth-token"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role.lower() == "admin"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user_id: int, role: str) -> str:
    return _serializer().dumps({"user_id": user_id, "role": role.lower()})


def authenticate(auth_header: Optional[str]) -> Identity:
    """Validate an ``Authorization`` header value and return its identity."""
    if not auth_header or not auth_header.startswith("Bearer "):
        raise Unauthorized("No token, authorization denied")

    token = auth_header[7:].strip()
    if not token:
        raise Unauthorized("No token, authorization denied")

    try:
        # BadSignature also covers SignatureExpired
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except BadSignature:
        raise Unauthorized("Token is not valid") from None

    if not isinstance(payload, dict):
        raise Unauthorized("Token is not valid")
    try:
        user_id = int(payload["user_id"])
    except (KeyError, TypeError, ValueError):
        raise Unauthorized("Token is not valid") from None

    return Identity(user_id=user_id, role=str(payload.get("role") or "user"))


def require_role(identity: Identity, role: str) -> None:
    if identity.role.lower() != role.lower():
        raise Forbidden(f"{role.capitalize()} access only")


def current_identity() -> Identity:
    return g.identity


def login_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.identity = authenticate(request.headers.get("Authorization"))
        return view(*args, **kwargs)

    return wrapper


def admin_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        identity = authenticate(request.headers.get("Authorization"))
        require_role(identity, "admin")
        g.identity = identity
        return view(*args, **kwargs)

    return wrapper
