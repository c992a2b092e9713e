"""Typed accessors for JSON request bodies.

Each helper raises :class:`InvalidInput` for a value of the wrong JSON type,
so a malformed field is answered with 400 instead of failing deep in a handler.
"""
from __future__ import annotations

from flask import request

from .errors import InvalidInput


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def text_field(payload: dict, *keys: str, strip: bool = True) -> str:
    """Return the first non-empty string among ``keys``, or ``""``."""
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidInput(f"{key} must be a string")
        if strip:
            value = value.strip()
        if value:
            return value
    return ""


def whole_number(value: object, label: str) -> int:
    """Accept a JSON integer or a string of digits; never truncate fractions."""
    if isinstance(value, bool):
        raise InvalidInput(f"{label} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if raw.lstrip("-").isdigit():
            return int(raw)
    raise InvalidInput(f"{label} must be an integer")


def flag(payload: dict, key: str) -> bool:
    value = payload.get(key)
    if not isinstance(value, bool):
        raise InvalidInput(f"{key} must be true or false")
    return value
