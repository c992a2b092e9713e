"""Shared Flask extensions for the application."""
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy

from .notifications import Notifier

# SQLAlchemy database instance shared across the app.
db = SQLAlchemy()

# Outbound email dispatcher, bound to the app in create_app().
notifier = Notifier()
