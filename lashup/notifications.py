"""Best-effort outbound email.

Messages are handed to a small thread pool after the triggering request has
committed. A failed send is logged and dropped; it never reaches the caller.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)

MAIL_SETTINGS = (
    "MAIL_BACKEND",
    "MAIL_HOST",
    "MAIL_PORT",
    "MAIL_USERNAME",
    "MAIL_PASSWORD",
    "MAIL_USE_TLS",
    "MAIL_FROM",
)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class Notifier:
    """Dispatches :class:`EmailMessage` objects through the configured backend.

    Backends:
      - ``smtp``: deliver through ``MAIL_HOST``/``MAIL_PORT`` (implicit TLS on 465,
        STARTTLS otherwise)
      - ``console``: log the message instead of sending it
      - ``memory``: append to :attr:`outbox`, used by the test-suite
    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        self.app: Optional[Flask] = None
        self.outbox: list[EmailMessage] = []
        self._executor: Optional[ThreadPoolExecutor] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.app = app
        self.outbox = []
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        if not app.config.get("NOTIFICATIONS_SYNC"):
            self._executor = ThreadPoolExecutor(
                max_workers=app.config.get("NOTIFICATION_WORKERS", 4),
                thread_name_prefix="notify_",
            )
        app.extensions["notifier"] = self

    def send(self, to: Optional[str], subject: str, html: str) -> None:
        """Queue one email. Returns immediately; delivery errors are only logged."""
        if not to:
            logger.warning("Skipping email %r: no recipient", subject)
            return
        message = EmailMessage(to=to, subject=subject, html=html)
        # Worker threads have no app context; pin the calling app's mail settings now.
        config = self._config()
        settings = {key: config.get(key) for key in MAIL_SETTINGS if key in config}
        if self._executor is None or config.get("NOTIFICATIONS_SYNC"):
            self._deliver_safely(message, settings)
        else:
            self._executor.submit(self._deliver_safely, message, settings)

    def notify_admin(self, subject: str, html: str) -> None:
        self.send(self._config().get("ADMIN_EMAIL"), subject, html)

    def _config(self) -> dict:
        if has_app_context():
            return current_app.config
        return self.app.config if self.app else {}

    def _deliver_safely(self, message: EmailMessage, settings: dict) -> None:
        try:
            self._deliver(message, settings)
        except Exception as exc:  # noqa: BLE001
            logger.error("Email sending failed (%s -> %s): %s", message.subject, message.to, exc)

    def _deliver(self, message: EmailMessage, config: dict) -> None:
        backend = (config.get("MAIL_BACKEND") or "console").lower()

        if backend == "memory":
            self.outbox.append(message)
            return
        if backend == "console":
            logger.info("Email to %s: %s\n%s", message.to, message.subject, message.html)
            return
        if backend != "smtp":
            raise ValueError(f"unknown MAIL_BACKEND {backend!r}")

        from_address = config.get("MAIL_FROM")
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = from_address
        msg["To"] = message.to
        msg.attach(MIMEText(message.html, "html"))

        host = config.get("MAIL_HOST")
        port = int(config.get("MAIL_PORT") or 465)
        context = ssl.create_default_context()
        if port == 465:
            server = smtplib.SMTP_SSL(host, port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(host, port, timeout=30)
            if config.get("MAIL_USE_TLS", True):
                server.starttls(context=context)

        try:
            username = config.get("MAIL_USERNAME")
            if username:
                server.login(username, config.get("MAIL_PASSWORD") or "")
            server.sendmail(from_address.split("<")[-1].rstrip(">"), [message.to], msg.as_string())
        finally:
            server.quit()

        logger.info("Email sent to %s: %s", message.to, message.subject)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
