# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Notification collaborator – outbound mail for codes and links.

Services never talk to SMTP themselves.  They hand an :class:`OutboundMessage`
to a ``send`` callable; in the HTTP layer that callable schedules
:func:`deliver` as a FastAPI background task, so the response is produced
before the mail server is contacted.  A delivery failure is logged and
swallowed: it must not turn a successful login into an error, but an
employee who never receives their code is effectively locked out, so the
failure is logged at ERROR with a traceback.
"""

import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from functools import lru_cache
from typing import Callable, Protocol
from urllib.parse import urlencode

from fastapi import BackgroundTasks, Depends

from core.config import settings
from core.logger import logger


@dataclass(frozen=True)
class OutboundMessage:
    to_address: str
    subject: str
    body: str


Sender = Callable[[OutboundMessage], None]


class Notifier(Protocol):
    def send(self, to_address: str, subject: str, body: str) -> None: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class LoggingNotifier:
    """Development transport: records that a message would have been sent."""

    def send(self, to_address: str, subject: str, body: str) -> None:
        # The body carries the secret; only its length is logged
        logger.info(
            "mail (not sent, no SMTP configured) | to=%s subject=%r body_len=%d",
            redact_email(to_address),
            subject,
            len(body),
        )


class SmtpNotifier:
    """SMTP transport with STARTTLS or implicit TLS.  Raises on failure."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        from_address: str = "",
        timeout: float = 30,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address or user
        self.timeout = timeout

    def send(self, to_address: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to_address
        msg.set_content(body)

        context = ssl.create_default_context()
        if self.use_tls:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls(context=context)
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        else:
            with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        logger.info("mail sent | to=%s subject=%r", redact_email(to_address), subject)


def build_notifier(cfg=settings) -> Notifier:
    if not cfg.smtp_host:
        return LoggingNotifier()
    return SmtpNotifier(
        host=cfg.smtp_host,
        port=cfg.smtp_port,
        user=cfg.smtp_user,
        password=cfg.smtp_password,
        use_tls=cfg.smtp_use_tls,
        from_address=cfg.mail_from,
    )


def deliver(notifier: Notifier, message: OutboundMessage) -> bool:
    """Send *message*; log and report False instead of raising."""
    try:
        notifier.send(message.to_address, message.subject, message.body)
    except Exception:
        logger.exception(
            "mail delivery failed | to=%s subject=%r",
            redact_email(message.to_address),
            message.subject,
        )
        return False
    return True


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    return build_notifier()


def get_sender(
    background_tasks: BackgroundTasks,
    notifier: Notifier = Depends(get_notifier),
) -> Sender:
    """A ``send`` callable that defers delivery until after the response."""

    def send(message: OutboundMessage) -> None:
        background_tasks.add_task(deliver, notifier, message)

    return send


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------


def build_link(base_url: str, **params: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(params)}"


def two_factor_message(identity, code: str, minutes: int) -> OutboundMessage:
    return OutboundMessage(
        to_address=identity.email,
        subject="Your sign-in code",
        body=(
            f"Hello {identity.full_name or identity.email},\n\n"
            f"Your sign-in code is {code}. It expires in {minutes} minutes.\n\n"
            "If you did not try to sign in, contact the security team."
        ),
    )


def confirmation_message(identity, link: str) -> OutboundMessage:
    return OutboundMessage(
        to_address=identity.email,
        subject="Confirm your email address",
        body=(
            f"Hello {identity.full_name or identity.email},\n\n"
            f"Confirm your email address by opening this link:\n{link}\n"
        ),
    )


def password_reset_message(identity, link: str, minutes: int) -> OutboundMessage:
    return OutboundMessage(
        to_address=identity.email,
        subject="Reset your password",
        body=(
            f"Hello {identity.full_name or identity.email},\n\n"
            f"A password reset was requested for your account. The link below "
            f"is valid for {minutes} minutes:\n{link}\n\n"
            "If you did not request this, you can ignore this message."
        ),
    )
