# This project was developed with assistance from AI tools.
"""Outbound email: template rendering and SMTP transport.

Templates are stored as ``EmailTemplate`` rows keyed by name; bodies use
``%<variable>s`` placeholders. The transport is synchronous ``smtplib`` run
in a thread-pool executor, exposed as a module singleton like the storage
service.
"""

import asyncio
import logging
import re
import smtplib
import ssl
import uuid
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formataddr
from functools import partial

from db import EmailTemplate
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings
from ..core.errors import ValidationError

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"%<(\w+)>s")


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body: str


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def render_text(text: str, variables: dict) -> str:
    """Interpolate ``%<name>s`` placeholders; a missing variable is a ValidationError."""

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            raise ValidationError(f"Missing template variable: {name}")
        value = variables[name]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, text)


def render_template(template: EmailTemplate, variables: dict) -> RenderedEmail:
    return RenderedEmail(
        subject=render_text(template.subject, variables),
        body=render_text(template.body, variables),
    )


async def get_email_template(session: AsyncSession, name: str) -> EmailTemplate | None:
    result = await session.execute(select(EmailTemplate).where(EmailTemplate.name == name))
    return result.scalar_one_or_none()


class SmtpMailer:
    """Sends rendered templates through an SMTP relay."""

    def __init__(
        self,
        host: str | None,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        from_email: str = "no-reply@casework.local",
        from_name: str = "Benefits Program",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.from_name = from_name

    def _send_sync(self, recipient: str, email: RenderedEmail) -> str:
        msg = MIMEText(email.body, "plain", "utf-8")
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = recipient
        msg["Subject"] = email.subject
        message_id = f"smtp-{uuid.uuid4()}"
        msg["Message-ID"] = f"<{message_id}@{self.from_email.split('@')[-1]}>"

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(self.from_email, [recipient], msg.as_string())
        return message_id

    async def send(self, template: EmailTemplate, recipient: str, variables: dict) -> DeliveryResult:
        """Render and send; transport failures come back as an unsuccessful result."""
        if not self.host:
            return DeliveryResult(success=False, error="SMTP not configured (missing SMTP_HOST)")

        email = render_template(template, variables)
        loop = asyncio.get_running_loop()
        try:
            message_id = await loop.run_in_executor(None, partial(self._send_sync, recipient, email))
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", recipient, exc)
            return DeliveryResult(success=False, error=str(exc))

        logger.info("Email '%s' sent (message_id=%s)", template.name, message_id)
        return DeliveryResult(success=True, message_id=message_id)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_mailer: SmtpMailer | None = None


def init_mailer(cfg: Settings) -> SmtpMailer:
    """Initialise the singleton (called once from app lifespan)."""
    global _mailer  # noqa: PLW0603
    _mailer = SmtpMailer(
        host=cfg.SMTP_HOST,
        port=cfg.SMTP_PORT,
        username=cfg.SMTP_USERNAME,
        password=cfg.SMTP_PASSWORD,
        use_tls=cfg.SMTP_USE_TLS,
        from_email=cfg.MAIL_FROM_EMAIL,
        from_name=cfg.MAIL_FROM_NAME,
    )
    if not cfg.SMTP_HOST:
        logger.warning("SMTP_HOST not set -- notification delivery will fail until configured")
    return _mailer


def get_mailer() -> SmtpMailer:
    """Return the initialised mailer singleton."""
    if _mailer is None:
        raise RuntimeError("Mailer not initialised -- call init_mailer() first")
    return _mailer
