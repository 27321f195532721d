"""Outgoing mail over SMTP (attendance summaries, sync completion notices)."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from opsdesk.config import settings

logger = logging.getLogger(__name__)


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


def _build_message(mail: OutgoingEmail) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    msg["To"] = mail.to
    msg["Subject"] = mail.subject
    msg.set_content(mail.text or "This message requires an HTML capable mail client.")
    msg.add_alternative(mail.html, subtype="html")
    return msg


def _send_blocking(mail: OutgoingEmail) -> None:
    msg = _build_message(mail)
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as smtp:
        if settings.SMTP_USE_TLS:
            smtp.starttls()
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


async def send_email(mail: OutgoingEmail) -> bool:
    """Send one message. Returns False (and logs) instead of raising on SMTP errors."""
    if not settings.smtp_configured:
        logger.warning("SMTP not configured; dropping mail to %s (%s)", mail.to, mail.subject)
        return False
    try:
        await asyncio.to_thread(_send_blocking, mail)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send mail to %s: %s", mail.to, exc)
        return False
    logger.info("Sent mail to %s: %s", mail.to, mail.subject)
    return True
