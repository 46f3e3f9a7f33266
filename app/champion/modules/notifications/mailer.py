from __future__ import annotations

import logging
import smtplib
from collections.abc import Mapping
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)


def build_message(*, sender: str, to: str, subject: str, text: str | None, html: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    if text:
        msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(html, "html"))
    return msg


def deliver(config: Mapping, *, to: str, subject: str, html: str, text: str | None = None) -> tuple[bool, str | None]:
    """
    Send one message over SMTP using SMTP_* / EMAIL_FROM from config.

    Returns (success, error_message). Transport failures are reported, not raised;
    callers record them on the EmailNotification row.
    """
    smtp_server = (config.get("SMTP_SERVER") or "").strip()
    email_from = (config.get("EMAIL_FROM") or "").strip()
    if not smtp_server:
        error = "SMTP server not configured (SMTP_SERVER environment variable missing)"
        logger.warning("Email not sent to %s: %s", to, error)
        return False, error
    if not email_from:
        error = "Email from address not configured (EMAIL_FROM environment variable missing)"
        logger.warning("Email not sent to %s: %s", to, error)
        return False, error

    msg = build_message(sender=email_from, to=to, subject=subject, text=text, html=html)
    username = (config.get("SMTP_USERNAME") or "").strip()
    password = (config.get("SMTP_PASSWORD") or "").strip()

    try:
        with smtplib.SMTP(smtp_server, int(config.get("SMTP_PORT") or 587), timeout=30) as server:
            if config.get("SMTP_USE_TLS", True):
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed sending to %s: %s", to, e)
        return False, f"SMTP authentication failed: {e}"
    except smtplib.SMTPException as e:
        logger.error("SMTP error sending to %s: %s", to, e)
        return False, f"SMTP error: {e}"
    except OSError as e:
        logger.exception("SMTP connection error sending to %s", to)
        return False, f"SMTP connection error: {e}"

    logger.info("Sent email to %s (subject=%r)", to, subject)
    return True, None
