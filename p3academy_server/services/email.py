# Copyright (C) 2024 P3 Academy Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Outbound email: notifier strategies and the password reset message.

The notifier is chosen once at startup from MAILER. SmtpMailer delivers through
SMTP; ConsoleMailer only logs, for development and tests.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import NamedTuple, Protocol

from p3academy_server.config import Settings
from p3academy_server.errors import NotificationFailure

logger = logging.getLogger(__name__)

BRAND = "P3 Pharmacy Academy"


class EmailMessage(NamedTuple):
    to: str
    subject: str
    html_body: str
    text_body: str


class Notifier(Protocol):
    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        """Deliver one message. Returns False on failure instead of raising."""
        ...


class SmtpMailer:
    """Delivers mail over SMTP. Blocking smtplib calls run in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        sender: str = "noreply@p3pharmacy.sg",
        starttls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.starttls = starttls
        self.timeout = timeout

    def build_message(self, to: str, subject: str, html_body: str, text_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _deliver(self, msg: MIMEMultipart, to: str) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.starttls:
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password or "")
                server.sendmail(self.sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailure(str(e)) from e

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        msg = self.build_message(to, subject, html_body, text_body)
        try:
            await asyncio.to_thread(self._deliver, msg, to)
        except NotificationFailure as e:
            logger.error("Failed to send email to %s (%s): %s", to, subject, e)
            return False
        logger.info("Email sent to %s: %s", to, subject)
        return True


class ConsoleMailer:
    """Logs mail instead of sending it. Selected with MAILER=console."""

    async def send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        logger.info("Email (console mailer): To=%s Subject=%s\n%s", to, subject, text_body)
        return True


def build_notifier(settings: Settings) -> Notifier:
    """Pick the notifier named by settings.mailer."""
    if settings.mailer == "smtp":
        logger.info("Email: SMTP via %s:%s", settings.smtp_host, settings.smtp_port)
        return SmtpMailer(
            host=settings.smtp_host or "",
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
            starttls=settings.smtp_starttls,
            timeout=settings.smtp_timeout_seconds,
        )
    logger.info("Email: console mailer, messages are logged and not delivered")
    return ConsoleMailer()


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def reset_link(client_base_url: str, token: str) -> str:
    return f"{client_base_url.rstrip('/')}/reset-password?token={token}"


def render_reset_email(to: str, reset_url: str, user_name: str, ttl_minutes: int) -> EmailMessage:
    """Password reset email in HTML and plain text."""
    if ttl_minutes % 60 == 0:
        hours = ttl_minutes // 60
        validity = f"{hours} hour" if hours == 1 else f"{hours} hours"
    else:
        validity = f"{ttl_minutes} minutes"
    subject = f"{BRAND} - Password Reset Request"
    name = _escape(user_name)
    url = _escape(reset_url)
    html_body = f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Password Reset - {BRAND}</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
<h1>{BRAND}</h1>
<p>Singapore Pre-registration Training</p>
<h2>Password Reset Request</h2>
<p>Hello {name},</p>
<p>We received a request to reset the password for your {BRAND} account.</p>
<p><a href="{url}" style="background: #2563eb; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px;">Reset Your Password</a></p>
<p>Or copy and paste this link into your browser:</p>
<p style="word-break: break-all; font-family: monospace;">{url}</p>
<p><strong>Important:</strong> This link will expire in {validity} and can be used once.</p>
<p>If you didn't request this password reset, please ignore this email. Your password will remain unchanged.</p>
<p>Best regards,<br>The {BRAND} Team</p>
</body>
</html>"""
    text_body = f"""{BRAND} - Password Reset Request

Hello {user_name},

We received a request to reset the password for your {BRAND} account.

To reset your password, open the following link:
{reset_url}

IMPORTANT: This link will expire in {validity} and can be used once.

If you didn't request this password reset, please ignore this email. Your password will remain unchanged.

Best regards,
The {BRAND} Team
"""
    return EmailMessage(to=to, subject=subject, html_body=html_body, text_body=text_body)
