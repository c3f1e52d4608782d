"""Outgoing email for password resets."""

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from zenyukti.core.config import settings

logger = logging.getLogger(__name__)


class MailSession:
    """An open session with an SMTP service."""

    def __init__(self, host: str, port: int, username: Optional[str] = None,
                 password: Optional[str] = None, use_tls: bool = True) -> None:
        self._conn = smtplib.SMTP(host=host, port=port, timeout=15)
        if use_tls:
            self._conn.starttls()
        if username:
            self._conn.login(username, password or "")

    def send_message(self, message: EmailMessage) -> None:
        self._conn.send_message(message)

    def close(self) -> None:
        try:
            self._conn.quit()
        except smtplib.SMTPException:
            # Server already dropped the connection
            self._conn.close()


class Mailer:
    """Builds account emails and hands them to SMTP, or to the log in development."""

    def reset_link(self, ticket: str) -> str:
        return f"{settings.FRONTEND_URL.rstrip('/')}/reset-password/{ticket}"

    def send_password_reset(self, to_address: str, ticket: str) -> None:
        link = self.reset_link(ticket)

        if not settings.SMTP_HOST:
            logger.info(f"SMTP_HOST not set; password reset link for {to_address}: {link}")
            return

        message = EmailMessage()
        message["Subject"] = "Reset your ZenYukti password"
        message["From"] = settings.MAIL_FROM
        message["To"] = to_address
        message.set_content(
            "We received a request to reset your password.\n\n"
            f"Open this link within {settings.RESET_TOKEN_EXPIRE_MINUTES} minutes "
            f"to choose a new one:\n\n{link}\n\n"
            "If you did not ask for this, you can ignore this email."
        )

        # Runs as a background task after the response is sent, so failures
        # are logged rather than surfaced to the caller
        try:
            session = MailSession(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                settings.SMTP_USERNAME,
                settings.SMTP_PASSWORD,
                settings.SMTP_USE_TLS,
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Could not connect to SMTP server: {e}")
            return

        try:
            session.send_message(message)
            logger.info(f"Password reset email sent to {to_address}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send password reset email to {to_address}: {e}")
        finally:
            session.close()


mailer = Mailer()
