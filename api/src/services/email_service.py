"""
Outbound email for account verification codes.

Sends through SMTP with aiosmtplib. When SMTP is disabled the message is not
sent; in development the code is logged so local sign-up can be completed.
"""

from email.message import EmailMessage

import aiosmtplib
import structlog

from api.src.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class EmailService:
    """Sends verification emails."""

    def __init__(self, settings: Settings = None):
        self.settings = settings or get_settings()

    def build_otp_message(self, to_email: str, name: str, otp: str) -> EmailMessage:
        minutes = self.settings.otp_expire_minutes
        msg = EmailMessage()
        msg["Subject"] = "Your verification code"
        msg["From"] = self.settings.smtp_from_address
        msg["To"] = to_email
        msg.set_content(
            f"Hi {name},\n\n"
            f"Your verification code is {otp}.\n"
            f"It expires in {minutes} minutes.\n\n"
            "If you did not request this, you can ignore this email.\n"
        )
        msg.add_alternative(
            f"<p>Hi {name},</p>"
            f"<p>Your verification code is <strong style=\"font-size:20px\">{otp}</strong>.</p>"
            f"<p>It expires in {minutes} minutes.</p>"
            "<p>If you did not request this, you can ignore this email.</p>",
            subtype="html",
        )
        return msg

    async def send_otp_email(self, to_email: str, name: str, otp: str) -> bool:
        """
        Send a verification code.

        Args:
            to_email: Recipient address
            name: Recipient display name
            otp: Verification code

        Returns:
            True if the message was handed to the SMTP server (or SMTP is disabled)
        """
        if not self.settings.smtp_enabled:
            if self.settings.is_development:
                logger.info("otp_email_skipped", email=to_email, otp=otp)
            else:
                logger.warning("otp_email_skipped_smtp_disabled", email=to_email)
            return True

        msg = self.build_otp_message(to_email, name, otp)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                start_tls=self.settings.smtp_start_tls,
                username=self.settings.smtp_username,
                password=self.settings.smtp_password,
                timeout=self.settings.smtp_timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("otp_email_failed", email=to_email, error=str(e))
            return False

        logger.info("otp_email_sent", email=to_email)
        return True
