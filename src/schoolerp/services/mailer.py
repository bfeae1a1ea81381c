"""
Outgoing mail.

Only the password-reset OTP message is sent from this service.
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog
from fastapi.concurrency import run_in_threadpool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from schoolerp.config import Settings

logger = structlog.get_logger()


class Mailer:
    """SMTP mail sender."""

    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.from_email = settings.email_from
        self._configured = settings.mail_configured

    @property
    def is_configured(self) -> bool:
        return self._configured

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((smtplib.SMTPException, OSError)),
        reraise=True,
    )
    def _deliver(self, message: MIMEMultipart, to_email: str) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=15) as server:
            if self.use_tls:
                server.starttls()
            server.login(self.user, self.password)
            server.sendmail(self.from_email, [to_email], message.as_string())

    async def send_password_reset_otp(
        self,
        to: str,
        otp: str,
        expires_in_minutes: int,
    ) -> bool:
        """
        Send the password-reset OTP.

        Args:
            to: Recipient email
            otp: Six-digit code
            expires_in_minutes: Code lifetime shown to the user

        Returns:
            True if the message was handed to the SMTP server
        """
        if not self.is_configured:
            return False

        message = MIMEMultipart("alternative")
        message["Subject"] = "School ERP Password Reset OTP"
        message["From"] = self.from_email
        message["To"] = to
        message.attach(MIMEText(
            f"Your password reset OTP is {otp}. "
            f"It expires in {expires_in_minutes} minutes.",
            "plain",
        ))
        message.attach(MIMEText(
            '<div style="font-family:Arial,sans-serif;line-height:1.6;">'
            "<h2>Password Reset OTP</h2>"
            "<p>Your OTP is:</p>"
            f'<p style="font-size:24px;font-weight:700;letter-spacing:4px;">{otp}</p>'
            f"<p>This OTP will expire in {expires_in_minutes} minutes.</p>"
            "<p>If you did not request this, please ignore this email.</p>"
            "</div>",
            "html",
        ))

        try:
            await run_in_threadpool(self._deliver, message, to)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Password reset email failed", error=str(e))
            return False

        logger.info("Password reset email sent")
        return True
