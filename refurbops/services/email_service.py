import asyncio
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Protocol
import logging

from refurbops.config import Settings

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    """Outbound alert channel: returns True only on confirmed delivery."""

    async def send(self, to: str, subject: str, body: str) -> bool:
        ...


class EmailService:
    """Email service for sending operational alerts via SMTP."""

    def __init__(
        self,
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "Comprint Operations",
        timeout: int = 10,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email over SMTP with STARTTLS.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body of the email
            text_content: Plain text body (optional fallback)

        Returns:
            True if the server accepted the message, False otherwise
        """
        if not self.configured:
            logger.warning(f"Email not configured. SMTP credentials missing; not sent to {to_email}: {subject}")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.from_email, to_email, msg.as_string())

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except smtplib.SMTPAuthenticationError:
            logger.error("SMTP Authentication failed. Check email credentials.")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {to_email}: {e}")
            return False
        except TimeoutError:
            logger.error(f"SMTP connection timed out sending to {to_email}")
            return False
        except OSError as e:
            logger.error(f"Network error sending email to {to_email}: {e}")
            return False


class SmtpNotificationChannel:
    """Adapts the blocking EmailService to the async channel interface."""

    def __init__(self, email_service: EmailService):
        self.email_service = email_service

    async def send(self, to: str, subject: str, body: str) -> bool:
        return await asyncio.to_thread(self.email_service.send_email, to, subject, body)


def get_email_service(settings: Settings) -> EmailService:
    """Get configured email service instance."""
    return EmailService(
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        from_email=settings.SMTP_FROM_EMAIL,
        from_name=settings.SMTP_FROM_NAME,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )


def build_notification_channel(settings: Settings) -> NotificationChannel:
    if not settings.email_configured:
        logger.warning("SMTP_USER/SMTP_PASSWORD not set; alerts will not be delivered until configured")
    return SmtpNotificationChannel(get_email_service(settings))
