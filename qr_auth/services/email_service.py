"""
Email Service

Delivers registration OTP codes and password reset links over SMTP
using Jinja2 templates.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from qr_auth.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"


class EmailService:
    """Service for sending emails with template support"""

    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        """Initialize email service with Jinja2 template engine"""
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_password
        self.smtp_from = settings.smtp_from
        self.smtp_use_tls = settings.smtp_use_tls
        self.smtp_timeout = settings.smtp_timeout_seconds

    def _send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """
        Send an email using SMTP.

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.smtp_from
        msg["To"] = to_email

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.smtp_timeout) as server:
                if self.smtp_use_tls:
                    server.starttls()
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

        logger.info(f"Email sent to {to_email}: {subject}")
        return True

    def send_otp(self, to_email: str, otp_code: str) -> bool:
        """
        Send the registration OTP email.

        The plain-text part is always included; if the HTML template cannot
        be rendered the message falls back to the plain-text body.
        """
        expiry_minutes = max(1, settings.registration_data_expiry_seconds // 60)

        text_body = (
            f"Your {settings.app_name} verification code is: {otp_code}\n\n"
            f"This code expires in {expiry_minutes} minutes.\n"
            "If you did not start a registration, you can ignore this email."
        )

        try:
            template = self.env.get_template("otp.html")
            html_body = template.render(
                otp_code=otp_code,
                expiry_minutes=expiry_minutes,
                app_name=settings.app_name,
            )
        except TemplateError as e:
            logger.warning(f"OTP template render failed, sending plain text: {e}")
            html_body = f"<html><body><pre>{text_body}</pre></body></html>"

        return self._send_email(
            to_email=to_email,
            subject=f"Your verification code - {settings.app_name}",
            html_body=html_body,
            text_body=text_body,
        )

    def send_password_reset(self, to_email: str, reset_link: str) -> bool:
        """Send the password reset link. Returns False when delivery fails."""
        expiry_minutes = max(1, settings.password_reset_expiry_seconds // 60)

        text_body = (
            f"You asked to reset your {settings.app_name} password.\n\n"
            f"Open this link to choose a new one:\n{reset_link}\n\n"
            f"The link expires in {expiry_minutes} minutes. "
            "If you did not ask for a reset, you can ignore this email."
        )

        try:
            template = self.env.get_template("password_reset.html")
            html_body = template.render(
                reset_link=reset_link,
                expiry_minutes=expiry_minutes,
                app_name=settings.app_name,
            )
        except TemplateError as e:
            logger.warning(f"Password reset template render failed, sending plain text: {e}")
            html_body = f"<html><body><pre>{text_body}</pre></body></html>"

        return self._send_email(
            to_email=to_email,
            subject=f"Reset your password - {settings.app_name}",
            html_body=html_body,
            text_body=text_body,
        )


# Global instance
email_service = EmailService()


def get_email_service() -> EmailService:
    """FastAPI dependency for EmailService."""
    return email_service
