# Submitter confirmation and admin alert emails over SMTP, failures reported as False
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import Optional

import structlog

import config

logger = structlog.get_logger()

SUBMITTER_CONFIRMATION = "submitter-confirmation"
ADMIN_ALERT = "admin-alert"


@dataclass
class EmailContent:
    subject: str
    text: str
    html: str


def submitter_confirmation(data: dict) -> EmailContent:
    name = data.get("name", "")
    return EmailContent(
        subject="Survey Submission Confirmation",
        text=(
            f"Dear {name},\n\n"
            "Thank you for submitting your survey. We have received your response "
            "and will review it shortly.\n\n"
            "Best regards,\nThe Survey Team"
        ),
        html=(
            "<h2>Survey Submission Confirmation</h2>\n"
            f"<p>Dear {escape(name)},</p>\n"
            "<p>Thank you for submitting your survey. We have received your response "
            "and will review it shortly.</p>\n"
            "<p>Best regards,<br>The Survey Team</p>"
        ),
    )


def admin_alert(data: dict) -> EmailContent:
    name, email = data.get("name", ""), data.get("email", "")
    phone, nationality = data.get("phone", ""), data.get("nationality", "")
    return EmailContent(
        subject="New Survey Submission",
        text=(
            f"New survey submission received from {name}.\n\n"
            f"Details:\nEmail: {email}\nPhone: {phone}\nNationality: {nationality}"
        ),
        html=(
            "<h2>New Survey Submission</h2>\n"
            f"<p>New survey submission received from {escape(name)}.</p>\n"
            "<h3>Details:</h3>\n<ul>\n"
            f"  <li>Email: {escape(email)}</li>\n"
            f"  <li>Phone: {escape(phone)}</li>\n"
            f"  <li>Nationality: {escape(nationality)}</li>\n"
            "</ul>"
        ),
    )


TEMPLATES = {
    SUBMITTER_CONFIRMATION: submitter_confirmation,
    ADMIN_ALERT: admin_alert,
}


def render(kind: str, data: dict) -> EmailContent:
    try:
        template = TEMPLATES[kind]
    except KeyError:
        raise ValueError(f"Unknown template: {kind}")
    return template(data)


class Mailer:
    """SMTP sender. One connection per message."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 user: Optional[str] = None, password: Optional[str] = None,
                 from_address: Optional[str] = None, use_ssl: Optional[bool] = None):
        self.host = host or config.SMTP_HOST
        self.port = port or config.SMTP_PORT
        self.user = config.SMTP_USER if user is None else user
        self.password = config.SMTP_PASSWORD if password is None else password
        self.from_address = from_address or config.SMTP_FROM_ADDRESS
        self.use_ssl = config.SMTP_USE_SSL if use_ssl is None else use_ssl

    def build_message(self, recipient: str, content: EmailContent) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = recipient
        msg["Subject"] = content.subject
        msg.set_content(content.text)
        msg.add_alternative(content.html, subtype="html")
        return msg

    def deliver(self, msg: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=30)
        with server:
            if not self.use_ssl:
                server.starttls(context=context)
            if self.user:
                server.login(self.user, self.password)
            server.send_message(msg)

    def send(self, recipient: str, kind: str, data: dict) -> bool:
        """Render ``kind`` for ``data`` and send it to ``recipient``.

        Returns:
            bool: True if the relay accepted the message.
        """
        if not recipient:
            logger.warning("email_no_recipient", kind=kind)
            return False
        content = render(kind, data)
        try:
            self.deliver(self.build_message(recipient, content))
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error("email_send_failed", kind=kind, recipient=recipient, error=str(e))
            return False
        logger.info("email_sent", kind=kind, recipient=recipient)
        return True


def get_mailer() -> Mailer:
    return Mailer()
