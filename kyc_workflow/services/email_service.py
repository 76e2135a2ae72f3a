"""
Email collaborator.

``EmailService.send`` renders one of the fixed templates and hands the
message to the configured provider. Delivery is best effort: failures are
logged and reported in the returned ``EmailResult``, never raised, so a
KYC decision is never rolled back because a mail server is down.
"""
import asyncio
import html
import logging
import smtplib
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Dict, List, Optional

from kyc_workflow.core import settings

logger = logging.getLogger(__name__)


class EmailProvider(str, Enum):
    MOCK = "mock"
    SMTP = "smtp"


class TemplateKind(str, Enum):
    ADMIN_NEW_REGISTRATION = "admin_new_registration"
    KYC_VERIFIED = "kyc_verified"
    KYC_REJECTED = "kyc_rejected"
    KYC_HOLD = "kyc_hold"
    KYC_PENDING = "kyc_pending"
    ACCOUNT_DELETED = "account_deleted"
    ROLE_CHANGED = "role_changed"


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html_body: str
    text_body: Optional[str] = None
    from_address: str = field(default_factory=lambda: settings.EMAIL_FROM_ADDRESS)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    provider: str = EmailProvider.MOCK.value
    error: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()


# subject, text body; both formatted with the send() context
TEMPLATES: Dict[TemplateKind, tuple] = {
    TemplateKind.ADMIN_NEW_REGISTRATION: (
        "New User Registration - {first_name} {last_name}",
        "A new user has registered and is waiting for KYC review.\n\n"
        "Name: {first_name} {last_name}\nEmail: {email}\nPhone: {phone}\n"
        "Registered at: {registered_at}",
    ),
    TemplateKind.KYC_VERIFIED: (
        "Account Verified - Welcome to the KYC Platform",
        "Hello {first_name},\n\nYour account has been verified. You can now sign in.",
    ),
    TemplateKind.KYC_REJECTED: (
        "Account Verification Update",
        "Hello {first_name},\n\nWe could not verify your account.\n\nReason: {reason}",
    ),
    TemplateKind.KYC_HOLD: (
        "Account Verification On Hold",
        "Hello {first_name},\n\nYour verification has been put on hold.\n\nReason: {reason}",
    ),
    TemplateKind.KYC_PENDING: (
        "Account Verification Pending",
        "Hello {first_name},\n\nYour verification is pending review. We will email you once it is complete.",
    ),
    TemplateKind.ACCOUNT_DELETED: (
        "Account Deletion Notification",
        "Hello {first_name},\n\nYour account has been deleted by an administrator.\n\nReason: {reason}",
    ),
    TemplateKind.ROLE_CHANGED: (
        "Account Role Updated to {new_role}",
        "Hello {first_name},\n\nYour role changed from {old_role} to {new_role} by {changed_by}.",
    ),
}


class _SafeContext(dict):
    def __missing__(self, key):
        return "N/A"


def render_template(kind: TemplateKind, context: Dict[str, Any]) -> tuple:
    subject_template, text_template = TEMPLATES[TemplateKind(kind)]
    raw = {k: v for k, v in (context or {}).items() if v is not None}
    values = _SafeContext(raw)
    subject = subject_template.format_map(values)
    text = text_template.format_map(values)
    # user supplied names and reasons must not become markup
    escaped = _SafeContext({k: html.escape(str(v)) for k, v in raw.items()})
    html_text = text_template.format_map(escaped)
    html_body = "<html><body>" + "".join(f"<p>{line}</p>" for line in html_text.split("\n") if line) + "</body></html>"
    return subject, text, html_body


class MockEmailProvider:
    """Logs emails and keeps them in memory."""

    def __init__(self):
        self._sent_emails: List[Dict[str, Any]] = []

    async def send(self, message: EmailMessage) -> EmailResult:
        message_id = f"mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"[MOCK EMAIL] To: {', '.join(message.to)} | Subject: {message.subject} | ID: {message_id}")
        record = message.to_dict()
        record["message_id"] = message_id
        self._sent_emails.append(record)
        return EmailResult(success=True, message_id=message_id, provider=EmailProvider.MOCK.value)

    def get_sent_emails(self) -> List[Dict[str, Any]]:
        return self._sent_emails.copy()

    def clear_sent_emails(self):
        self._sent_emails.clear()


class SmtpEmailProvider:
    def __init__(self, host: str, port: int, user: Optional[str], password: Optional[str], use_tls: bool = True):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls

    def _deliver(self, message: EmailMessage) -> None:
        msg = MIMEMultipart("alternative")
        msg["From"] = message.from_address
        msg["To"] = ", ".join(message.to)
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.text_body or "", "plain"))
        msg.attach(MIMEText(message.html_body, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def send(self, message: EmailMessage) -> EmailResult:
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._deliver, message)
        logger.info(f"Email sent to {', '.join(message.to)}")
        return EmailResult(success=True, message_id=uuid.uuid4().hex, provider=EmailProvider.SMTP.value)


def build_provider(provider: Optional[str] = None):
    provider_type = EmailProvider((provider or settings.EMAIL_PROVIDER).lower())
    if provider_type == EmailProvider.SMTP:
        return SmtpEmailProvider(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )
    return MockEmailProvider()


class EmailService:
    """
    Usage:
        result = await email_service.send("user@example.com", "kyc_verified", {"first_name": "Asha"})
    """

    def __init__(self, provider=None):
        self._provider = provider

    @property
    def provider(self):
        if self._provider is None:
            self._provider = build_provider()
        return self._provider

    def use_provider(self, provider) -> None:
        self._provider = provider

    async def send(self, to: str, template_kind: str, context: Optional[Dict[str, Any]] = None) -> EmailResult:
        try:
            subject, text, html_body = render_template(TemplateKind(template_kind), context or {})
            message = EmailMessage(to=[to], subject=subject, html_body=html_body, text_body=text)
            return await self.provider.send(message)
        except Exception as e:
            logger.error(f"Failed to send {template_kind} email to {to}: {e}")
            return EmailResult(success=False, error=str(e), provider=settings.EMAIL_PROVIDER)


email_service = EmailService()
