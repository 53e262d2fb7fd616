"""Channel senders for campaign broadcasts.

SMS and WhatsApp go through the Twilio Messages REST API; email goes over
SMTP. Senders are synchronous because they run inside Celery workers.
"""

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

import httpx

from app.core.config import settings
from app.models.communication import CommunicationType

logger = logging.getLogger(__name__)


class MessagingError(Exception):
    """A message could not be handed to its channel."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class Sender(Protocol):
    def send(self, to: str, body: str, subject: str | None = None) -> str | None:
        """Send one message; returns the provider's message id when it has one."""
        ...


class TwilioSender:
    """SMS or WhatsApp through Twilio."""

    DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)

    def __init__(
        self,
        whatsapp: bool = False,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        client: httpx.Client | None = None,
    ):
        self.whatsapp = whatsapp
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        default_from = settings.twilio_whatsapp_from if whatsapp else settings.twilio_from_number
        self.from_number = from_number or default_from
        self._client = client

    def _address(self, number: str) -> str:
        if self.whatsapp and not number.startswith("whatsapp:"):
            return f"whatsapp:{number}"
        return number

    def send(self, to: str, body: str, subject: str | None = None) -> str | None:
        if not (self.account_sid and self.auth_token and self.from_number):
            raise MessagingError("Twilio is not configured")

        url = f"{settings.twilio_api_base}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": self._address(to), "From": self._address(self.from_number), "Body": body}
        client = self._client or httpx.Client(timeout=self.DEFAULT_TIMEOUT)
        try:
            response = client.post(url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as e:
            raise MessagingError(f"Twilio request failed: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise MessagingError(f"Twilio rejected message: {detail}", status_code=response.status_code)

        sid = response.json().get("sid")
        logger.debug(f"Twilio accepted message {sid}")
        return sid


class EmailSender:
    """Email over SMTP with STARTTLS."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        from_address: str | None = None,
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username or settings.smtp_username
        self.password = password or settings.smtp_password
        self.from_address = from_address or settings.smtp_from or self.username

    def send(self, to: str, body: str, subject: str | None = None) -> str | None:
        if not self.host:
            raise MessagingError("SMTP is not configured")

        msg = EmailMessage()
        msg["Subject"] = subject or "Message from the observer program"
        msg["From"] = self.from_address
        msg["To"] = to
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MessagingError(f"SMTP delivery failed: {e}") from e
        return None


def get_sender(channel: str | CommunicationType) -> Sender:
    """Sender for a campaign channel."""
    value = getattr(channel, "value", channel)
    if value == CommunicationType.SMS.value:
        return TwilioSender()
    if value == CommunicationType.WHATSAPP.value:
        return TwilioSender(whatsapp=True)
    if value == CommunicationType.EMAIL.value:
        return EmailSender()
    raise MessagingError(f"Unsupported channel: {value}")
