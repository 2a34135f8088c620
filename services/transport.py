"""
Outbound transports for review requests.

Each transport takes an OutboundMessage plus an idempotency key and either
returns the provider's message id or raises TransportError. Nothing here
retries: a failed attempt is recorded by the caller and left for an operator.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple
import requests
from flask_mail import Mail, Message
from logging_config import get_logger
from services.enums import Channel

logger = get_logger(__name__)


class TransportError(Exception):
    """Raised when a provider rejects or fails to accept a message"""
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


@dataclass
class OutboundMessage:
    """A single rendered message for one recipient"""
    channel: str
    to: str
    body: str
    subject: Optional[str] = None
    template_id: Optional[int] = None
    tags: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransportResult:
    provider_id: Optional[str]


class EmailTransport:
    """Sends email through Flask-Mail"""

    IDEMPOTENCY_HEADER = 'X-Idempotency-Key'

    def __init__(self, mail_client: Mail, default_sender: Optional[str] = None):
        self.mail_client = mail_client
        self.default_sender = default_sender

    def send(self, message: OutboundMessage, idempotency_key: str) -> TransportResult:
        if not message.to:
            raise TransportError("Recipient has no email address")

        msg = Message(
            subject=message.subject or '',
            recipients=[message.to],
            body=message.body,
            sender=self.default_sender,
            extra_headers={self.IDEMPOTENCY_HEADER: idempotency_key}
        )

        try:
            self.mail_client.send(msg)
        except Exception as e:
            logger.error("Email transport failed", error=str(e), idempotency_key=idempotency_key)
            raise TransportError(f"Failed to send email: {e}") from e

        logger.info("Email sent", idempotency_key=idempotency_key, template_id=message.template_id)
        return TransportResult(provider_id=msg.msgId)


class OpenPhoneSmsTransport:
    """Sends SMS through the OpenPhone messages API"""

    def __init__(self,
                 api_key: Optional[str],
                 from_number_id: Optional[str],
                 base_url: str = "https://api.openphone.com/v1",
                 timeout: Tuple[int, int] = (5, 30),
                 http: Optional[requests.Session] = None):
        self.api_key = api_key
        self.from_number_id = from_number_id
        self.base_url = base_url
        self.timeout = timeout
        self.http = http or requests.Session()

    def send(self, message: OutboundMessage, idempotency_key: str) -> TransportResult:
        if not self.api_key or not self.from_number_id:
            raise TransportError("OpenPhone is not configured")
        if not message.to:
            raise TransportError("Recipient has no phone number")

        headers = {
            "Authorization": self.api_key,
            "Idempotency-Key": idempotency_key,
        }
        payload = {
            "from": self.from_number_id,
            "to": [message.to],
            "content": message.body,
        }

        try:
            response = self.http.post(
                f"{self.base_url}/messages",
                headers=headers,
                json=payload,
                timeout=self.timeout,
                verify=True
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            logger.error("OpenPhone request timeout", to_number=message.to[-4:], error=str(e))
            raise TransportError("Request timeout") from e
        except requests.exceptions.RequestException as e:
            status_code = getattr(e.response, 'status_code', None) if e.response is not None else None
            response_body = e.response.text if e.response is not None else None
            logger.error(
                "OpenPhone request failed",
                to_number=message.to[-4:],
                status_code=status_code,
                response_body=response_body[:500] if response_body else None
            )
            raise TransportError(
                f"OpenPhone API request failed: {e}",
                status_code=status_code,
                response_body=response_body
            ) from e

        data = response.json().get('data') or {}
        logger.info("SMS sent", to_number=message.to[-4:], idempotency_key=idempotency_key)
        return TransportResult(provider_id=data.get('id'))


class ChannelTransport:
    """Routes a message to the transport for its channel"""

    def __init__(self, email_transport, sms_transport):
        self._transports = {
            Channel.EMAIL.value: email_transport,
            Channel.SMS.value: sms_transport,
        }

    def send(self, message: OutboundMessage, idempotency_key: str) -> TransportResult:
        transport = self._transports.get(message.channel)
        if transport is None:
            raise TransportError(f"Unsupported channel: {message.channel}")
        return transport.send(message, idempotency_key)
