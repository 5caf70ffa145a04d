"""
Mail models shared by the message builder and the transport layer.

Models:
  MailConfig       — credentials resolved from the environment for one request
  EtherealAccount  — disposable Ethereal mailbox provisioned on demand
  MailAttachment   — an inline attachment referenced from the HTML body by CID
  OutboundMessage  — the fully-built notification, ready to hand to a transport
  SendInfo         — what the SMTP server reported after accepting the message
"""

from typing import Optional

from pydantic import BaseModel


class MailConfig(BaseModel):
    """Credentials and service preset for the configured transport."""

    user: str
    password: Optional[str] = None
    service: str = "gmail"
    timeout: float = 60.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.user and self.password)


class EtherealAccount(BaseModel):
    """Disposable mailbox returned by the Ethereal account API."""

    user: str
    password: str
    web_url: str = "https://ethereal.email"


class MailAttachment(BaseModel):
    """A single attachment, still base64-encoded as received from the client."""

    filename: str
    content: str            # base64 text, passed through verbatim
    encoding: str = "base64"
    content_id: str
    content_type: str = "application/octet-stream"


class OutboundMessage(BaseModel):
    sender: str
    sender_name: Optional[str] = None
    to: str
    subject: str
    html: str
    attachments: list[MailAttachment] = []


class SendInfo(BaseModel):
    message_id: Optional[str] = None
    response: str = ""
    accepted: list[str] = []
    rejected: list[str] = []
