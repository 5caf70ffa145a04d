"""
Mail transport service.

Wraps aiosmtplib behind a narrow interface so the router never talks SMTP
directly:

  SmtpTransport          — sends an OutboundMessage over SMTP
  select_transport       — picks the configured service or a disposable
                           Ethereal mailbox, based only on MailConfig
  create_test_account    — provisions an Ethereal mailbox (httpx)
  get_test_message_url   — preview link for a message sent through Ethereal

Well-known services
-------------------
SMTP_SERVICE names a preset (host, port, implicit TLS). Lookup ignores case,
spaces, dashes and underscores, so "Outlook365" and "outlook 365" resolve to
the same preset. Adding a provider only means adding a row to SERVICE_PRESETS.

Errors
------
Every failure raised from this module is a MailTransportError carrying a
``code``; authentication failures use ``EAUTH`` so the router can log a
credentials hint.
"""

import logging
import re
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import Awaitable, Callable, Optional, Protocol

import aiosmtplib
import httpx

from visitor.models.mail import EtherealAccount, MailConfig, OutboundMessage, SendInfo
from visitor.services.data_uri import AttachmentParseError, decode_base64_payload

logger = logging.getLogger(__name__)

AUTH_ERROR_CODE = "EAUTH"

DEV_SMTP_HOST = "smtp.ethereal.email"
DEV_SMTP_PORT = 587

ETHEREAL_API_URL = "https://api.nodemailer.com/user"
ETHEREAL_WEB_URL = "https://ethereal.email"
_ACCOUNT_REQUESTOR = "visitor-relay"
_ACCOUNT_REQUESTOR_VERSION = "0.1.0"
_ACCOUNT_TIMEOUT = 30.0


@dataclass(frozen=True)
class ServicePreset:
    host: str
    port: int
    secure: bool


SERVICE_PRESETS: dict[str, ServicePreset] = {
    "gmail": ServicePreset("smtp.gmail.com", 465, True),
    "googlemail": ServicePreset("smtp.gmail.com", 465, True),
    "outlook365": ServicePreset("smtp.office365.com", 587, False),
    "outlook": ServicePreset("smtp-mail.outlook.com", 587, False),
    "hotmail": ServicePreset("smtp-mail.outlook.com", 587, False),
    "yahoo": ServicePreset("smtp.mail.yahoo.com", 465, True),
    "icloud": ServicePreset("smtp.mail.me.com", 587, False),
    "zoho": ServicePreset("smtp.zoho.com", 465, True),
    "sendgrid": ServicePreset("smtp.sendgrid.net", 587, False),
    "mailgun": ServicePreset("smtp.mailgun.org", 465, True),
    "postmark": ServicePreset("smtp.postmarkapp.com", 2525, False),
    "ses": ServicePreset("email-smtp.us-east-1.amazonaws.com", 465, True),
    "ethereal": ServicePreset(DEV_SMTP_HOST, DEV_SMTP_PORT, False),
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MailTransportError(Exception):
    """Base class for transport failures. ``code`` mirrors SMTP client codes."""

    code = "EMAIL"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class TransportProvisionError(MailTransportError):
    """The transport could not be built (unknown service, no test account)."""

    code = "EPROVISION"


class MailAuthenticationError(MailTransportError):
    code = AUTH_ERROR_CODE


class MailDeliveryError(MailTransportError):
    code = "EDELIVERY"


# ---------------------------------------------------------------------------
# Service presets
# ---------------------------------------------------------------------------

def _normalize_service_name(name: str) -> str:
    return re.sub(r"[\s\-_]", "", name.lower())


def resolve_service(name: str) -> ServicePreset:
    """Return the preset for a well-known service name."""
    preset = SERVICE_PRESETS.get(_normalize_service_name(name))
    if preset is None:
        raise TransportProvisionError(
            f"Unknown mail service {name!r}. "
            f"Supported services: {sorted(SERVICE_PRESETS)}",
            code="ECONFIG",
        )
    return preset


# ---------------------------------------------------------------------------
# MIME construction
# ---------------------------------------------------------------------------

def _decode_attachment(content: str) -> bytes:
    try:
        return decode_base64_payload(content)
    except AttachmentParseError as e:
        raise MailDeliveryError(f"Attachment is not valid base64: {e}", code="EMESSAGE") from e


def to_email_message(message: OutboundMessage) -> EmailMessage:
    """Convert an OutboundMessage into a multipart/related EmailMessage."""
    msg = EmailMessage()
    msg["From"] = formataddr((message.sender_name or "", message.sender))
    msg["To"] = message.to
    msg["Subject"] = message.subject
    msg["Date"] = formatdate(localtime=True)
    _, _, domain = message.sender.rpartition("@")
    msg["Message-ID"] = make_msgid(domain=domain or None)
    msg.set_content(message.html, subtype="html")

    for attachment in message.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        msg.add_related(
            _decode_attachment(attachment.content),
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            cid=f"<{attachment.content_id}>",
            filename=attachment.filename,
            disposition="inline",
        )
    return msg


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------

class MailTransport(Protocol):
    async def send(self, message: OutboundMessage) -> SendInfo:
        ...


class SmtpTransport:
    """
    SMTP transport backed by aiosmtplib.

    ``secure=True`` means implicit TLS (port 465 style); otherwise the
    connection starts in plaintext and upgrades with STARTTLS when the server
    offers it.
    """

    def __init__(
        self,
        host: str,
        port: int,
        secure: bool,
        user: str,
        password: str,
        timeout: float = 60.0,
        service: Optional[str] = None,
    ):
        self.host = host
        self.port = port
        self.secure = secure
        self.user = user
        self.password = password
        self.timeout = timeout
        self.service = service

    def __repr__(self) -> str:
        return (
            f"SmtpTransport(host={self.host!r}, port={self.port}, "
            f"secure={self.secure}, user={self.user!r}, service={self.service!r})"
        )

    async def send(self, message: OutboundMessage) -> SendInfo:
        email_message = to_email_message(message)
        try:
            errors, response = await aiosmtplib.send(
                email_message,
                hostname=self.host,
                port=self.port,
                username=self.user,
                password=self.password,
                use_tls=self.secure,
                start_tls=False if self.secure else None,
                timeout=self.timeout,
            )
        except aiosmtplib.SMTPAuthenticationError as e:
            raise MailAuthenticationError(f"Invalid login: {e.code} {e.message}") from e
        except (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPServerDisconnected,
            aiosmtplib.SMTPTimeoutError,
        ) as e:
            raise MailDeliveryError(
                f"Connection to {self.host}:{self.port} failed: {e}", code="ECONNECTION"
            ) from e
        except aiosmtplib.SMTPException as e:
            raise MailDeliveryError(str(e)) from e
        except OSError as e:
            raise MailDeliveryError(str(e), code="ECONNECTION") from e

        return SendInfo(
            message_id=email_message["Message-ID"],
            response=response,
            accepted=[] if message.to in errors else [message.to],
            rejected=sorted(errors),
        )


TransportFactory = Callable[..., MailTransport]
AccountProvisioner = Callable[[], Awaitable[EtherealAccount]]


@dataclass
class TransportSelection:
    """The transport chosen for one request, and the address it sends as."""

    transport: MailTransport
    sender: str
    test_account: Optional[EtherealAccount] = None

    @property
    def using_test_account(self) -> bool:
        return self.test_account is not None


# ---------------------------------------------------------------------------
# Ethereal test accounts
# ---------------------------------------------------------------------------

async def create_test_account(
    api_url: str = ETHEREAL_API_URL,
    client: Optional[httpx.AsyncClient] = None,
) -> EtherealAccount:
    """
    Provision a disposable Ethereal mailbox.

    Uses the same account API as nodemailer's createTestAccount. Raises
    TransportProvisionError if the API is unreachable or refuses.
    """
    payload = {"requestor": _ACCOUNT_REQUESTOR, "version": _ACCOUNT_REQUESTOR_VERSION}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=_ACCOUNT_TIMEOUT) as own_client:
                response = await own_client.post(api_url, json=payload)
        else:
            response = await client.post(api_url, json=payload)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise TransportProvisionError(f"Failed to create Ethereal test account: {e}") from e

    if data.get("status") != "success" or not data.get("user") or not data.get("pass"):
        raise TransportProvisionError(
            f"Failed to create Ethereal test account: {data.get('error') or 'unexpected response'}"
        )

    return EtherealAccount(
        user=data["user"],
        password=data["pass"],
        web_url=data.get("web") or ETHEREAL_WEB_URL,
    )


_RESPONSE_PROPS_RE = re.compile(r"\[([^\]]+)\]$")
_PROP_RE = re.compile(r"\b([A-Z0-9]+)=(\S+)")


def get_test_message_url(info: SendInfo, web_url: str = ETHEREAL_WEB_URL) -> Optional[str]:
    """
    Return the Ethereal preview URL for a sent message.

    Ethereal appends ``[STATUS=new MSGID=...]`` to its final SMTP response;
    without both properties there is nothing to link to and None is returned.
    """
    if not info or not info.response:
        return None

    match = _RESPONSE_PROPS_RE.search(info.response.strip())
    if not match:
        return None

    props = dict(_PROP_RE.findall(match.group(1)))
    if "STATUS" in props and "MSGID" in props:
        return f"{web_url.rstrip('/')}/message/{props['MSGID']}"
    return None


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

async def select_transport(
    config: MailConfig,
    create_account: AccountProvisioner = create_test_account,
    transport_factory: TransportFactory = SmtpTransport,
) -> TransportSelection:
    """
    Choose the transport for one request.

    Configured credentials → the named service's preset.
    No secret → a fresh Ethereal account on the fixed development host,
    plaintext with opportunistic STARTTLS. The account is never reused.

    The sender address is ``config.user`` in both cases.
    """
    if config.has_credentials:
        preset = resolve_service(config.service)
        transport = transport_factory(
            host=preset.host,
            port=preset.port,
            secure=preset.secure,
            user=config.user,
            password=config.password,
            timeout=config.timeout,
            service=config.service,
        )
        logger.info(f"Using SMTP transport with user: {config.user}")
        return TransportSelection(transport=transport, sender=config.user)

    logger.warning(
        "No SMTP credentials found in env. "
        "Falling back to Ethereal test account (dev only)."
    )
    account = await create_account()
    transport = transport_factory(
        host=DEV_SMTP_HOST,
        port=DEV_SMTP_PORT,
        secure=False,
        user=account.user,
        password=account.password,
        timeout=config.timeout,
        service=None,
    )
    logger.info("Ethereal account created. Preview messages at the URL logged after sending.")
    return TransportSelection(transport=transport, sender=config.user, test_account=account)
