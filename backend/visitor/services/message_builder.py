"""
Builds the notification email for a visitor capture.

The HTML body carries the capture time, the shared coordinates and the photo.
When the photo arrives as a base64 data URI it is moved into an inline
attachment and the ``<img>`` tag points at it by content id.
"""

import html
import logging
import re
from typing import Optional
from uuid import uuid4

from visitor.models.mail import MailAttachment, OutboundMessage
from visitor.models.submission import Submission
from visitor.services.data_uri import AttachmentParseError, parse_data_uri

logger = logging.getLogger(__name__)

NOT_SHARED = "Not shared"
CID_DOMAIN = "visitor-relay"

_IMG_SRC_RE = re.compile(r'<img[^>]*src="[^"]+"')

_HTML_TEMPLATE = """
<h2>\U0001F386 New Year Visitor</h2>
<p><b>Time:</b> {time}</p>
<p><b>Latitude:</b> {latitude}</p>
<p><b>Longitude:</b> {longitude}</p>
<br/>
<img src="{image}" width="320"/>
"""


def _format_coordinate(value: Optional[float]) -> str:
    if value is None:
        return NOT_SHARED
    # 12.0 → "12", matching what the browser sent
    if value.is_integer():
        return str(int(value))
    return repr(value)


def make_content_id() -> str:
    """Return a content id that is unique per message."""
    return f"photo_{uuid4().hex}@{CID_DOMAIN}"


def render_html(submission: Submission) -> str:
    """
    Render the notification body.

    The image value goes into ``src`` unchanged apart from ``"``, which would
    end the attribute; query strings such as ``?a=1&b=2`` are kept as sent.
    """
    time_text = str(submission.time) if submission.time is not None else NOT_SHARED
    return _HTML_TEMPLATE.format(
        time=html.escape(time_text),
        latitude=_format_coordinate(submission.latitude),
        longitude=_format_coordinate(submission.longitude),
        image=(submission.image or "").replace('"', "&quot;"),
    )


def build_message(
    submission: Submission,
    sender: str,
    subject: str,
    sender_name: Optional[str] = None,
) -> OutboundMessage:
    """
    Build the OutboundMessage for a submission.

    The message is sent from ``sender`` to ``sender`` (the app notifies its
    own mailbox).

    A data URI image becomes a single ``visitor.<ext>`` attachment and the
    first ``<img>`` src is rewritten to ``cid:<content_id>``. A data URI that
    cannot be parsed is logged and left inline; it never fails the request.
    """
    body = render_html(submission)
    attachments: list[MailAttachment] = []

    try:
        data_uri = parse_data_uri(submission.image or "")
    except AttachmentParseError as e:
        logger.warning(f"Failed to parse image data URL: {e}")
        data_uri = None

    if data_uri is not None:
        content_id = make_content_id()
        attachments.append(
            MailAttachment(
                filename=f"visitor.{data_uri.extension}",
                content=data_uri.payload,
                encoding="base64",
                content_id=content_id,
                content_type=data_uri.content_type,
            )
        )
        body = _IMG_SRC_RE.sub(f'<img src="cid:{content_id}"', body, count=1)

    return OutboundMessage(
        sender=sender,
        sender_name=sender_name,
        to=sender,
        subject=subject,
        html=body,
        attachments=attachments,
    )
