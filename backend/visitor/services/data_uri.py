"""
Data URI parsing.

Browsers hand camera captures over as ``data:<mime>;base64,<payload>``
strings. Most mail clients refuse to render data URIs inside HTML, so the
message builder turns them into CID attachments; this module does the parse
step and returns a structured result instead of raw regex groups.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional

_DATA_URI_RE = re.compile(r"data:(.+);base64,(.+)")

_DEFAULT_EXTENSION = "png"


class AttachmentParseError(ValueError):
    """Raised when a value starts with ``data:`` but is not a base64 data URI."""


def decode_base64_payload(payload: str) -> bytes:
    """
    Decode a base64 payload, tolerating missing trailing padding.

    Raises AttachmentParseError when the payload cannot be decoded at all.
    """
    # Browsers occasionally drop trailing padding
    padded = payload + "=" * (-len(payload) % 4)
    try:
        return base64.b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise AttachmentParseError(f"Payload is not valid base64: {e}") from e


@dataclass(frozen=True)
class DataUri:
    mime_type: str
    payload: str

    @property
    def extension(self) -> str:
        """
        File extension derived from the MIME subtype.

        Parameters and ``+`` suffixes are dropped, so ``image/svg+xml`` gives
        ``svg`` and ``image/jpeg;name=x`` gives ``jpeg``. Falls back to
        ``png`` when no subtype is present.
        """
        _, _, subtype = self.mime_type.partition("/")
        subtype = subtype.split(";")[0].split("+")[0].strip()
        return subtype or _DEFAULT_EXTENSION

    @property
    def content_type(self) -> str:
        return self.mime_type.split(";")[0].strip() or "application/octet-stream"


def is_data_uri(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith("data:")


def parse_data_uri(value: str) -> Optional[DataUri]:
    """
    Parse ``value`` as a base64 data URI.

    Returns None when ``value`` is not a data URI at all (e.g. a remote URL).
    Raises AttachmentParseError when it starts with ``data:`` but does not
    match ``data:<mime>;base64,<payload>``, or when the payload does not
    decode as base64.
    """
    if not is_data_uri(value):
        return None

    match = _DATA_URI_RE.fullmatch(value)
    if not match:
        raise AttachmentParseError(
            f"Not a base64 data URI (starts with {value[:40]!r})"
        )
    payload = match.group(2)
    decode_base64_payload(payload)
    return DataUri(mime_type=match.group(1), payload=payload)
