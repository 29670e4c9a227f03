"""
Parsing of ``data:<mime>;base64,<payload>`` strings sent by the browser.

Screenshots arrive as data URLs read with FileReader. Clients are not
always careful about the header, so the MIME type is best effort: when
the header is missing or garbled, the payload's magic bytes decide, and
failing that the MIME type is left empty for the caller to default.
"""

import base64
import binascii
import logging
from typing import Iterable, List

from scamlens.schemas.analyze_schemas import ImageAttachment

logger = logging.getLogger(__name__)


_MAGIC_NUMBERS = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


class MalformedDataURL(ValueError):
    """Raised when a data URL carries no usable base64 payload."""


def _sniff_mime_type(payload: str) -> str:
    # 16 base64 chars decode to 12 bytes, enough for every signature above
    head = payload[:16]
    try:
        raw = base64.b64decode(head + "=" * (-len(head) % 4))
    except (binascii.Error, ValueError):
        return ""
    for signature, mime_type in _MAGIC_NUMBERS:
        if raw.startswith(signature):
            return mime_type
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    return ""


def _mime_from_header(header: str) -> str:
    _, colon, rest = header.partition(":")
    if not colon:
        return ""
    mime_type, _, _ = rest.partition(";")
    mime_type = mime_type.strip().lower()
    if "/" not in mime_type:
        return ""
    return mime_type


def parse_data_url(value: str) -> ImageAttachment:
    """
    Split a data URL into MIME type and base64 payload.

    The MIME type is the text after the first ':' and before the first ';'
    of the header, the payload everything after the first ','. A bare
    base64 string without any header is accepted as a payload.

    Raises:
        MalformedDataURL: if there is no payload, or it is not base64.
    """
    value = (value or "").strip()
    header, comma, payload = value.partition(",")
    if not comma:
        if value.startswith("data:"):
            raise MalformedDataURL("data URL has no ',' separating header and payload")
        header, payload = "", value

    payload = "".join(payload.split())
    if not payload:
        raise MalformedDataURL("data URL has an empty payload")

    # clients often drop the trailing "=" padding
    payload += "=" * (-len(payload) % 4)
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedDataURL(f"data URL payload is not valid base64: {e}") from e

    mime_type = _mime_from_header(header) or _sniff_mime_type(payload)
    return ImageAttachment(mime_type=mime_type, data=payload)


def parse_images(values: Iterable[str]) -> List[ImageAttachment]:
    """Parse every non-blank image in order, dropping the ones with no usable payload."""
    attachments = []
    for index, value in enumerate(values):
        if not value or not value.strip():
            continue
        try:
            attachments.append(parse_data_url(value))
        except MalformedDataURL as e:
            logger.warning(f"Skipping image #{index + 1}: {e}")
    return attachments
