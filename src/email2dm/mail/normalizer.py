"""
Email content normalization for email2dm.

Reduces a raw RFC 5322 message to the handful of fields a chat message
shows: sender, recipient, subject, date and a plain-text body. This is a
best-effort extractor, not a MIME library: it looks for the first
text/plain part of a multipart message and otherwise strips leading
transport headers from whatever body it finds.
"""

import base64
import logging
import quopri
import re
from datetime import timezone
from email.errors import MissingHeaderBodySeparatorDefect
from email.header import decode_header, make_header
from email.message import Message
from email.parser import BytesParser
from email.policy import compat32
from email.utils import parsedate_to_datetime

from pydantic import BaseModel, ConfigDict

from email2dm.dispatch.exceptions import ParseFailure

logger = logging.getLogger(__name__)

BODY_PLACEHOLDER = "[Unable to extract email body]"
UNKNOWN_DATE = "Unknown"

# Lines starting with these are treated as leaked headers at the top of a body.
_HEADER_PREFIXES = ("content-", "mime-", "return-", "received:", "message-id:")

# First empty line, which ends the header block.
_SEPARATOR_RE = re.compile(rb"\r?\n\r?\n")


class NormalizedMessage(BaseModel):
    """Display fields extracted from an inbound email."""

    model_config = ConfigDict(frozen=True)

    from_address: str = ""
    to_address: str = ""
    subject: str = ""
    date: str = UNKNOWN_DATE
    body: str = ""


def normalize(raw: bytes | str) -> NormalizedMessage:
    """
    Extract display fields from a raw email.

    Args:
        raw: The message as received in the DATA phase.

    Returns:
        The normalized message. Body extraction problems never fail the
        call; they yield a placeholder body instead.

    Raises:
        ParseFailure: If no header block can be parsed.
    """
    if isinstance(raw, str):
        raw = raw.encode("utf-8", "surrogateescape")

    msg = BytesParser(policy=compat32).parsebytes(raw, headersonly=True)
    if not msg.keys():
        raise ParseFailure("no message headers found")
    if any(isinstance(d, MissingHeaderBodySeparatorDefect) for d in msg.defects):
        raise ParseFailure("malformed header line")

    try:
        body = extract_body(msg, split_body(raw))
    except (ValueError, LookupError, UnicodeError) as e:
        logger.warning(f"Failed to extract email body: {e}")
        body = BODY_PLACEHOLDER

    return NormalizedMessage(
        from_address=clean_address(decode_header_value(_header(msg, "From"))),
        to_address=clean_address(decode_header_value(_header(msg, "To"))),
        subject=decode_header_value(_header(msg, "Subject")),
        date=format_date(_header(msg, "Date")),
        body=body,
    )


def _header(msg: Message, name: str) -> str:
    value = msg.get(name)
    if value is None:
        return ""
    # compat32 hands back a Header object when the raw value had 8-bit bytes
    return value if isinstance(value, str) else str(value)


def decode_header_value(value: str) -> str:
    """Decode RFC 2047 encoded words, returning the raw value on failure."""
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except (ValueError, LookupError, UnicodeError) as e:
        logger.debug(f"Keeping undecodable header value {value!r}: {e}")
        return value


def clean_address(value: str) -> str:
    """Reduce 'Name <user@host>' to 'user@host'."""
    start = value.find("<")
    end = value.find(">", start + 1) if start >= 0 else -1
    if start >= 0 and end > start:
        return value[start + 1 : end].strip()
    return value.strip()


def format_date(value: str) -> str:
    """
    Render a Date header as 'YYYY-MM-DD HH:MM:SS UTC'.

    Args:
        value: Raw Date header.

    Returns:
        The UTC rendering, "Unknown" for an empty header, or the raw
        value when it cannot be parsed.
    """
    value = value.strip()
    if not value:
        return UNKNOWN_DATE
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return value
    if parsed is None:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


# =============================================================================
# Body extraction
# =============================================================================


def split_body(raw: bytes) -> bytes:
    """Return the bytes after the header/body separator, or b"" without one."""
    match = _SEPARATOR_RE.search(raw)
    return raw[match.end() :] if match else b""


def extract_body(msg: Message, body: bytes) -> str:
    """
    Extract the plain-text body of a message.

    Args:
        msg: The message headers, parsed with headersonly=True.
        body: The raw bytes following the header block.

    Multipart messages are scanned for a text/plain part; everything else
    is transfer-decoded and stripped of leading header lines.
    """
    body = body.replace(b"\r\n", b"\n")
    charset = msg.get_content_charset()

    boundary = msg.get_param("boundary")
    if msg.get_content_maintype() == "multipart" and isinstance(boundary, str):
        text = _find_text_part(body, boundary, charset)
        if text is not None:
            return text
        return clean_body_text(_decode_text(body, "", charset))

    encoding = msg.get("Content-Transfer-Encoding", "")
    return clean_body_text(_decode_text(body, str(encoding), charset))


def _find_text_part(body: bytes, boundary: str, charset: str | None) -> str | None:
    delimiter = b"--" + boundary.encode("ascii", "surrogateescape")
    # The first segment is the preamble.
    for segment in body.split(delimiter)[1:]:
        if segment.startswith(b"--"):
            break
        _, _, part = segment.partition(b"\n")
        if part.startswith(b"\n"):
            header_block, content = b"", part[1:]
        else:
            header_block, sep, content = part.partition(b"\n\n")
            if not sep:
                continue

        part_msg = BytesParser(policy=compat32).parsebytes(header_block + b"\n\n", headersonly=True)
        part_type = part_msg.get_content_type()
        if part_type.startswith("multipart/"):
            nested = part_msg.get_param("boundary")
            if isinstance(nested, str):
                text = _find_text_part(content, nested, charset)
                if text is not None:
                    return text
            continue
        if part_type != "text/plain":
            continue

        encoding = str(part_msg.get("Content-Transfer-Encoding", ""))
        part_charset = part_msg.get_content_charset() or charset
        return _decode_text(content, encoding, part_charset).rstrip()
    return None


def _decode_text(data: bytes, encoding: str, charset: str | None) -> str:
    encoding = encoding.strip().lower()
    if encoding == "quoted-printable":
        data = quopri.decodestring(data)
    elif encoding == "base64":
        data = base64.b64decode(b"".join(data.split()))

    try:
        return data.decode(charset or "utf-8", errors="replace")
    except LookupError:
        logger.debug(f"Unknown charset {charset!r}, decoding as utf-8")
        return data.decode("utf-8", errors="replace")


def clean_body_text(text: str) -> str:
    """
    Strip transport and MIME header lines leaked at the top of a body.

    Only lines with a well-known header prefix are dropped, so ordinary
    text containing colons survives. The blank separator line is removed
    only when headers were actually stripped.
    """
    lines = text.replace("\r\n", "\n").split("\n")
    index = 0
    stripped = False
    while index < len(lines):
        line = lines[index]
        if line.lower().startswith(_HEADER_PREFIXES):
            stripped = True
        elif stripped and line[:1] in (" ", "\t") and line.strip():
            pass  # folded continuation of a stripped header
        else:
            break
        index += 1

    if stripped and index < len(lines) and not lines[index].strip():
        index += 1

    return "\n".join(lines[index:]).strip()
