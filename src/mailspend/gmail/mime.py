"""Decoding of Gmail API message payloads."""
import base64
import re
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from .models import EmailAttachment, RawEmail

_CHARSET_RE = re.compile(r'charset="?([\w.:-]+)"?', re.IGNORECASE)


def decode_base64url(data: str) -> bytes:
    """Decode a Gmail base64url body, tolerating missing padding."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded)


def header_value(headers: List[Dict], name: str) -> str:
    """Case-insensitive header lookup; first occurrence wins."""
    lowered = name.lower()
    for header in headers or []:
        if header.get("name", "").lower() == lowered:
            return header.get("value", "")
    return ""


def iter_parts(payload: Dict) -> Iterator[Dict]:
    """Walk nested MIME parts depth-first (forwarded mail nests alternatives)."""
    for part in payload.get("parts") or []:
        yield part
        yield from iter_parts(part)


def _part_charset(part: Dict) -> str:
    content_type = header_value(part.get("headers", []), "Content-Type")
    match = _CHARSET_RE.search(content_type)
    return match.group(1) if match else "utf-8"


def _decode_text(part: Dict) -> str:
    raw = decode_base64url(part["body"]["data"])
    try:
        return raw.decode(_part_charset(part), errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def _internal_date(message: Dict) -> Optional[datetime]:
    value = message.get("internalDate")
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_message(message: Dict) -> RawEmail:
    """Convert a users.messages.get(format='full') resource into a RawEmail."""
    payload = message.get("payload") or {}
    headers = payload.get("headers", [])

    html_body = ""
    attachments: List[EmailAttachment] = []

    if payload.get("parts"):
        for part in iter_parts(payload):
            body = part.get("body") or {}
            if not html_body and part.get("mimeType") == "text/html" and body.get("data"):
                html_body = _decode_text(part)

            if part.get("filename") and body.get("attachmentId"):
                attachments.append(EmailAttachment(
                    filename=part["filename"],
                    mime_type=part.get("mimeType", "application/octet-stream"),
                    attachment_id=body["attachmentId"]
                ))
    elif (payload.get("body") or {}).get("data"):
        html_body = _decode_text(payload)

    return RawEmail(
        id=message["id"],
        subject=header_value(headers, "Subject"),
        from_address=header_value(headers, "From"),
        to_address=header_value(headers, "To"),
        date=header_value(headers, "Date"),
        html_body=html_body,
        attachments=attachments,
        internal_date=_internal_date(message)
    )
