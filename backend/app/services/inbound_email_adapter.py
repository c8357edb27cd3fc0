"""
Inbound email adapter service.

Normalizes provider-specific inbound webhook payloads into a single
provider-agnostic InboundEmail model.

Supported providers:
  - postmark  (PascalCase JSON, base64 attachment content)
  - resend    (default; snake_case JSON, base64 attachment content)
  - raw       (base64-encoded RFC 822 message under "raw", parsed here)

Adding a new provider:
  1. Write a normalize_<provider>(payload: dict) -> InboundEmail function.
  2. Register it in _NORMALIZERS.
  3. Set EMAIL_PROVIDER=<provider> in the environment.

Attachment content stays as raw bytes. Which decode strategy applies is
decided later from the declared content type, never here.
"""

import base64
import binascii
import email
import email.policy
import logging
import os
from email.message import EmailMessage
from email.utils import getaddresses, parseaddr
from typing import Callable, Optional

from app.models.inbound_email import InboundAttachment, InboundEmail

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _b64decode(raw) -> bytes:
    """Decode base64 content; anything undecodable becomes b""."""
    if not raw or not isinstance(raw, str):
        return b""
    try:
        return base64.b64decode(raw)
    except (binascii.Error, ValueError):
        logger.warning("Attachment content is not valid base64; using empty content")
        return b""


def _address(value) -> str:
    """'Alice <alice@example.com>' -> 'alice@example.com'."""
    if not value or not isinstance(value, str):
        return ""
    _, addr = parseaddr(value)
    return addr or value.strip()


def _address_list(value) -> list[str]:
    """Accept a comma-separated string or a list of strings."""
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    pairs = getaddresses([item for item in value if isinstance(item, str)])
    return [addr for _, addr in pairs if addr]


def _optional_str(value) -> Optional[str]:
    """Non-empty strings pass through; anything else becomes None."""
    if not isinstance(value, str) or not value:
        return None
    return value


def _attachment_entries(value) -> list[dict]:
    """The dict entries of an attachment list; other shapes are skipped."""
    if not isinstance(value, list):
        if value:
            logger.warning("Ignoring attachments of type %s", type(value).__name__)
        return []
    entries = [item for item in value if isinstance(item, dict)]
    if len(entries) != len(value):
        logger.warning("Ignoring %d malformed attachment entries", len(value) - len(entries))
    return entries


# ---------------------------------------------------------------------------
# Postmark normalizer
# ---------------------------------------------------------------------------

def normalize_postmark(payload: dict) -> InboundEmail:
    """
    Convert a Postmark inbound webhook payload to InboundEmail.

    Postmark uses PascalCase keys:
      From, To, Subject, Date, MessageID, HtmlBody, TextBody,
      Attachments[].{Name, Content, ContentType, ContentID}

    Content is base64-encoded in Postmark payloads.
    """
    attachments: list[InboundAttachment] = []
    for att in _attachment_entries(payload.get("Attachments")):
        attachments.append(
            InboundAttachment(
                filename=_optional_str(att.get("Name")) or "attachment",
                content=_b64decode(att.get("Content")),
                content_type=_optional_str(att.get("ContentType")) or "application/octet-stream",
                disposition="inline" if att.get("ContentID") else "attachment",
            )
        )

    return InboundEmail(
        sender_email=_address(payload.get("From")),
        recipients=_address_list(payload.get("To")),
        subject=_optional_str(payload.get("Subject")),
        date=_optional_str(payload.get("Date")),
        message_id=_optional_str(payload.get("MessageID")),
        html=_optional_str(payload.get("HtmlBody")),
        text=_optional_str(payload.get("TextBody")),
        attachments=attachments,
    )


# ---------------------------------------------------------------------------
# Resend normalizer
# ---------------------------------------------------------------------------

def normalize_resend(payload: dict) -> InboundEmail:
    """
    Convert a Resend inbound webhook payload to InboundEmail.

    Resend uses snake_case keys:
      from, to, subject, date, message_id, html, text,
      attachments[].{filename, content, content_type, content_disposition}

    content is base64-encoded in Resend payloads.
    """
    attachments: list[InboundAttachment] = []
    for att in _attachment_entries(payload.get("attachments")):
        attachments.append(
            InboundAttachment(
                filename=_optional_str(att.get("filename")) or "attachment",
                content=_b64decode(att.get("content")),
                content_type=_optional_str(att.get("content_type")) or "application/octet-stream",
                disposition=_optional_str(att.get("content_disposition")) or "attachment",
            )
        )

    return InboundEmail(
        sender_email=_address(payload.get("from")),
        recipients=_address_list(payload.get("to")),
        subject=_optional_str(payload.get("subject")),
        date=_optional_str(payload.get("date")) or _optional_str(payload.get("created_at")),
        message_id=_optional_str(payload.get("message_id")),
        html=_optional_str(payload.get("html")),
        text=_optional_str(payload.get("text")),
        attachments=attachments,
    )


# ---------------------------------------------------------------------------
# Raw MIME normalizer
# ---------------------------------------------------------------------------

def _body(message: EmailMessage, subtype: str) -> Optional[str]:
    part = message.get_body(preferencelist=(subtype,))
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError) as e:
        logger.warning("Could not decode text/%s body: %s", subtype, e)
        return None


def _mime_attachments(message: EmailMessage) -> list[InboundAttachment]:
    """Every non-container part that carries a filename, in MIME order."""
    attachments: list[InboundAttachment] = []
    for part in message.walk():
        if part.is_multipart():
            continue
        filename = part.get_filename()
        if not filename:
            continue
        attachments.append(
            InboundAttachment(
                filename=filename,
                content=part.get_payload(decode=True) or b"",
                content_type=part.get_content_type(),
                disposition=part.get_content_disposition(),
            )
        )
    return attachments


def _header(message: EmailMessage, name: str) -> Optional[str]:
    value = message.get(name)
    return str(value) if value is not None else None


def parse_raw_message(raw_mime: bytes) -> InboundEmail:
    """Parse RFC 822 bytes into InboundEmail."""
    message = email.message_from_bytes(raw_mime, policy=email.policy.default)
    return InboundEmail(
        sender_email=_address(_header(message, "From")),
        recipients=_address_list(
            [str(value) for value in message.get_all("To", [])]
        ),
        subject=_header(message, "Subject"),
        date=_header(message, "Date"),
        message_id=_header(message, "Message-ID"),
        html=_body(message, "html"),
        text=_body(message, "plain"),
        attachments=_mime_attachments(message),
    )


def normalize_raw(payload: dict) -> InboundEmail:
    """
    Convert a {"raw": "<base64 RFC 822 message>"} payload to InboundEmail.

    Raises ValueError when the payload has no raw message.
    """
    raw_mime = _b64decode(payload.get("raw", ""))
    if not raw_mime:
        raise ValueError("Raw payload is missing the 'raw' message")
    return parse_raw_message(raw_mime)


# ---------------------------------------------------------------------------
# Registry and dispatcher
# ---------------------------------------------------------------------------

_NORMALIZERS: dict[str, Callable[[dict], InboundEmail]] = {
    "postmark": normalize_postmark,
    "resend": normalize_resend,
    "raw": normalize_raw,
}


def normalize_webhook(payload: dict, provider: str | None = None) -> InboundEmail:
    """
    Route to the correct normalizer based on the provider argument or the
    EMAIL_PROVIDER environment variable.

    Priority:
      1. provider argument (explicit, used in tests and the webhook endpoint)
      2. EMAIL_PROVIDER env var
      3. Default: "resend"

    Raises ValueError for unknown provider names.
    """
    resolved = provider or os.getenv("EMAIL_PROVIDER", "resend")
    resolved = resolved.lower().strip()

    normalizer = _NORMALIZERS.get(resolved)
    if normalizer is None:
        raise ValueError(
            f"Unknown email provider {resolved!r}. "
            f"Supported providers: {sorted(_NORMALIZERS)}"
        )

    return normalizer(payload)
