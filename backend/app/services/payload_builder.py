"""
Outbound payload assembly.

Combines the inbound message, its first attachment (if any) and the
normalized report rows into the single OutboundPayload handed to the
processing endpoint. Assembly never raises: malformed upstream fields
fall back to sentinel values ("unknown", "No subject", "unnamed", ...).
"""

import base64
import logging
import re
from datetime import datetime, timezone
from typing import Optional, Sequence

from app.config import Settings
from app.models.dmarc import DmarcRecordRow
from app.models.inbound_email import InboundAttachment, InboundEmail
from app.models.payload import (
    AttachmentInfo,
    EmailContent,
    EmailInfo,
    EmailType,
    OutboundPayload,
    ProcessingStats,
    WorkerInfo,
)

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
NO_SUBJECT = "No subject"
_MAX_SANITIZED_LENGTH = 200

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_string(value: Optional[str]) -> str:
    """
    Make a header-ish string safe for logs and the payload.

    Control characters are removed, U+FFFD becomes "?", surrounding
    whitespace is trimmed and the result is capped at 200 characters
    (plus "..."). Empty or missing input becomes "unknown".
    """
    if not value or not isinstance(value, str):
        return UNKNOWN

    cleaned = _CONTROL_CHARS_RE.sub("", value).replace("\ufffd", "?").strip()
    if not cleaned:
        return UNKNOWN
    if len(cleaned) > _MAX_SANITIZED_LENGTH:
        cleaned = cleaned[:_MAX_SANITIZED_LENGTH] + "..."
    return cleaned


def _iso_now(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def determine_email_type(
    attachment: Optional[InboundAttachment],
    rows: Sequence[DmarcRecordRow],
) -> EmailType:
    """report if rows were extracted, attachment_only if not, plain without attachment."""
    if attachment is not None and rows:
        return EmailType.REPORT
    if attachment is not None:
        return EmailType.ATTACHMENT_ONLY
    return EmailType.PLAIN


def _recipients(email: InboundEmail) -> list[str]:
    return [
        address.strip()
        for address in email.recipients
        if isinstance(address, str) and address.strip() and address.strip() != UNKNOWN
    ]


def _email_info(email: InboundEmail, now_iso: str, sanitize_subject: bool = True) -> EmailInfo:
    subject = email.subject or NO_SUBJECT
    if sanitize_subject:
        subject = sanitize_string(subject)
        if subject == UNKNOWN:
            subject = NO_SUBJECT
    return EmailInfo(
        from_=(email.sender_email or "").strip() or UNKNOWN,
        to=_recipients(email),
        subject=subject,
        date=email.date or now_iso,
        messageId=email.message_id or UNKNOWN,
        hasHtml=bool(email.html),
        hasText=bool(email.text),
    )


def _email_content(email: InboundEmail) -> EmailContent:
    return EmailContent(
        html=email.html or None,
        text=email.text or None,
        htmlLength=len(email.html) if email.html else 0,
        textLength=len(email.text) if email.text else 0,
    )


def build_attachment_info(
    attachment: InboundAttachment,
    include_content: bool = True,
) -> AttachmentInfo:
    """Describe an attachment; binary content is base64-encoded."""
    content: Optional[str] = None
    encoding = "base64"
    if include_content:
        if isinstance(attachment.content, bytes):
            content = base64.b64encode(attachment.content).decode("ascii")
        else:
            content = attachment.content
            encoding = "text"

    filename = sanitize_string(attachment.filename)
    return AttachmentInfo(
        filename=filename if filename != UNKNOWN else "unnamed",
        mimeType=attachment.content_type or "application/octet-stream",
        disposition=attachment.disposition or "attachment",
        size=attachment.size,
        content=content,
        contentEncoding=encoding,
    )


def build_payload(
    email: InboundEmail,
    attachment: Optional[InboundAttachment],
    rows: Sequence[DmarcRecordRow],
    settings: Settings,
    started_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> OutboundPayload:
    """
    Assemble the full payload for the processing endpoint.

    Always returns a payload, even for a message with no attachment and no
    rows.
    """
    now = now or datetime.now(timezone.utc)
    now_iso = _iso_now(now)
    duration_ms = 0
    if started_at is not None:
        duration_ms = max(0, int((now - started_at).total_seconds() * 1000))

    return OutboundPayload(
        emailInfo=_email_info(email, now_iso),
        emailContent=_email_content(email),
        attachment=build_attachment_info(attachment) if attachment is not None else None,
        dmarcRecords=list(rows),
        processedAt=now_iso,
        workerInfo=WorkerInfo(
            version=settings.worker_version,
            source=settings.worker_source,
            parser=settings.worker_parser,
            processingTimestamp=now_iso,
        ),
        processingStats=ProcessingStats(
            totalRecords=len(rows),
            hasAttachment=attachment is not None,
            emailType=determine_email_type(attachment, rows),
            hasHtmlContent=bool(email.html),
            hasTextContent=bool(email.text),
            processingDuration=duration_ms,
        ),
    )


def build_retry_payload(
    email: InboundEmail,
    attachment: Optional[InboundAttachment],
    rows: Sequence[DmarcRecordRow],
    settings: Settings,
    now: Optional[datetime] = None,
) -> OutboundPayload:
    """
    Simplified payload for the single delivery retry.

    The attachment descriptor carries no content and there are no
    processing stats, which keeps the request small.
    """
    now_iso = _iso_now(now)
    return OutboundPayload(
        emailInfo=_email_info(email, now_iso, sanitize_subject=False),
        emailContent=_email_content(email),
        attachment=(
            build_attachment_info(attachment, include_content=False)
            if attachment is not None
            else None
        ),
        dmarcRecords=list(rows),
        processedAt=now_iso,
        workerInfo=WorkerInfo(
            version=settings.worker_version,
            source=settings.worker_source,
            parser=settings.worker_parser,
            isRetry=True,
        ),
    )


def validate_payload(payload: OutboundPayload) -> list[str]:
    """
    Return human-readable warnings about missing descriptive fields.

    Warnings are informational; the payload is delivered regardless.
    """
    warnings: list[str] = []
    info = payload.emailInfo

    if not info.from_ or info.from_ == UNKNOWN:
        warnings.append("Sender email address is missing or invalid")
    if not info.to:
        warnings.append("Recipient email addresses are missing or invalid")
    if not info.subject or info.subject == NO_SUBJECT:
        warnings.append("Email subject is missing or invalid")
    if payload.attachment is not None and (
        payload.attachment.filename == "unnamed" or payload.attachment.size == 0
    ):
        warnings.append("Attachment information is incomplete")

    return warnings
