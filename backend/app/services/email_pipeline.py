"""
Per-message processing pipeline.

  first attachment -> media type -> decode -> XML tree -> report rows
  message + attachment + rows -> payload -> processing endpoint

Only the first attachment of a message is considered. A report error
(unsupported format, decode failure, malformed XML, wrong structure)
means "this message carries no report data": the message is still
assembled and delivered, classified as attachment_only. Delivery errors
are logged and reported back; nothing in here raises to the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from app.config import Settings
from app.models.dmarc import DmarcRecordRow
from app.models.inbound_email import InboundAttachment, InboundEmail
from app.models.payload import DeliveryResponse, EmailType, OutboundPayload
from app.services.attachment_decoder import decode_attachment
from app.services.delivery_client import deliver
from app.services.errors import DeliveryError, ReportProcessingError
from app.services.media_type import resolve_extension_class
from app.services.payload_builder import (
    build_payload,
    build_retry_payload,
    determine_email_type,
    sanitize_string,
    validate_payload,
)
from app.services.report_normalizer import normalize_report
from app.services.xml_tree import parse_xml

logger = logging.getLogger(__name__)

Deliverer = Callable[..., DeliveryResponse]


@dataclass
class ProcessingResult:
    """Outcome of process_email()."""
    email_type: EmailType
    record_count: int
    has_attachment: bool
    delivered: bool
    payload: OutboundPayload
    error_code: Optional[str] = None      # set when the attachment had no report data
    delivery_error: Optional[str] = None


def extract_report_rows(
    attachment: InboundAttachment,
    settings: Settings,
) -> list[DmarcRecordRow]:
    """
    Run resolve -> decode -> parse -> normalize on one attachment.

    Raises:
        ReportProcessingError: any of its four subclasses.
    """
    extension_class = resolve_extension_class(attachment.content_type)
    xml_text = decode_attachment(
        extension_class,
        attachment.content,
        max_bytes=settings.max_decompressed_bytes,
    )
    tree = parse_xml(xml_text, max_depth=settings.max_xml_depth)
    return normalize_report(tree)


def process_email(
    email: InboundEmail,
    settings: Settings,
    deliverer: Optional[Deliverer] = None,
) -> ProcessingResult:
    """
    Process one inbound message end to end.

    Args:
        email:     Normalized inbound message.
        settings:  Runtime configuration.
        deliverer: Callable with deliver()'s signature; defaults to deliver().

    Returns:
        ProcessingResult describing classification and delivery outcome.
    """
    started_at = datetime.now(timezone.utc)
    logger.info(
        "Processing email from %s (subject=%r, attachments=%d)",
        sanitize_string(email.sender_email),
        sanitize_string(email.subject or "No subject"),
        len(email.attachments),
    )

    attachment: Optional[InboundAttachment] = None
    rows: list[DmarcRecordRow] = []
    error_code: Optional[str] = None

    if email.attachments:
        attachment = email.attachments[0]
        logger.info(
            "Inspecting attachment %s (%s, %d bytes, disposition=%s)",
            sanitize_string(attachment.filename),
            attachment.content_type or "unknown",
            attachment.size,
            attachment.disposition or "unknown",
        )
        if attachment.size == 0:
            logger.warning("Attachment content is empty")
        try:
            rows = extract_report_rows(attachment, settings)
        except ReportProcessingError as e:
            error_code = e.error_code
            logger.info(
                "Attachment is not a valid DMARC report (%s): %s",
                e.error_code,
                e.message,
            )
        else:
            if rows:
                logger.info(
                    "Extracted %d DMARC records (org=%s, report_id=%s, domain=%s)",
                    len(rows),
                    sanitize_string(rows[0].report_metadata_org_name),
                    sanitize_string(rows[0].report_metadata_report_id),
                    sanitize_string(rows[0].policy_published_domain),
                )
    else:
        logger.info("No attachments found, treating as regular email")

    payload = build_payload(email, attachment, rows, settings, started_at=started_at)
    email_type = determine_email_type(attachment, rows)

    for warning in validate_payload(payload):
        logger.warning("Payload warning: %s", warning)

    result = ProcessingResult(
        email_type=email_type,
        record_count=len(rows),
        has_attachment=attachment is not None,
        delivered=False,
        payload=payload,
        error_code=error_code,
    )

    if not settings.processing_endpoint_url:
        logger.warning("PROCESSING_ENDPOINT_URL is not set; skipping delivery")
        result.delivery_error = "endpoint_not_configured"
        return result

    deliverer = deliverer or deliver
    retry_payload = build_retry_payload(email, attachment, rows, settings)
    try:
        response = deliverer(payload, settings, retry_payload=retry_payload)
    except DeliveryError as e:
        logger.error(
            "Delivery failed for %s email with %d records: %s",
            email_type.value,
            len(rows),
            e.message,
        )
        result.delivery_error = e.message
        return result

    result.delivered = True
    if not response.success:
        result.delivery_error = response.error or response.message or "rejected"

    logger.info(
        "Finished %s email: %d records, delivered=%s",
        email_type.value,
        len(rows),
        result.delivered,
    )
    return result
