"""
Email intake router.

Receives inbound email webhooks, runs the DMARC report pipeline on the
message and forwards the result to the processing endpoint.

The webhook endpoint is provider-agnostic: it normalises the raw payload
via the inbound_email_adapter service, so swapping from Resend to Postmark
(or raw MIME) only requires changing the EMAIL_PROVIDER env var.

Environment variables
---------------------
EMAIL_PROVIDER            Which normaliser to use (default: "resend").
                          Supported values: "resend", "postmark", "raw".
PROCESSING_ENDPOINT_URL   Where normalized payloads are delivered.

Endpoints:
  POST /inbound   — provider webhook
"""

import logging

from fastapi import APIRouter, Depends

from app.config import Settings, get_settings
from app.services.email_pipeline import process_email
from app.services.inbound_email_adapter import normalize_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/inbound")
def receive_inbound_email(
    payload: dict,
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Provider-agnostic inbound email webhook receiver.

    Always returns 200 so the provider does not retry on processing errors.
    Errors are logged and reported in the response body instead.
    """
    try:
        email = normalize_webhook(payload, provider=settings.email_provider)
    except ValueError as exc:
        logger.error(f"Webhook normalization failed: {exc}")
        return {"received": True, "processed": False, "reason": "unsupported_payload"}
    except Exception as e:
        logger.error(f"Unexpected error normalizing webhook payload: {e}")
        return {"received": True, "processed": False, "reason": "normalization_error"}

    try:
        result = process_email(email, settings)
    except Exception as e:
        logger.error(f"Unexpected error processing inbound email: {e}")
        return {"received": True, "processed": False, "reason": "processing_error"}

    response = {
        "received": True,
        "processed": True,
        "emailType": result.email_type.value,
        "recordCount": result.record_count,
        "hasAttachment": result.has_attachment,
        "delivered": result.delivered,
    }
    if result.error_code:
        response["reportError"] = result.error_code
    if result.delivery_error:
        response["deliveryError"] = result.delivery_error
    return response
