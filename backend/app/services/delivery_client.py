"""
HTTP client for the downstream processing endpoint.

The assembled payload is POSTed as JSON. Failures raise DeliveryError;
timeouts, connection problems and 502/503/504 responses are marked
retryable, and deliver() makes exactly one further attempt with the
simplified retry payload.

Environment variables (via app.config)
--------------------------------------
PROCESSING_ENDPOINT_URL    Where payloads are sent.
DELIVERY_TIMEOUT_SECONDS   Per-request timeout (default: 30).
DELIVERY_RETRY_ENABLED     Set to "false" to disable the retry.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from app.config import Settings
from app.models.payload import DeliveryResponse, OutboundPayload
from app.services.errors import DeliveryError

logger = logging.getLogger(__name__)

USER_AGENT = "DMARC-Email-Relay/1.0"
RETRYABLE_STATUS_CODES = {502, 503, 504}

_STATUS_MESSAGES = {
    400: "Bad Request (400): Invalid data format",
    401: "Unauthorized (401): Authentication required",
    403: "Forbidden (403): Access denied",
    404: "Not Found (404): Processing endpoint not found",
    413: "Payload Too Large (413): Request body too large",
    429: "Too Many Requests (429): Rate limit exceeded",
    500: "Internal Server Error (500): Processing endpoint error",
    502: "Bad Gateway (502): Processing service unavailable",
    503: "Service Unavailable (503): Processing service temporarily unavailable",
    504: "Gateway Timeout (504): Processing endpoint timeout",
}


def describe_http_error(status_code: int, body: str) -> str:
    """Human-readable message for a non-2xx response."""
    prefix = _STATUS_MESSAGES.get(status_code)
    if prefix is None:
        return f"HTTP Error {status_code}: {body}"
    return f"{prefix} - {body}"


def _headers(payload: OutboundPayload, is_retry: bool) -> dict[str, str]:
    now_iso = datetime.now(timezone.utc).isoformat()
    if is_retry:
        return {
            "Content-Type": "application/json",
            "User-Agent": f"{USER_AGENT}-Retry",
            "X-Is-Retry": "true",
            "X-Retry-Timestamp": now_iso,
        }
    return {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "X-Processing-Timestamp": now_iso,
        "X-Record-Count": str(len(payload.dmarcRecords)),
        "X-Has-Attachment": str(payload.attachment is not None).lower(),
        "X-Has-HTML": str(payload.emailInfo.hasHtml).lower(),
        "X-Has-Text": str(payload.emailInfo.hasText).lower(),
    }


def send_payload(
    payload: OutboundPayload,
    settings: Settings,
    client: httpx.Client,
    is_retry: bool = False,
) -> DeliveryResponse:
    """
    POST one payload and parse the endpoint's reply.

    Raises:
        DeliveryError: on timeout, transport failure, non-2xx status or a
                       reply that is not JSON.
    """
    if not settings.processing_endpoint_url:
        raise DeliveryError("PROCESSING_ENDPOINT_URL is not configured")

    try:
        response = client.post(
            settings.processing_endpoint_url,
            json=payload.to_json_dict(),
            headers=_headers(payload, is_retry),
            timeout=settings.delivery_timeout_seconds,
        )
    except httpx.TimeoutException as e:
        raise DeliveryError(
            f"Request timeout after {settings.delivery_timeout_seconds:g} seconds",
            retryable=True,
        ) from e
    except httpx.TransportError as e:
        raise DeliveryError(f"Network connection error: {e}", retryable=True) from e

    if response.is_error:
        raise DeliveryError(
            describe_http_error(response.status_code, response.text),
            status_code=response.status_code,
            retryable=response.status_code in RETRYABLE_STATUS_CODES,
        )

    try:
        result = DeliveryResponse.model_validate(response.json())
    except ValueError as e:
        raise DeliveryError(
            f"Processing endpoint returned an invalid JSON body: {e}",
            status_code=response.status_code,
        ) from e

    if result.success:
        logger.info(
            "Processing endpoint accepted payload (inserted=%s, file=%s)",
            result.insertedRecords,
            result.uploadedFileUrl,
        )
    else:
        # The call itself succeeded; a business-level failure is not retried.
        logger.warning(
            "Processing endpoint reported failure: %s",
            result.error or result.message or "no details",
        )
    return result


def deliver(
    payload: OutboundPayload,
    settings: Settings,
    retry_payload: Optional[OutboundPayload] = None,
    client: Optional[httpx.Client] = None,
) -> DeliveryResponse:
    """
    Deliver a payload, retrying once with retry_payload on retryable errors.

    Pass ``client`` to reuse a connection pool (or a mock transport in
    tests); otherwise a short-lived client is created.
    """
    if client is None:
        with httpx.Client(timeout=settings.delivery_timeout_seconds) as own_client:
            return deliver(payload, settings, retry_payload, own_client)

    try:
        return send_payload(payload, settings, client)
    except DeliveryError as e:
        if not (e.retryable and settings.delivery_retry_enabled):
            raise
        logger.warning("Delivery failed (%s); retrying with simplified payload", e.message)

    try:
        return send_payload(retry_payload or payload, settings, client, is_retry=True)
    except DeliveryError as retry_error:
        raise DeliveryError(
            f"Retry failed: {retry_error.message}",
            status_code=retry_error.status_code,
        ) from retry_error
