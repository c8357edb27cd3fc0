"""
DMARC Email Relay
FastAPI application that receives inbound email webhooks, extracts DMARC
aggregate report rows from the first attachment and forwards them to the
processing endpoint.
"""

import logging

from fastapi import FastAPI

from app.config import get_settings
from app.routers import email_intake

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="DMARC Email Relay",
    description="DMARC aggregate report extraction for inbound email",
    version="1.0.0",
)

# Include routers
app.include_router(email_intake.router, prefix="/api/email-intake", tags=["email-intake"])


@app.on_event("startup")
async def log_startup_config() -> None:
    """Log where payloads will be delivered so misconfiguration is visible early."""
    settings = get_settings()
    if settings.processing_endpoint_url:
        logger.info(
            "DMARC Email Relay started (provider=%s, endpoint=%s, timeout=%ss)",
            settings.email_provider,
            settings.processing_endpoint_url,
            settings.delivery_timeout_seconds,
        )
    else:
        logger.warning(
            "DMARC Email Relay started without PROCESSING_ENDPOINT_URL; "
            "payloads will be assembled but not delivered"
        )


@app.get("/")
async def root():
    return {
        "message": "DMARC Email Relay is running! Send inbound email webhooks "
                   "to /api/email-intake/inbound.",
        "version": "1.0.0",
    }


@app.get("/health")
async def health():
    return {"status": "ok"}
