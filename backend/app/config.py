"""
Runtime configuration.

Values come from environment variables; a .env file in the working
directory is loaded first if present. Every setting has a default so the
app can be imported without any configuration (delivery is simply skipped
when no endpoint URL is set).
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_DECOMPRESSED_BYTES = 50 * 1024 * 1024
DEFAULT_MAX_XML_DEPTH = 64
DEFAULT_WORKER_VERSION = "1.0.0-enhanced"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    processing_endpoint_url: str = ""
    delivery_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    delivery_retry_enabled: bool = True
    max_decompressed_bytes: int = DEFAULT_MAX_DECOMPRESSED_BYTES
    max_xml_depth: int = DEFAULT_MAX_XML_DEPTH
    email_provider: str = "resend"
    worker_version: str = DEFAULT_WORKER_VERSION
    worker_source: str = "dmarc-email-relay"
    worker_parser: str = "xmltodict"


def get_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        processing_endpoint_url=os.getenv("PROCESSING_ENDPOINT_URL", "").strip(),
        delivery_timeout_seconds=_env_float(
            "DELIVERY_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
        ),
        delivery_retry_enabled=_env_bool("DELIVERY_RETRY_ENABLED", True),
        max_decompressed_bytes=_env_int(
            "MAX_DECOMPRESSED_BYTES", DEFAULT_MAX_DECOMPRESSED_BYTES
        ),
        max_xml_depth=_env_int("MAX_XML_DEPTH", DEFAULT_MAX_XML_DEPTH),
        email_provider=os.getenv("EMAIL_PROVIDER", "resend").strip().lower() or "resend",
        worker_version=os.getenv("WORKER_VERSION", DEFAULT_WORKER_VERSION),
    )
