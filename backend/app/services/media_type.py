"""
Media type -> extension class resolution.

The declared Content-Type of an attachment is the only signal used to pick
a decode strategy; the bytes themselves are never sniffed.
"""

import logging
import mimetypes
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ExtensionClass(str, Enum):
    GZIP = "gz"
    ZIP = "zip"
    XML = "xml"
    UNKNOWN = "unknown"


# Media type -> known extensions, first entry wins. Entries follow the
# IANA / Apache mime.types registrations; the x- aliases are what most
# report senders actually use.
MEDIA_TYPE_EXTENSIONS: dict[str, list[str]] = {
    "application/gzip": ["gz"],
    "application/x-gzip": ["gz"],
    "application/x-gzip-compressed": ["gz"],
    "application/gzip-compressed": ["gz"],
    "application/zip": ["zip"],
    "application/x-zip": ["zip"],
    "application/x-zip-compressed": ["zip"],
    "application/xml": ["xml", "xsl", "xsd", "rng"],
    "text/xml": ["xml"],
}

_EXTENSION_CLASSES: dict[str, ExtensionClass] = {
    "gz": ExtensionClass.GZIP,
    "zip": ExtensionClass.ZIP,
    "xml": ExtensionClass.XML,
}


def _normalize_media_type(declared: Optional[str]) -> str:
    """'Application/GZIP; name=x.gz' -> 'application/gzip'."""
    if not declared or not isinstance(declared, str):
        return ""
    return declared.split(";", 1)[0].strip().lower()


def first_extension(declared_media_type: Optional[str]) -> str:
    """
    Return the first registered extension (without dot) for a media type,
    or "" when the type is unknown.
    """
    media_type = _normalize_media_type(declared_media_type)
    if not media_type:
        return ""

    extensions = MEDIA_TYPE_EXTENSIONS.get(media_type)
    if extensions:
        return extensions[0]

    guessed = mimetypes.guess_all_extensions(media_type, strict=False)
    if guessed:
        return guessed[0].lstrip(".").lower()
    return ""


def resolve_extension_class(declared_media_type: Optional[str]) -> ExtensionClass:
    """
    Map a declared media type to its extension class.

    Never raises: a type with no mapping, or one whose extension has no
    decode strategy, resolves to ExtensionClass.UNKNOWN.
    """
    extension = first_extension(declared_media_type)
    resolved = _EXTENSION_CLASSES.get(extension, ExtensionClass.UNKNOWN)
    logger.debug(
        "Resolved media type %r -> extension %r (%s)",
        declared_media_type,
        extension or "unknown",
        resolved.value,
    )
    return resolved
