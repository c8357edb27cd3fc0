"""
Attachment decoder.

Turns the raw content of a report attachment into a single XML document
string. The strategy is chosen only by the extension class resolved from
the declared media type:

  gz   — inflate the byte stream (gzip or zlib wrapper, raw deflate accepted)
  zip  — read the first entry of the archive in central-directory order
  xml  — pass-through, decoding bytes to text if needed

Public API:
  decode_attachment(extension_class, content, max_bytes) -> str
"""

import io
import logging
import zipfile
import zlib
from typing import Union

from app.config import DEFAULT_MAX_DECOMPRESSED_BYTES
from app.services.errors import DecodeFailure, UnsupportedFormat
from app.services.media_type import ExtensionClass

logger = logging.getLogger(__name__)

# Tried in order; latin-1 never fails.
_TEXT_ENCODINGS = ["utf-8-sig", "windows-1252", "latin-1"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _as_bytes(content: Union[bytes, str]) -> bytes:
    """
    Binary strategies need bytes. Transports that hand over a str for a
    binary part use one code point per byte, so latin-1 round-trips it.
    """
    if isinstance(content, bytes):
        return content
    try:
        return content.encode("latin-1")
    except UnicodeEncodeError:
        return content.encode("utf-8")


def _bytes_to_text(data: bytes) -> str:
    for encoding in _TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    # Unreachable while latin-1 is in the list.
    raise DecodeFailure("Attachment text could not be decoded")


def _inflate(data: bytes, wbits: int, max_bytes: int) -> bytes:
    decompressor = zlib.decompressobj(wbits)
    output = decompressor.decompress(data, max_bytes + 1)
    if len(output) > max_bytes or decompressor.unconsumed_tail:
        raise DecodeFailure(
            f"Decompressed attachment exceeds {max_bytes} bytes"
        )
    output += decompressor.flush()
    if len(output) > max_bytes:
        raise DecodeFailure(
            f"Decompressed attachment exceeds {max_bytes} bytes"
        )
    if not decompressor.eof:
        raise DecodeFailure("Compressed stream is truncated")
    return output


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def _decode_gzip(content: Union[bytes, str], max_bytes: int) -> str:
    data = _as_bytes(content)
    if not data:
        raise DecodeFailure("Compressed attachment is empty")

    try:
        # MAX_WBITS | 32: accept either a gzip or a zlib header
        inflated = _inflate(data, zlib.MAX_WBITS | 32, max_bytes)
    except zlib.error as wrapped_error:
        try:
            inflated = _inflate(data, -zlib.MAX_WBITS, max_bytes)
        except zlib.error:
            raise DecodeFailure(
                f"Could not inflate compressed attachment: {wrapped_error}"
            ) from wrapped_error

    if not inflated:
        raise DecodeFailure("Compressed attachment inflated to nothing")

    logger.debug("Inflated %d bytes to %d bytes", len(data), len(inflated))
    return _bytes_to_text(inflated)


def _decode_zip(content: Union[bytes, str], max_bytes: int) -> str:
    data = _as_bytes(content)

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            entries = archive.infolist()
            if not entries:
                raise DecodeFailure("ZIP file is empty")

            logger.debug(
                "ZIP archive entries: %s", [entry.filename for entry in entries]
            )
            first = entries[0]
            if first.file_size > max_bytes:
                raise DecodeFailure(
                    f"ZIP entry {first.filename!r} declares {first.file_size} bytes, "
                    f"limit is {max_bytes}"
                )
            with archive.open(first) as handle:
                extracted = handle.read(max_bytes + 1)
    except DecodeFailure:
        raise
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        NotImplementedError,
        RuntimeError,
        zlib.error,
        EOFError,
        OSError,
        ValueError,
    ) as e:
        raise DecodeFailure(f"Could not read ZIP attachment: {e}") from e

    if len(extracted) > max_bytes:
        raise DecodeFailure(f"ZIP entry {first.filename!r} exceeds {max_bytes} bytes")
    if not extracted:
        raise DecodeFailure(f"ZIP entry {first.filename!r} is empty")

    logger.debug("Extracted %d bytes from %r", len(extracted), first.filename)
    return _bytes_to_text(extracted)


def _decode_xml(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content
    return _bytes_to_text(content)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def decode_attachment(
    extension_class: ExtensionClass,
    content: Union[bytes, str],
    max_bytes: int = DEFAULT_MAX_DECOMPRESSED_BYTES,
) -> str:
    """
    Decode attachment content into XML text.

    Args:
        extension_class: Result of resolve_extension_class() for the
                         attachment's declared media type.
        content:         Raw attachment content (bytes, or text).
        max_bytes:       Upper bound on decompressed size.

    Returns:
        The XML document as a str.

    Raises:
        UnsupportedFormat: extension_class has no decode strategy.
        DecodeFailure:     the strategy could not produce text (corrupt or
                           truncated stream, empty archive, size limit hit).
    """
    if extension_class == ExtensionClass.GZIP:
        return _decode_gzip(content, max_bytes)
    if extension_class == ExtensionClass.ZIP:
        return _decode_zip(content, max_bytes)
    if extension_class == ExtensionClass.XML:
        return _decode_xml(content)

    raise UnsupportedFormat(f"Unknown extension: {extension_class.value}")
