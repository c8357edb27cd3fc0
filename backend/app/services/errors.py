"""
Exceptions raised while turning an attachment into DMARC report rows.

All four report errors share ReportProcessingError as a base so the
pipeline can catch them at one boundary and fall back to "no report data".
"""


class ReportProcessingError(Exception):
    """Base class for attachment decode / parse / normalize failures."""

    error_code = "report_processing_error"

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class UnsupportedFormat(ReportProcessingError):
    """Declared media type maps to no known decode strategy."""

    error_code = "unsupported_format"


class DecodeFailure(ReportProcessingError):
    """The chosen decode strategy could not recover XML text."""

    error_code = "decode_failure"


class MalformedXML(ReportProcessingError):
    """Decoded text is not well-formed XML."""

    error_code = "malformed_xml"


class InvalidReportStructure(ReportProcessingError):
    """Well-formed XML that lacks a required report substructure."""

    error_code = "invalid_report_structure"


class DeliveryError(Exception):
    """Raised when the processing endpoint call fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
