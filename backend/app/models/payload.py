"""
Pydantic models for the payload sent to the processing endpoint.

Field names are the endpoint's camelCase wire names, the same way the
Postmark payload model mirrors Postmark's PascalCase keys.

Models:
  EmailInfo         — descriptive fields of the message
  EmailContent      — HTML / text bodies and their lengths
  AttachmentInfo    — descriptor of the first attachment
  WorkerInfo        — static source / version tags
  ProcessingStats   — summary statistics and classification
  OutboundPayload   — the full hand-off unit
  DeliveryResponse  — JSON body returned by the processing endpoint
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from app.models.dmarc import DmarcRecordRow


class EmailType(str, Enum):
    """Mutually exclusive message classification."""
    REPORT = "dmarc_report"
    ATTACHMENT_ONLY = "attachment_only"
    PLAIN = "regular"


class EmailInfo(BaseModel):
    model_config = {"populate_by_name": True}

    from_: str = Field("unknown", alias="from")
    to: list[str] = []
    subject: str = "No subject"
    date: str
    messageId: str = "unknown"
    hasHtml: bool = False
    hasText: bool = False


class EmailContent(BaseModel):
    html: Optional[str] = None
    text: Optional[str] = None
    htmlLength: int = 0
    textLength: int = 0


class AttachmentInfo(BaseModel):
    """
    Attachment descriptor.

    content is None in retry payloads. Binary content is base64-encoded
    (contentEncoding="base64"); textual content is passed as-is.
    """
    filename: str = "unnamed"
    mimeType: str = "application/octet-stream"
    disposition: str = "attachment"
    size: int = 0
    content: Optional[str] = None
    contentEncoding: str = "base64"


class WorkerInfo(BaseModel):
    version: str
    source: str
    parser: str
    processingTimestamp: Optional[str] = None
    isRetry: bool = False


class ProcessingStats(BaseModel):
    totalRecords: int = 0
    hasAttachment: bool = False
    emailType: EmailType = EmailType.PLAIN
    hasHtmlContent: bool = False
    hasTextContent: bool = False
    processingDuration: int = 0   # milliseconds


class OutboundPayload(BaseModel):
    emailInfo: EmailInfo
    emailContent: EmailContent
    attachment: Optional[AttachmentInfo] = None
    dmarcRecords: list[DmarcRecordRow] = []
    processedAt: str
    workerInfo: WorkerInfo
    processingStats: Optional[ProcessingStats] = None

    def to_json_dict(self) -> dict:
        """Wire representation: aliases applied, enums as integers."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=False)


class DeliveryResponse(BaseModel):
    """
    Subset of the processing endpoint's JSON reply.

    Unknown fields are silently ignored.
    """
    model_config = {"extra": "ignore"}

    success: bool = False
    message: Optional[str] = None
    error: Optional[str] = None
    uploadedFileUrl: Optional[str] = None
    insertedRecords: Optional[int] = None
    processingTime: Optional[float] = None
    data: Any = None
