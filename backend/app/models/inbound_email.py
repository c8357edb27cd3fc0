"""
Provider-agnostic inbound email model.

These models represent a normalized inbound email after provider-specific
fields have been stripped away. The pipeline works exclusively with these
models; only the adapter layer knows about Postmark/Resend/raw MIME formats.
"""

from typing import Optional, Union
from pydantic import BaseModel


class InboundAttachment(BaseModel):
    """A single file attachment as delivered by the transport."""

    filename: str = ""
    content_type: str = ""
    disposition: Optional[str] = None   # "attachment", "inline" or None
    content: Union[bytes, str] = b""    # raw bytes, or text for textual parts

    @property
    def size(self) -> int:
        return len(self.content)


class InboundEmail(BaseModel):
    """
    Normalized inbound email, provider-agnostic.

    Only the first entry of ``attachments`` is ever inspected for a DMARC
    report.
    """

    sender_email: str = ""
    recipients: list[str] = []
    subject: Optional[str] = None
    date: Optional[str] = None
    message_id: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None
    attachments: list[InboundAttachment] = []
