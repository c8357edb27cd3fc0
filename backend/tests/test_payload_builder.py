"""
Unit tests for outbound payload assembly.
"""

import base64
from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.models.dmarc import DmarcRecordRow, PolicyPublished, ReportMetadata
from app.models.inbound_email import InboundAttachment, InboundEmail
from app.models.payload import EmailType
from app.services.payload_builder import (
    build_attachment_info,
    build_payload,
    build_retry_payload,
    determine_email_type,
    sanitize_string,
    validate_payload,
)

_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _settings(**overrides) -> Settings:
    defaults = dict(processing_endpoint_url="https://processor.example/ingest", worker_version="9.9.9")
    defaults.update(overrides)
    return Settings(**defaults)


def _email(**overrides) -> InboundEmail:
    defaults = dict(
        sender_email="noreply-dmarc@google.com",
        recipients=["dmarc@example.com"],
        subject="Report domain: example.com",
        date="2024-03-01T11:59:00Z",
        message_id="<abc@google.com>",
        html=None,
        text="Aggregate report attached.",
        attachments=[],
    )
    defaults.update(overrides)
    return InboundEmail(**defaults)


def _attachment(**overrides) -> InboundAttachment:
    defaults = dict(
        filename="google.com!example.com!1700000000!1700086399.xml.gz",
        content_type="application/gzip",
        disposition="attachment",
        content=b"\x1f\x8b\x08\x00binary",
    )
    defaults.update(overrides)
    return InboundAttachment(**defaults)


def _row(source_ip: str = "10.0.0.1", count: int = 1) -> DmarcRecordRow:
    return DmarcRecordRow.from_report(
        ReportMetadata(report_id="r_1", org_name="google.com", date_range_begin=1, date_range_end=2, error=""),
        PolicyPublished(domain="example.com", adkim=1, aspf=0, p=2, sp=0, pct=100),
        record_row_source_ip=source_ip,
        record_row_count=count,
    )


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestDetermineEmailType:

    def test_no_attachment_is_plain(self):
        assert determine_email_type(None, []) == EmailType.PLAIN

    def test_attachment_without_rows_is_attachment_only(self):
        assert determine_email_type(_attachment(), []) == EmailType.ATTACHMENT_ONLY

    def test_attachment_with_rows_is_report(self):
        assert determine_email_type(_attachment(), [_row()]) == EmailType.REPORT

    def test_wire_values(self):
        assert EmailType.REPORT.value == "dmarc_report"
        assert EmailType.ATTACHMENT_ONLY.value == "attachment_only"
        assert EmailType.PLAIN.value == "regular"


# ---------------------------------------------------------------------------
# sanitize_string
# ---------------------------------------------------------------------------

class TestSanitizeString:

    def test_control_characters_are_removed(self):
        assert sanitize_string("Report\r\n\tdomain\x00") == "Reportdomain"

    def test_replacement_character_becomes_question_mark(self):
        assert sanitize_string("Caf\ufffd") == "Caf?"

    def test_surrounding_whitespace_is_trimmed(self):
        assert sanitize_string("   subject  ") == "subject"

    def test_long_values_are_capped(self):
        result = sanitize_string("x" * 250)
        assert result == "x" * 200 + "..."

    @pytest.mark.parametrize("value", [None, "", "   ", "\x00\x01"])
    def test_empty_values_become_unknown(self, value):
        assert sanitize_string(value) == "unknown"

    def test_non_string_becomes_unknown(self):
        assert sanitize_string(42) == "unknown"


# ---------------------------------------------------------------------------
# build_payload
# ---------------------------------------------------------------------------

class TestBuildPayload:

    def test_plain_message(self):
        payload = build_payload(_email(), None, [], _settings(), now=_NOW)
        assert payload.attachment is None
        assert payload.dmarcRecords == []
        assert payload.processingStats.emailType == EmailType.PLAIN
        assert payload.processingStats.hasAttachment is False

    def test_report_message(self):
        rows = [_row("10.0.0.1", 12), _row("10.0.0.2", 3)]
        payload = build_payload(_email(), _attachment(), rows, _settings(), now=_NOW)
        assert payload.processingStats.emailType == EmailType.REPORT
        assert payload.processingStats.totalRecords == 2
        assert [r.record_row_source_ip for r in payload.dmarcRecords] == ["10.0.0.1", "10.0.0.2"]

    def test_attachment_only_message_keeps_descriptor(self):
        attachment = _attachment(filename="invoice.pdf", content_type="application/pdf", content=b"%PDF-1.4")
        payload = build_payload(_email(), attachment, [], _settings(), now=_NOW)
        assert payload.processingStats.emailType == EmailType.ATTACHMENT_ONLY
        assert payload.attachment.filename == "invoice.pdf"
        assert payload.attachment.mimeType == "application/pdf"
        assert payload.attachment.size == 8

    def test_email_info_fields(self):
        payload = build_payload(_email(html="<p>hi</p>"), None, [], _settings(), now=_NOW)
        info = payload.emailInfo
        assert info.from_ == "noreply-dmarc@google.com"
        assert info.to == ["dmarc@example.com"]
        assert info.subject == "Report domain: example.com"
        assert info.messageId == "<abc@google.com>"
        assert info.hasHtml is True
        assert info.hasText is True

    def test_missing_fields_fall_back_to_sentinels(self):
        email = _email(sender_email="", recipients=[], subject=None, date=None, message_id=None)
        payload = build_payload(email, None, [], _settings(), now=_NOW)
        info = payload.emailInfo
        assert info.from_ == "unknown"
        assert info.to == []
        assert info.subject == "No subject"
        assert info.date == _NOW.isoformat()
        assert info.messageId == "unknown"

    def test_blank_and_unknown_recipients_are_dropped(self):
        email = _email(recipients=["a@example.com", "  ", "unknown", "b@example.com"])
        payload = build_payload(email, None, [], _settings(), now=_NOW)
        assert payload.emailInfo.to == ["a@example.com", "b@example.com"]

    def test_subject_is_sanitized(self):
        payload = build_payload(_email(subject="Report\r\n domain"), None, [], _settings(), now=_NOW)
        assert payload.emailInfo.subject == "Report domain"

    def test_email_content_lengths(self):
        payload = build_payload(_email(html="<p>hi</p>", text=None), None, [], _settings(), now=_NOW)
        assert payload.emailContent.html == "<p>hi</p>"
        assert payload.emailContent.htmlLength == 9
        assert payload.emailContent.text is None
        assert payload.emailContent.textLength == 0

    def test_worker_info_comes_from_settings(self):
        payload = build_payload(_email(), None, [], _settings(), now=_NOW)
        assert payload.workerInfo.version == "9.9.9"
        assert payload.workerInfo.source == "dmarc-email-relay"
        assert payload.workerInfo.isRetry is False
        assert payload.workerInfo.processingTimestamp == _NOW.isoformat()
        assert payload.processedAt == _NOW.isoformat()

    def test_processing_duration_in_milliseconds(self):
        started = _NOW - timedelta(milliseconds=250)
        payload = build_payload(_email(), None, [], _settings(), started_at=started, now=_NOW)
        assert payload.processingStats.processingDuration == 250


class TestAttachmentInfo:

    def test_binary_content_is_base64(self):
        raw = b"\x1f\x8b\x08\x00binary"
        info = build_attachment_info(_attachment(content=raw))
        assert info.contentEncoding == "base64"
        assert base64.b64decode(info.content) == raw

    def test_text_content_is_passed_through(self):
        info = build_attachment_info(_attachment(content_type="text/xml", content="<feedback/>"))
        assert info.content == "<feedback/>"
        assert info.contentEncoding == "text"

    def test_content_can_be_omitted(self):
        info = build_attachment_info(_attachment(), include_content=False)
        assert info.content is None

    def test_blank_filename_becomes_unnamed(self):
        assert build_attachment_info(_attachment(filename="")).filename == "unnamed"

    def test_missing_type_and_disposition_defaults(self):
        info = build_attachment_info(_attachment(content_type="", disposition=None))
        assert info.mimeType == "application/octet-stream"
        assert info.disposition == "attachment"


# ---------------------------------------------------------------------------
# Retry payload
# ---------------------------------------------------------------------------

class TestBuildRetryPayload:

    def test_retry_payload_is_simplified(self):
        payload = build_retry_payload(_email(), _attachment(), [_row()], _settings(), now=_NOW)
        assert payload.workerInfo.isRetry is True
        assert payload.processingStats is None
        assert payload.attachment.content is None
        assert len(payload.dmarcRecords) == 1

    def test_retry_payload_without_attachment(self):
        payload = build_retry_payload(_email(), None, [], _settings(), now=_NOW)
        assert payload.attachment is None


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------

class TestWireFormat:

    def test_top_level_keys(self):
        wire = build_payload(_email(), _attachment(), [_row()], _settings(), now=_NOW).to_json_dict()
        assert list(wire) == [
            "emailInfo",
            "emailContent",
            "attachment",
            "dmarcRecords",
            "processedAt",
            "workerInfo",
            "processingStats",
        ]

    def test_sender_is_serialized_as_from(self):
        wire = build_payload(_email(), None, [], _settings(), now=_NOW).to_json_dict()
        assert wire["emailInfo"]["from"] == "noreply-dmarc@google.com"
        assert "from_" not in wire["emailInfo"]

    def test_records_use_camel_case_and_integer_enums(self):
        wire = build_payload(_email(), _attachment(), [_row()], _settings(), now=_NOW).to_json_dict()
        record = wire["dmarcRecords"][0]
        assert record["reportMetadataOrgName"] == "google.com"
        assert record["recordRowSourceIP"] == "10.0.0.1"
        assert record["policyPublishedADKIM"] == 1
        assert record["policyPublishedP"] == 2

    def test_email_type_is_serialized_as_string(self):
        wire = build_payload(_email(), _attachment(), [_row()], _settings(), now=_NOW).to_json_dict()
        assert wire["processingStats"]["emailType"] == "dmarc_report"

    def test_missing_attachment_is_null(self):
        wire = build_payload(_email(), None, [], _settings(), now=_NOW).to_json_dict()
        assert wire["attachment"] is None


# ---------------------------------------------------------------------------
# validate_payload
# ---------------------------------------------------------------------------

class TestValidatePayload:

    def test_complete_payload_has_no_warnings(self):
        payload = build_payload(_email(), _attachment(), [_row()], _settings(), now=_NOW)
        assert validate_payload(payload) == []

    def test_missing_fields_produce_warnings(self):
        email = _email(sender_email="", recipients=[], subject=None)
        payload = build_payload(email, _attachment(filename="", content=b""), [], _settings(), now=_NOW)
        warnings = validate_payload(payload)
        assert len(warnings) == 4
        assert any("Sender" in w for w in warnings)
        assert any("Recipient" in w for w in warnings)
        assert any("subject" in w for w in warnings)
        assert any("Attachment" in w for w in warnings)
