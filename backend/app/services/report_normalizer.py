"""
DMARC aggregate report normalization.

Converts the generic tree of a parsed <feedback> document into one
DmarcRecordRow per <record>. Report metadata and published policy are
extracted once and copied onto every row.

Missing or malformed optional fields never drop a row; they fall back to
"" for strings, 0 for integers and the 0 member for enumerations. Only a
missing required block (feedback, report_metadata, policy_published,
record) rejects the document.
"""

import json
import logging
import re
from typing import Optional

from app.models.dmarc import (
    DmarcRecordRow,
    PolicyPublished,
    ReportMetadata,
    coerce_alignment,
    coerce_disposition,
    coerce_override_reason,
    coerce_result,
)
from app.services.errors import InvalidReportStructure
from app.services.xml_tree import (
    Node,
    ObjectNode,
    SequenceNode,
    as_sequence,
    child,
    path,
    text,
    to_plain,
)

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def parse_int(value: Optional[str]) -> int:
    """
    Parse the leading integer of a string.

    Examples:
        "1700000000"    -> 1700000000
        " 42 "          -> 42
        "100abc"        -> 100
        "1.5"           -> 1
        "abc"           -> 0
        None            -> 0
    """
    if not isinstance(value, str):
        return 0
    match = _LEADING_INT_RE.match(value)
    if not match:
        return 0
    return int(match.group(1))


def normalize_report_id(report_id: Optional[str]) -> str:
    """Replace every hyphen with an underscore; None -> ""."""
    if not isinstance(report_id, str):
        return ""
    return report_id.replace("-", "_")


def _string(node: Optional[Node]) -> str:
    value = text(node)
    return value if value is not None else ""


def _error_json(node: Optional[Node]) -> str:
    """JSON form of <error> content: a string for one, a list for several."""
    if node is None:
        return ""
    return json.dumps(to_plain(node), ensure_ascii=False, separators=(",", ":"))


def _is_block(node: Optional[Node]) -> bool:
    """True when node is an element with children (or a run of them)."""
    if isinstance(node, SequenceNode):
        return bool(node.items) and isinstance(node.items[0], ObjectNode)
    return isinstance(node, ObjectNode)


# ---------------------------------------------------------------------------
# Block extraction
# ---------------------------------------------------------------------------

def extract_report_metadata(metadata: Node) -> ReportMetadata:
    return ReportMetadata(
        report_id=normalize_report_id(text(child(metadata, "report_id"))),
        org_name=_string(child(metadata, "org_name")),
        date_range_begin=parse_int(text(path(metadata, "date_range", "begin"))),
        date_range_end=parse_int(text(path(metadata, "date_range", "end"))),
        error=_error_json(child(metadata, "error")),
    )


def extract_policy_published(policy: Node) -> PolicyPublished:
    return PolicyPublished(
        domain=_string(child(policy, "domain")),
        adkim=coerce_alignment(text(child(policy, "adkim"))),
        aspf=coerce_alignment(text(child(policy, "aspf"))),
        p=coerce_disposition(text(child(policy, "p"))),
        sp=coerce_disposition(text(child(policy, "sp"))),
        pct=parse_int(text(child(policy, "pct"))),
    )


def build_record_row(
    record: Node,
    metadata: ReportMetadata,
    policy: PolicyPublished,
) -> DmarcRecordRow:
    row = child(record, "row")
    evaluated = child(row, "policy_evaluated")
    identifiers = child(record, "identifiers")

    return DmarcRecordRow.from_report(
        metadata,
        policy,
        record_row_source_ip=_string(child(row, "source_ip")),
        record_row_count=parse_int(text(child(row, "count"))),
        record_row_policy_evaluated_dkim=coerce_result(text(child(evaluated, "dkim"))),
        record_row_policy_evaluated_spf=coerce_result(text(child(evaluated, "spf"))),
        record_row_policy_evaluated_disposition=coerce_disposition(
            text(child(evaluated, "disposition"))
        ),
        record_row_policy_evaluated_reason_type=coerce_override_reason(
            text(path(evaluated, "reason", "type"))
        ),
        record_identifiers_envelope_to=_string(child(identifiers, "envelope_to")),
        record_identifiers_header_from=_string(child(identifiers, "header_from")),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def normalize_report(tree: Node) -> list[DmarcRecordRow]:
    """
    Convert a parsed report tree into rows, one per <record>, in document
    order.

    Raises:
        InvalidReportStructure: feedback, report_metadata, policy_published
                                or record is missing.
    """
    feedback = child(tree, "feedback")
    metadata_node = child(feedback, "report_metadata")
    policy_node = child(feedback, "policy_published")
    record_nodes = as_sequence(child(feedback, "record"))

    missing = [
        name
        for name, present in (
            ("feedback", _is_block(feedback)),
            ("report_metadata", _is_block(metadata_node)),
            ("policy_published", _is_block(policy_node)),
            ("record", bool(record_nodes)),
        )
        if not present
    ]
    if missing:
        raise InvalidReportStructure(
            f"Invalid DMARC report: missing {', '.join(missing)}"
        )

    metadata = extract_report_metadata(metadata_node)
    policy = extract_policy_published(policy_node)

    rows = [build_record_row(record, metadata, policy) for record in record_nodes]
    logger.debug(
        "Normalized report %r from %r into %d rows",
        metadata.report_id,
        metadata.org_name,
        len(rows),
    )
    return rows
