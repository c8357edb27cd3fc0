"""
Pydantic models and enumerations for DMARC aggregate report rows.

The enumerations are closed sets. Each has a lookup table keyed by the
string that appears in the report XML; anything not in the table maps to
the member with value 0.
"""

from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, Field


class AlignmentType(IntEnum):
    RELAXED = 0
    STRICT = 1


class DMARCResultType(IntEnum):
    FAIL = 0
    PASS = 1


class DispositionType(IntEnum):
    NONE = 0
    QUARANTINE = 1
    REJECT = 2


class PolicyOverrideType(IntEnum):
    OTHER = 0
    FORWARDED = 1
    SAMPLED_OUT = 2
    TRUSTED_FORWARDER = 3
    MAILING_LIST = 4
    LOCAL_POLICY = 5


# Reports carry "r" / "s" for adkim and aspf; the long forms show up in
# some hand-written reports.
_ALIGNMENT_LOOKUP: dict[str, AlignmentType] = {
    "r": AlignmentType.RELAXED,
    "relaxed": AlignmentType.RELAXED,
    "s": AlignmentType.STRICT,
    "strict": AlignmentType.STRICT,
}

_RESULT_LOOKUP: dict[str, DMARCResultType] = {
    "fail": DMARCResultType.FAIL,
    "pass": DMARCResultType.PASS,
}

_DISPOSITION_LOOKUP: dict[str, DispositionType] = {
    "none": DispositionType.NONE,
    "quarantine": DispositionType.QUARANTINE,
    "reject": DispositionType.REJECT,
}

_OVERRIDE_LOOKUP: dict[str, PolicyOverrideType] = {
    "other": PolicyOverrideType.OTHER,
    "forwarded": PolicyOverrideType.FORWARDED,
    "sampled_out": PolicyOverrideType.SAMPLED_OUT,
    "trusted_forwarder": PolicyOverrideType.TRUSTED_FORWARDER,
    "mailing_list": PolicyOverrideType.MAILING_LIST,
    "local_policy": PolicyOverrideType.LOCAL_POLICY,
}


def _lookup_key(value: Optional[str]) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def coerce_alignment(value: Optional[str]) -> AlignmentType:
    """'r' -> RELAXED, 's' -> STRICT, anything else -> RELAXED."""
    return _ALIGNMENT_LOOKUP.get(_lookup_key(value), AlignmentType.RELAXED)


def coerce_result(value: Optional[str]) -> DMARCResultType:
    return _RESULT_LOOKUP.get(_lookup_key(value), DMARCResultType.FAIL)


def coerce_disposition(value: Optional[str]) -> DispositionType:
    return _DISPOSITION_LOOKUP.get(_lookup_key(value), DispositionType.NONE)


def coerce_override_reason(value: Optional[str]) -> PolicyOverrideType:
    return _OVERRIDE_LOOKUP.get(_lookup_key(value), PolicyOverrideType.OTHER)


# ---------------------------------------------------------------------------
# Report-level blocks
# ---------------------------------------------------------------------------

class ReportMetadata(BaseModel):
    """<report_metadata> after normalization."""
    model_config = {"frozen": True}

    report_id: str = ""
    org_name: str = ""
    date_range_begin: int = 0   # epoch seconds
    date_range_end: int = 0     # epoch seconds
    error: str = ""             # JSON-serialized <error> content, "" when absent


class PolicyPublished(BaseModel):
    """<policy_published> after normalization."""
    model_config = {"frozen": True}

    domain: str = ""
    adkim: AlignmentType = AlignmentType.RELAXED
    aspf: AlignmentType = AlignmentType.RELAXED
    p: DispositionType = DispositionType.NONE
    sp: DispositionType = DispositionType.NONE
    pct: int = 0


class DmarcRecordRow(BaseModel):
    """
    One flattened row per <record> in a report.

    Report metadata and published policy are copied onto every row, so all
    rows of one report share those fields. Serialize with by_alias=True to
    get the camelCase column names expected by the processing endpoint.
    """
    model_config = {"frozen": True, "populate_by_name": True}

    report_metadata_report_id: str = Field("", alias="reportMetadataReportId")
    report_metadata_org_name: str = Field("", alias="reportMetadataOrgName")
    report_metadata_date_range_begin: int = Field(0, alias="reportMetadataDateRangeBegin")
    report_metadata_date_range_end: int = Field(0, alias="reportMetadataDateRangeEnd")
    report_metadata_error: str = Field("", alias="reportMetadataError")

    policy_published_domain: str = Field("", alias="policyPublishedDomain")
    policy_published_adkim: AlignmentType = Field(
        AlignmentType.RELAXED, alias="policyPublishedADKIM"
    )
    policy_published_aspf: AlignmentType = Field(
        AlignmentType.RELAXED, alias="policyPublishedASPF"
    )
    policy_published_p: DispositionType = Field(DispositionType.NONE, alias="policyPublishedP")
    policy_published_sp: DispositionType = Field(DispositionType.NONE, alias="policyPublishedSP")
    policy_published_pct: int = Field(0, alias="policyPublishedPct")

    record_row_source_ip: str = Field("", alias="recordRowSourceIP")
    record_row_count: int = Field(0, alias="recordRowCount")
    record_row_policy_evaluated_dkim: DMARCResultType = Field(
        DMARCResultType.FAIL, alias="recordRowPolicyEvaluatedDKIM"
    )
    record_row_policy_evaluated_spf: DMARCResultType = Field(
        DMARCResultType.FAIL, alias="recordRowPolicyEvaluatedSPF"
    )
    record_row_policy_evaluated_disposition: DispositionType = Field(
        DispositionType.NONE, alias="recordRowPolicyEvaluatedDisposition"
    )
    record_row_policy_evaluated_reason_type: PolicyOverrideType = Field(
        PolicyOverrideType.OTHER, alias="recordRowPolicyEvaluatedReasonType"
    )
    record_identifiers_envelope_to: str = Field("", alias="recordIdentifiersEnvelopeTo")
    record_identifiers_header_from: str = Field("", alias="recordIdentifiersHeaderFrom")

    @classmethod
    def from_report(
        cls,
        metadata: ReportMetadata,
        policy: PolicyPublished,
        **record_fields,
    ) -> "DmarcRecordRow":
        """Build a row from the shared report blocks plus per-record fields."""
        return cls(
            report_metadata_report_id=metadata.report_id,
            report_metadata_org_name=metadata.org_name,
            report_metadata_date_range_begin=metadata.date_range_begin,
            report_metadata_date_range_end=metadata.date_range_end,
            report_metadata_error=metadata.error,
            policy_published_domain=policy.domain,
            policy_published_adkim=policy.adkim,
            policy_published_aspf=policy.aspf,
            policy_published_p=policy.p,
            policy_published_sp=policy.sp,
            policy_published_pct=policy.pct,
            **record_fields,
        )
