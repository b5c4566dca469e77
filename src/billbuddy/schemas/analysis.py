"""Report, persistence and dispute document schemas."""

from typing import Any, Literal

from pydantic import BaseModel

from .common import FlagSeverity, FlagType


class DetailedFinding(BaseModel):
    """One issue explained for the patient."""

    issue: str
    impact: str | None = None
    recommendation: str | None = None


class AnalysisReport(BaseModel):
    """Patient-facing analysis of a validated bill."""

    summary: str = "Analysis complete"
    total_flags: int = 0
    potential_savings: float = 0.0
    detailed_findings: list[DetailedFinding] = []
    recommendations: list[str] = []
    severity: Literal["low", "medium", "high"] = "low"


class BillAnalysisRecord(BaseModel):
    """Analysis row stored for a bill."""

    bill_id: str
    total_flags: int
    potential_savings: float
    summary: str
    detailed_report: dict[str, Any]
    recommendations: list[str] = []


class FlagAnnotation(BaseModel):
    """Flag metadata written back onto a persisted line item."""

    flag_type: FlagType
    flag_severity: FlagSeverity
    flag_explanation: str


class DisputeDocument(BaseModel):
    """A generated dispute letter or email."""

    bill_id: str
    document_type: Literal["dispute_letter", "email_template"]
    content: str
    subject: str | None = None
