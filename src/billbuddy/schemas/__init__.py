"""Bill, validation and report schemas."""

from .analysis import (
    AnalysisReport,
    BillAnalysisRecord,
    DetailedFinding,
    DisputeDocument,
    FlagAnnotation,
)
from .bill import LineItem, StructuredBill
from .common import (
    FLAG_SEVERITY,
    BillSummary,
    CodeType,
    FlagSeverity,
    FlagType,
    PatientInfo,
    ProviderInfo,
    safe_amount,
)
from .validation import (
    CodeCheck,
    DuplicateGroup,
    Flag,
    InvalidCodeDetail,
    OverchargeCheck,
    OverchargeDetail,
    ValidationResult,
)

__all__ = [
    # Common
    "CodeType",
    "FlagType",
    "FlagSeverity",
    "FLAG_SEVERITY",
    "PatientInfo",
    "ProviderInfo",
    "BillSummary",
    "safe_amount",
    # Bill
    "LineItem",
    "StructuredBill",
    # Validation
    "CodeCheck",
    "OverchargeCheck",
    "Flag",
    "DuplicateGroup",
    "OverchargeDetail",
    "InvalidCodeDetail",
    "ValidationResult",
    # Analysis
    "AnalysisReport",
    "DetailedFinding",
    "BillAnalysisRecord",
    "FlagAnnotation",
    "DisputeDocument",
]
