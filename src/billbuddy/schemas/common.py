"""Shared types for bill schemas."""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator


class CodeType(str, Enum):
    """Billing code systems the validation engine understands."""

    CPT = "CPT"
    REV = "REV"
    NDC = "NDC"
    ICD10 = "ICD-10"


class FlagType(str, Enum):
    """Kinds of issues the validation engine reports."""

    DUPLICATE = "duplicate"
    INVALID_CODE = "invalid_code"
    OVERCHARGE = "overcharge"


class FlagSeverity(str, Enum):
    """Severity level for a flagged issue."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Severity is fixed per flag type
FLAG_SEVERITY: dict[FlagType, FlagSeverity] = {
    FlagType.DUPLICATE: FlagSeverity.HIGH,
    FlagType.OVERCHARGE: FlagSeverity.HIGH,
    FlagType.INVALID_CODE: FlagSeverity.MEDIUM,
}

_NON_NUMERIC = re.compile(r"[^\d.\-]")


def safe_amount(value: Any) -> float:
    """Parse a currency value, treating anything unparsable as zero.

    Accepts numbers and strings such as ``"$1,250.00"``. Negative and
    non-finite results are clamped to 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            amount = float(value)
        except (OverflowError, ValueError):
            return 0.0
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        try:
            amount = float(cleaned)
        except ValueError:
            return 0.0
    if amount != amount or amount in (float("inf"), float("-inf")) or amount < 0:
        return 0.0
    return amount


class PatientInfo(BaseModel):
    """Patient details printed on the bill."""

    name: str | None = None
    dob: str | None = None
    account_number: str | None = None

    @field_validator("name", "dob", "account_number", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class ProviderInfo(BaseModel):
    """Healthcare provider or facility that issued the bill."""

    name: str | None = None
    address: str | None = None

    @field_validator("name", "address", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class BillSummary(BaseModel):
    """Totals printed on the bill."""

    total_charges: float = 0.0
    insurance_paid: float = 0.0
    patient_responsibility: float = 0.0

    @field_validator(
        "total_charges", "insurance_paid", "patient_responsibility", mode="before"
    )
    @classmethod
    def _coerce_amount(cls, value: Any) -> float:
        return safe_amount(value)
