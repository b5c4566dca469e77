"""Structured bill schema produced by the extraction step."""

from typing import Any

from pydantic import BaseModel, field_validator

from .common import BillSummary, CodeType, PatientInfo, ProviderInfo, safe_amount

# Spellings the extraction model uses for the same code system
_CODE_TYPE_ALIASES = {
    "ICD10": CodeType.ICD10.value,
    "ICD-10-CM": CodeType.ICD10.value,
    "ICD": CodeType.ICD10.value,
    "REVENUE": CodeType.REV.value,
    "REV CODE": CodeType.REV.value,
    "HCPCS/CPT": CodeType.CPT.value,
}


class LineItem(BaseModel):
    """One billed charge."""

    description: str = ""
    code: str | None = None
    code_type: str | None = None
    quantity: int = 1
    unit_price: float = 0.0
    total_charge: float = 0.0

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("code", mode="before")
    @classmethod
    def _coerce_code(cls, value: Any) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("code_type", mode="before")
    @classmethod
    def _coerce_code_type(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip().upper()
        if not text:
            return None
        return _CODE_TYPE_ALIASES.get(text, text)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> int:
        quantity = int(safe_amount(value))
        return quantity if quantity >= 1 else 1

    @field_validator("unit_price", "total_charge", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> float:
        return safe_amount(value)


class StructuredBill(BaseModel):
    """Bill contents as returned by the extraction model."""

    patient_info: PatientInfo = PatientInfo()
    provider: ProviderInfo = ProviderInfo()
    service_date: str | None = None
    line_items: list[LineItem] = []
    summary: BillSummary = BillSummary()

    @field_validator("patient_info", "provider", "summary", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("service_date", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("line_items", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value
