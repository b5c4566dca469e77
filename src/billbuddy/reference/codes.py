"""Reference table of known billing codes."""

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict


class CodeDescriptor(BaseModel):
    """What the reference table knows about one code."""

    model_config = ConfigDict(frozen=True)

    description: str
    valid: bool = True
    note: str | None = None


def _cpt(description: str) -> CodeDescriptor:
    return CodeDescriptor(description=description)


def _deleted(description: str, year: int) -> CodeDescriptor:
    return CodeDescriptor(
        description=description,
        valid=False,
        note=f"deleted from the CPT code set in {year}",
    )


DEFAULT_CODE_REFERENCE: dict[str, dict[str, CodeDescriptor]] = {
    "CPT": {
        "99211": _cpt("Office visit, established patient, minimal"),
        "99212": _cpt("Office visit, established patient, straightforward"),
        "99213": _cpt("Office visit, established patient, low complexity"),
        "99214": _cpt("Office visit, established patient, moderate complexity"),
        "99215": _cpt("Office visit, established patient, high complexity"),
        "99202": _cpt("Office visit, new patient, straightforward"),
        "99203": _cpt("Office visit, new patient, low complexity"),
        "99204": _cpt("Office visit, new patient, moderate complexity"),
        "99205": _cpt("Office visit, new patient, high complexity"),
        "99281": _cpt("Emergency department visit, minimal"),
        "99282": _cpt("Emergency department visit, straightforward"),
        "99283": _cpt("Emergency department visit, low complexity"),
        "99284": _cpt("Emergency department visit, moderate complexity"),
        "99285": _cpt("Emergency department visit, high complexity"),
        "36415": _cpt("Routine venipuncture"),
        "80053": _cpt("Comprehensive metabolic panel"),
        "80061": _cpt("Lipid panel"),
        "85025": _cpt("Complete blood count with differential"),
        "81001": _cpt("Urinalysis, automated, with microscopy"),
        "71045": _cpt("Chest X-ray, single view"),
        "71046": _cpt("Chest X-ray, two views"),
        "93000": _cpt("Electrocardiogram with interpretation"),
        "70450": _cpt("CT head/brain without contrast"),
        "72148": _cpt("MRI lumbar spine without contrast"),
        "74176": _cpt("CT abdomen and pelvis without contrast"),
        "74177": _cpt("CT abdomen and pelvis with contrast"),
        "96360": _cpt("IV infusion, hydration, initial hour"),
        "96374": _cpt("IV push, single drug, initial"),
        "97110": _cpt("Therapeutic exercise, each 15 minutes"),
        "99201": _deleted("Office visit, new patient, minimal", 2021),
        "99343": _deleted("Home visit, new patient, moderate complexity", 2023),
    },
    "REV": {
        "0250": CodeDescriptor(description="Pharmacy, general"),
        "0270": CodeDescriptor(description="Medical/surgical supplies, general"),
        "0272": CodeDescriptor(description="Sterile supplies"),
        "0300": CodeDescriptor(description="Laboratory, general"),
        "0320": CodeDescriptor(description="Radiology, diagnostic"),
        "0350": CodeDescriptor(description="CT scan, general"),
        "0450": CodeDescriptor(description="Emergency room, general"),
        "0636": CodeDescriptor(description="Drugs requiring detailed coding"),
    },
}


class CodeReferenceTable:
    """Read-only lookup of codes by code type."""

    def __init__(self, entries: Mapping[str, Mapping[str, CodeDescriptor]]):
        self._entries = MappingProxyType(
            {
                code_type.upper(): MappingProxyType(dict(codes))
                for code_type, codes in entries.items()
            }
        )

    @classmethod
    def default(cls) -> "CodeReferenceTable":
        return cls(DEFAULT_CODE_REFERENCE)

    def lookup(self, code: str, code_type: str) -> CodeDescriptor | None:
        codes = self._entries.get(code_type.upper())
        if codes is None:
            return None
        return codes.get(code)

    def description(self, code: str, code_type: str) -> str | None:
        descriptor = self.lookup(code, code_type)
        return descriptor.description if descriptor else None
