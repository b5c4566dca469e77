"""Billing code validation against format rules and the code reference table."""

import re

from ..reference.codes import CodeReferenceTable
from ..schemas.common import CodeType
from ..schemas.validation import CodeCheck
from .normalize import is_cpt_format, normalize_code

REV_PATTERN = re.compile(r"^\d{4}$")
NDC_PATTERNS = (
    re.compile(r"^\d{10,11}$"),
    re.compile(r"^\d{4}-\d{4}-\d{2}$"),
    re.compile(r"^\d{5}-\d{3}-\d{2}$"),
    re.compile(r"^\d{5}-\d{4}-\d{1,2}$"),
)
ICD10_PATTERN = re.compile(r"^[A-Z]\d[0-9A-Z](\.?[0-9A-Z]{1,4})?$")


class CodeValidator:
    """Decides whether a billing code is valid for its declared type.

    CPT codes are checked against the reference table when listed; every
    other well-formed code is accepted on format alone. Code types the
    validator does not recognize are always accepted.
    """

    def __init__(self, reference: CodeReferenceTable):
        self.reference = reference

    def validate(self, code: str, code_type: str) -> CodeCheck:
        code_type = (code_type or "").strip().upper()
        raw = (code or "").strip().upper()
        if not raw:
            return CodeCheck(valid=False, message="Code is empty")

        if code_type == CodeType.CPT.value:
            return self._validate_cpt(normalize_code(raw, code_type))
        if code_type == CodeType.REV.value:
            normalized = normalize_code(raw, code_type)
            if REV_PATTERN.match(normalized):
                return self._known(normalized, code_type, "revenue code")
            return CodeCheck(
                valid=False, message="Revenue codes must be 4 digits (e.g. 0450)"
            )
        if code_type == CodeType.NDC.value:
            if any(pattern.match(raw) for pattern in NDC_PATTERNS):
                return CodeCheck(valid=True, message="Valid NDC format")
            return CodeCheck(
                valid=False,
                message="NDC codes must be 10 or 11 digits (e.g. 12345-678-90)",
            )
        if code_type == CodeType.ICD10.value:
            if ICD10_PATTERN.match(raw):
                return CodeCheck(valid=True, message="Valid ICD-10 format")
            return CodeCheck(
                valid=False,
                message="ICD-10 codes start with a letter followed by digits (e.g. R07.9)",
            )

        return CodeCheck(
            valid=True,
            message=f"Code type '{code_type or 'unknown'}' is not validated",
        )

    def _validate_cpt(self, code: str) -> CodeCheck:
        if not is_cpt_format(code):
            return CodeCheck(valid=False, message="CPT codes must be 5 digits")
        descriptor = self.reference.lookup(code, CodeType.CPT.value)
        if descriptor is None:
            return CodeCheck(valid=True, message="Valid CPT format")
        if not descriptor.valid:
            reason = descriptor.note or "not a billable CPT code"
            return CodeCheck(
                valid=False, message=f"{descriptor.description} ({reason})"
            )
        return CodeCheck(valid=True, message=descriptor.description)

    def _known(self, code: str, code_type: str, label: str) -> CodeCheck:
        description = self.reference.description(code, code_type)
        return CodeCheck(valid=True, message=description or f"Valid {label} format")
