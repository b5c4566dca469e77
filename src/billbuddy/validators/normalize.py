"""Billing code normalization shared by the validators."""

import re

from ..schemas.common import CodeType

CPT_PATTERN = re.compile(r"^\d{5}$")


def strip_modifier(code: str) -> str:
    """Drop a modifier suffix such as ``-25`` from a procedure code."""
    return code.split("-", 1)[0].strip()


def normalize_code(code: str, code_type: str | None = None) -> str:
    """Normalize a code for comparison.

    Modifiers after a hyphen are removed, except for NDC codes where the
    hyphens separate labeler, product and package segments; those are
    compared with the separators removed. Three-digit revenue codes get
    their leading zero back.
    """
    code = code.strip().upper()
    if code_type == CodeType.NDC.value:
        return code.replace("-", "").replace(" ", "")
    code = strip_modifier(code)
    if code_type == CodeType.REV.value and len(code) == 3 and code.isdigit():
        code = code.zfill(4)
    return code


def is_cpt_format(code: str) -> bool:
    return bool(CPT_PATTERN.match(code))
