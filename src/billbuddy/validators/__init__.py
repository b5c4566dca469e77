"""Deterministic validation engine for structured medical bills."""

from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from ..config import load_validation_config
from ..schemas.bill import StructuredBill
from ..schemas.validation import ValidationResult
from .code_validator import CodeValidator
from .duplicate_detection import DuplicateDetector
from .engine import ValidationEngine, coerce_line_items, compute_potential_savings
from .normalize import normalize_code, strip_modifier
from .overcharge import OverchargeDetector

__all__ = [
    "CodeValidator",
    "DuplicateDetector",
    "OverchargeDetector",
    "ValidationEngine",
    "coerce_line_items",
    "compute_potential_savings",
    "default_engine",
    "normalize_code",
    "run_validation",
    "strip_modifier",
]


@lru_cache(maxsize=1)
def default_engine() -> ValidationEngine:
    """Engine built from the packaged reference tables and the config file policy."""
    return ValidationEngine.from_config(load_validation_config())


def run_validation(
    bill_id: str, structured_bill: StructuredBill | Mapping[str, Any]
) -> ValidationResult:
    """Validate a bill with the default engine.

    Checks, in flag order:
    - Duplicate charges: repeated codes or equivalent codes, first occurrence kept
    - Invalid codes: CPT against the reference table, other types by format
    - Overcharges: CPT charges above the benchmark price
    """
    return default_engine().run_validation(bill_id, structured_bill)
