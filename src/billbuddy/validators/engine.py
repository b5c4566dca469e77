"""Validation orchestrator: runs every check over one structured bill."""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..config import ValidationConfig
from ..errors import InvalidBillError
from ..reference.benchmarks import BenchmarkPriceTable
from ..reference.codes import CodeReferenceTable
from ..schemas.bill import LineItem, StructuredBill
from ..schemas.common import FLAG_SEVERITY, CodeType, FlagType
from ..schemas.validation import (
    Flag,
    InvalidCodeDetail,
    OverchargeDetail,
    ValidationResult,
)
from .code_validator import CodeValidator
from .duplicate_detection import DuplicateDetector
from .normalize import is_cpt_format, normalize_code
from .overcharge import OverchargeDetector

logger = logging.getLogger(__name__)


def coerce_line_items(structured_bill: StructuredBill | Mapping[str, Any]) -> list[LineItem]:
    """Return the bill's line items, raising InvalidBillError on a malformed bill.

    A missing or null ``line_items`` is an empty bill. Field values inside
    each item are coerced leniently by ``LineItem``.
    """
    if isinstance(structured_bill, StructuredBill):
        return list(structured_bill.line_items)
    if not isinstance(structured_bill, Mapping):
        raise InvalidBillError(
            f"structured bill must be a mapping, got {type(structured_bill).__name__}"
        )

    line_items = structured_bill.get("line_items")
    if line_items is None:
        return []
    if isinstance(line_items, (str, bytes)) or not isinstance(line_items, Sequence):
        raise InvalidBillError(
            f"line_items must be a list, got {type(line_items).__name__}"
        )

    items: list[LineItem] = []
    for index, item in enumerate(line_items):
        if isinstance(item, LineItem):
            items.append(item)
        elif isinstance(item, Mapping):
            items.append(LineItem.model_validate(dict(item)))
        else:
            raise InvalidBillError(
                f"line_items[{index}] must be an object, got {type(item).__name__}"
            )
    return items


def compute_potential_savings(result: ValidationResult) -> float:
    """Total savings from duplicate groups and overcharges.

    Computed from the detail records rather than the flags. A line already
    disputed as a duplicate contributes its full charge through its group,
    so its overcharge savings are not added a second time.
    """
    disputed = {
        index for group in result.duplicates for index in group.disputed_indices
    }
    duplicate_savings = sum(group.potential_savings for group in result.duplicates)
    overcharge_savings = sum(
        detail.potential_savings
        for detail in result.overcharges
        if detail.line_index not in disputed
    )
    return round(duplicate_savings + overcharge_savings, 2)


class ValidationEngine:
    """Runs duplicate, code and benchmark checks over a structured bill."""

    def __init__(
        self,
        code_validator: CodeValidator,
        overcharge_detector: OverchargeDetector,
        duplicate_detector: DuplicateDetector,
    ):
        self.code_validator = code_validator
        self.overcharge_detector = overcharge_detector
        self.duplicate_detector = duplicate_detector

    @classmethod
    def from_config(
        cls,
        config: ValidationConfig | None = None,
        reference: CodeReferenceTable | None = None,
        benchmarks: BenchmarkPriceTable | None = None,
    ) -> "ValidationEngine":
        config = config or ValidationConfig()
        reference = reference or CodeReferenceTable.default()
        benchmarks = benchmarks or BenchmarkPriceTable.default(
            config.benchmark_overrides
        )
        return cls(
            CodeValidator(reference),
            OverchargeDetector(benchmarks, config.overcharge_tolerance_percent),
            DuplicateDetector(config.equivalent_code_sets),
        )

    def run_validation(
        self,
        bill_id: str,
        structured_bill: StructuredBill | Mapping[str, Any],
    ) -> ValidationResult:
        """Validate one bill. Pure: nothing is persisted here."""
        line_items = coerce_line_items(structured_bill)
        result = ValidationResult(bill_id=bill_id)

        # Check 1: duplicate charges
        for group in self.duplicate_detector.find_duplicates(line_items):
            result.duplicates.append(group)
            result.flags.append(
                Flag(
                    type=FlagType.DUPLICATE,
                    severity=FLAG_SEVERITY[FlagType.DUPLICATE],
                    code=group.key,
                    message=f"Duplicate charge detected: {group.description} "
                    f"billed {group.occurrences} times",
                    potential_savings=group.potential_savings,
                )
            )

        # Checks 2 and 3: per-line code validity, then benchmark pricing
        for index, item in enumerate(line_items):
            if not (item.code and item.code_type):
                continue

            check = self.code_validator.validate(item.code, item.code_type)
            if not check.valid:
                result.invalid_codes.append(
                    InvalidCodeDetail(
                        line_index=index,
                        code=item.code,
                        type=item.code_type,
                        message=check.message,
                    )
                )
                result.flags.append(
                    Flag(
                        type=FlagType.INVALID_CODE,
                        severity=FLAG_SEVERITY[FlagType.INVALID_CODE],
                        code=item.code,
                        message=f"Invalid code: {item.code} - {check.message}",
                    )
                )
                continue

            if item.code_type != CodeType.CPT.value:
                continue
            normalized = normalize_code(item.code, item.code_type)
            if not is_cpt_format(normalized):
                continue

            overcharge = self.overcharge_detector.check_overcharge(
                normalized, item.total_charge
            )
            if not overcharge.is_overcharged:
                continue
            result.overcharges.append(
                OverchargeDetail(
                    line_index=index,
                    code=item.code,
                    description=item.description,
                    charged=item.total_charge,
                    benchmark=overcharge.benchmark,
                    percent_over=overcharge.percent_over,
                    potential_savings=overcharge.potential_savings,
                    message=overcharge.message,
                )
            )
            result.flags.append(
                Flag(
                    type=FlagType.OVERCHARGE,
                    severity=FLAG_SEVERITY[FlagType.OVERCHARGE],
                    code=item.code,
                    message=f"Charge is {overcharge.percent_over}% above benchmark",
                    potential_savings=overcharge.potential_savings,
                )
            )

        result.total_issues = len(result.flags)
        result.potential_savings = compute_potential_savings(result)

        logger.info(
            "Validated bill %s: %d line items, %d issues, $%.2f potential savings",
            bill_id,
            len(line_items),
            result.total_issues,
            result.potential_savings,
        )
        return result
