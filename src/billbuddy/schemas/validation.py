"""Validation engine results."""

from pydantic import BaseModel

from .common import FlagSeverity, FlagType


class CodeCheck(BaseModel):
    """Outcome of validating a single billing code."""

    valid: bool
    message: str


class OverchargeCheck(BaseModel):
    """Outcome of comparing a charge against its benchmark price."""

    is_overcharged: bool
    benchmark: float | None = None
    percent_over: int = 0
    potential_savings: float = 0.0
    message: str


class Flag(BaseModel):
    """A single issue found on a bill."""

    type: FlagType
    severity: FlagSeverity
    code: str | None
    message: str
    potential_savings: float | None = None


class DuplicateGroup(BaseModel):
    """Line items that bill the same service more than once."""

    key: str
    codes: list[str]
    description: str
    occurrences: int
    charges: list[float]
    kept_index: int
    disputed_indices: list[int]
    potential_savings: float


class OverchargeDetail(BaseModel):
    """A CPT line charged above its benchmark price."""

    line_index: int
    code: str
    description: str
    charged: float
    benchmark: float
    percent_over: int
    potential_savings: float
    message: str


class InvalidCodeDetail(BaseModel):
    """A line whose billing code failed validation."""

    line_index: int
    code: str
    type: str
    message: str


class ValidationResult(BaseModel):
    """Aggregate output of one validation pass over one bill."""

    bill_id: str
    flags: list[Flag] = []
    duplicates: list[DuplicateGroup] = []
    overcharges: list[OverchargeDetail] = []
    invalid_codes: list[InvalidCodeDetail] = []
    total_issues: int = 0
    potential_savings: float = 0.0
