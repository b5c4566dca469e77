"""Overcharge detection against benchmark prices."""

from decimal import ROUND_HALF_UP, Decimal

from ..reference.benchmarks import BenchmarkPriceTable
from ..schemas.common import safe_amount
from ..schemas.validation import OverchargeCheck
from .normalize import is_cpt_format, strip_modifier


def percent_over(charged: float, benchmark: float) -> int:
    """Whole percent above benchmark, rounding halves up."""
    ratio = (Decimal(str(charged)) - Decimal(str(benchmark))) / Decimal(str(benchmark))
    return int((ratio * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class OverchargeDetector:
    """Compares CPT charges with benchmark prices.

    A charge is an overcharge when it is above the benchmark and its whole
    percent over benchmark is greater than ``tolerance_percent``. The
    default tolerance of 0 flags any amount above the benchmark.
    """

    def __init__(self, benchmarks: BenchmarkPriceTable, tolerance_percent: float = 0.0):
        if tolerance_percent < 0:
            raise ValueError("tolerance_percent must not be negative")
        self.benchmarks = benchmarks
        self.tolerance_percent = tolerance_percent

    def check_overcharge(self, code: str, charged_amount: float | str) -> OverchargeCheck:
        code = strip_modifier((code or "").strip())
        if not is_cpt_format(code):
            return OverchargeCheck(
                is_overcharged=False,
                message="Not a CPT code, no benchmark comparison made",
            )

        benchmark = self.benchmarks.price(code)
        if benchmark is None:
            return OverchargeCheck(
                is_overcharged=False,
                message=f"No benchmark price available for CPT {code}",
            )

        charged = safe_amount(charged_amount)
        pct = percent_over(charged, benchmark)
        savings = round(max(0.0, charged - benchmark), 2)
        is_overcharged = charged > benchmark and pct > self.tolerance_percent

        if is_overcharged:
            message = (
                f"Charged ${charged:,.2f} for CPT {code}, {pct}% above the "
                f"benchmark price of ${benchmark:,.2f}"
            )
        else:
            message = (
                f"Charge of ${charged:,.2f} for CPT {code} is within the "
                f"benchmark price of ${benchmark:,.2f}"
            )

        return OverchargeCheck(
            is_overcharged=is_overcharged,
            benchmark=benchmark,
            percent_over=pct,
            potential_savings=savings,
            message=message,
        )
