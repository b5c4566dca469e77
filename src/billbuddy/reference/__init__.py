"""Static reference data used by the validation engine."""

from .benchmarks import DEFAULT_BENCHMARK_PRICES, BenchmarkPriceTable
from .codes import DEFAULT_CODE_REFERENCE, CodeDescriptor, CodeReferenceTable

__all__ = [
    "BenchmarkPriceTable",
    "CodeDescriptor",
    "CodeReferenceTable",
    "DEFAULT_BENCHMARK_PRICES",
    "DEFAULT_CODE_REFERENCE",
]
