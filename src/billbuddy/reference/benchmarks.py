"""Reference ("fair") prices for CPT codes."""

from collections.abc import Mapping
from types import MappingProxyType

# Approximate public payer rates in US dollars
DEFAULT_BENCHMARK_PRICES: dict[str, float] = {
    "99202": 73.00,
    "99203": 113.00,
    "99204": 168.00,
    "99205": 222.00,
    "99211": 25.00,
    "99212": 57.00,
    "99213": 92.00,
    "99214": 131.00,
    "99215": 184.00,
    "99281": 24.00,
    "99282": 46.00,
    "99283": 78.00,
    "99284": 133.00,
    "99285": 194.00,
    "36415": 3.00,
    "80053": 11.00,
    "80061": 13.00,
    "85025": 8.00,
    "81001": 3.20,
    "71045": 25.00,
    "71046": 32.00,
    "93000": 17.00,
    "70450": 112.00,
    "72148": 225.00,
    "74176": 145.00,
    "74177": 221.00,
    "96360": 60.00,
    "96374": 65.00,
    "97110": 29.00,
}


class BenchmarkPriceTable:
    """Read-only mapping of CPT code to benchmark price."""

    def __init__(
        self,
        prices: Mapping[str, float],
        overrides: Mapping[str, float] | None = None,
    ):
        merged = dict(prices)
        if overrides:
            merged.update(overrides)
        self._prices = MappingProxyType(
            {code: float(price) for code, price in merged.items()}
        )

    @classmethod
    def default(
        cls, overrides: Mapping[str, float] | None = None
    ) -> "BenchmarkPriceTable":
        return cls(DEFAULT_BENCHMARK_PRICES, overrides)

    def price(self, code: str) -> float | None:
        """Benchmark price for ``code``; non-positive prices count as missing."""
        price = self._prices.get(code)
        if price is None or price <= 0:
            return None
        return price
