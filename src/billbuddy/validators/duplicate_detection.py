"""Duplicate charge detection across a bill's line items."""

from collections import defaultdict
from collections.abc import Sequence

from ..config import EquivalentCodeSet
from ..schemas.bill import LineItem
from ..schemas.validation import DuplicateGroup
from .normalize import normalize_code


class DuplicateDetector:
    """Groups line items by normalized code and reports repeated services.

    Codes listed together in an ``EquivalentCodeSet`` are grouped as one
    service even though their literal codes differ. Within a group the first
    occurrence is the legitimate charge; every later occurrence is disputed.

    Three-digit revenue codes are zero-filled only when the item is typed
    ``REV``, so an untyped ``270`` stays apart from a revenue ``0270``.
    """

    def __init__(self, equivalent_code_sets: Sequence[EquivalentCodeSet] = ()):
        self.equivalent_code_sets = list(equivalent_code_sets)
        self._class_keys: dict[str, str] = {}
        for code_set in self.equivalent_code_sets:
            for code in code_set.codes:
                self._class_keys[code] = code_set.key

    def group_key(self, item: LineItem) -> str | None:
        """Key an item is grouped under, or None when it has no code."""
        if not item.code:
            return None
        normalized = normalize_code(item.code, item.code_type)
        if not normalized:
            return None
        return self._class_keys.get(normalized, normalized)

    def find_duplicates(self, line_items: Sequence[LineItem]) -> list[DuplicateGroup]:
        # Key -> [(line index, item)] in encounter order; dict keeps first-seen key order
        by_key: dict[str, list[tuple[int, LineItem]]] = defaultdict(list)
        for index, item in enumerate(line_items):
            key = self.group_key(item)
            if key is not None:
                by_key[key].append((index, item))

        groups: list[DuplicateGroup] = []
        for key, members in by_key.items():
            if len(members) < 2:
                continue

            (kept_index, first), *repeats = members
            codes: list[str] = []
            for _, item in members:
                normalized = normalize_code(item.code, item.code_type)
                if normalized not in codes:
                    codes.append(normalized)

            groups.append(
                DuplicateGroup(
                    key=key,
                    codes=codes,
                    description=first.description or key,
                    occurrences=len(members),
                    charges=[item.total_charge for _, item in members],
                    kept_index=kept_index,
                    disputed_indices=[index for index, _ in repeats],
                    potential_savings=round(
                        sum(item.total_charge for _, item in repeats), 2
                    ),
                )
            )

        return groups
