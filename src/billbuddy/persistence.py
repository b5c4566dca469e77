"""Line-item persistence and the flag write-through phase.

Validation itself is pure; this module applies its results to a line-item
store afterwards. Write failures are logged and skipped so that a flaky
store never fails a validation run.
"""

import asyncio
import logging
from collections.abc import Sequence
from functools import lru_cache
from typing import Protocol

from pydantic import BaseModel

from .schemas import FlagAnnotation, FlagSeverity, FlagType, LineItem, ValidationResult

logger = logging.getLogger(__name__)


class StoredLineItem(BaseModel):
    """Line item row as persisted for a bill."""

    bill_id: str
    description: str
    code: str | None = None
    code_type: str | None = None
    charge_amount: float = 0.0
    quantity: int = 1
    flag_type: FlagType | None = None
    flag_severity: FlagSeverity | None = None
    flag_explanation: str | None = None


class LineItemStore(Protocol):
    """External store of a bill's line items."""

    async def save_line_items(self, bill_id: str, items: Sequence[LineItem]) -> None: ...

    async def update_line_item_flag(
        self, bill_id: str, code: str, annotation: FlagAnnotation
    ) -> int: ...

    async def flagged_line_items(self, bill_id: str) -> list[StoredLineItem]: ...


class InMemoryLineItemStore:
    """Line-item store kept in process memory.

    Meant for development and tests. Rows are kept until ``clear`` is called
    for their bill, so a long-running deployment should use a database-backed
    ``LineItemStore`` instead.
    """

    def __init__(self) -> None:
        self._rows: dict[str, list[StoredLineItem]] = {}
        self._lock = asyncio.Lock()

    async def save_line_items(self, bill_id: str, items: Sequence[LineItem]) -> None:
        if not items:
            return
        rows = [
            StoredLineItem(
                bill_id=bill_id,
                description=item.description or "Unknown",
                code=item.code,
                code_type=item.code_type,
                charge_amount=item.total_charge,
                quantity=item.quantity,
            )
            for item in items
        ]
        async with self._lock:
            self._rows.setdefault(bill_id, []).extend(rows)

    async def update_line_item_flag(
        self, bill_id: str, code: str, annotation: FlagAnnotation
    ) -> int:
        """Annotate every stored row of the bill with this code; returns rows updated."""
        updated = 0
        async with self._lock:
            for row in self._rows.get(bill_id, []):
                if row.code == code:
                    row.flag_type = annotation.flag_type
                    row.flag_severity = annotation.flag_severity
                    row.flag_explanation = annotation.flag_explanation
                    updated += 1
        return updated

    async def line_items(self, bill_id: str) -> list[StoredLineItem]:
        async with self._lock:
            return [row.model_copy() for row in self._rows.get(bill_id, [])]

    async def flagged_line_items(self, bill_id: str) -> list[StoredLineItem]:
        return [row for row in await self.line_items(bill_id) if row.flag_type]

    async def clear(self, bill_id: str) -> int:
        """Drop every stored row of the bill; returns rows removed."""
        async with self._lock:
            return len(self._rows.pop(bill_id, []))


@lru_cache(maxsize=1)
def get_line_item_store() -> InMemoryLineItemStore:
    """Process-wide line-item store used by the workflow."""
    return InMemoryLineItemStore()


def overcharge_annotations(result: ValidationResult) -> list[tuple[str, FlagAnnotation]]:
    """(code, annotation) pairs for every overcharge in a validation result."""
    return [
        (
            detail.code,
            FlagAnnotation(
                flag_type=FlagType.OVERCHARGE,
                flag_severity=FlagSeverity.HIGH,
                flag_explanation=detail.message,
            ),
        )
        for detail in result.overcharges
    ]


async def persist_flag_annotations(
    bill_id: str, result: ValidationResult, store: LineItemStore
) -> int:
    """Write overcharge flags back onto the bill's stored line items.

    Returns the number of annotations written. A failed write is logged and
    the remaining annotations are still attempted.
    """
    written = 0
    for code, annotation in overcharge_annotations(result):
        try:
            await store.update_line_item_flag(bill_id, code, annotation)
        except Exception:
            logger.warning(
                "Failed to annotate line item %s on bill %s", code, bill_id, exc_info=True
            )
            continue
        written += 1
    return written
