from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum

from app.stockledger.core.config import settings
from app.stockledger.repos.stock import StockAggregateRepository

AVAILABLE = "Available"
CUSTOMER_ROLE = "CUSTOMER"
RETAIL_CUSTOMER_TYPE = 1
WHOLESALE_CUSTOMER_TYPE = 2


class StockView(str, Enum):
    FULL = "FULL"
    AVAILABILITY = "AVAILABILITY"
    HIDDEN = "HIDDEN"


def resolve_stock_view(role: str | None, customer_type: int | None) -> StockView:
    if (role or "").strip().upper() != CUSTOMER_ROLE:
        return StockView.FULL
    if customer_type == WHOLESALE_CUSTOMER_TYPE:
        return StockView.AVAILABILITY
    return StockView.HIDDEN


@dataclass(frozen=True)
class StockSummaryRow:
    product_id: uuid.UUID
    item: str
    series: str
    category: str
    total_quantity: int | None = None
    by_location: dict[str, int] | None = None
    by_size: dict[str, int] | None = None
    availability: str | None = None


@dataclass(frozen=True)
class _AggregateSnapshot:
    product_id: uuid.UUID
    item: str
    series: str
    category: str
    total_quantity: int
    by_location: dict[str, int]
    by_size: dict[str, int]


def _full_row(snapshot: _AggregateSnapshot, threshold: int) -> StockSummaryRow:
    return StockSummaryRow(
        product_id=snapshot.product_id,
        item=snapshot.item,
        series=snapshot.series,
        category=snapshot.category,
        total_quantity=snapshot.total_quantity,
        by_location=dict(snapshot.by_location),
        by_size=dict(snapshot.by_size),
    )


def _availability_row(snapshot: _AggregateSnapshot, threshold: int) -> StockSummaryRow:
    available = any(quantity > threshold for quantity in snapshot.by_location.values())
    return StockSummaryRow(
        product_id=snapshot.product_id,
        item=snapshot.item,
        series=snapshot.series,
        category=snapshot.category,
        availability=AVAILABLE if available else "",
    )


_VIEW_POLICIES = {
    StockView.FULL: _full_row,
    StockView.AVAILABILITY: _availability_row,
}


class StockReader:
    """Serves live stock figures from the aggregate tables; never replays the ledger."""

    def __init__(self, db, *, availability_threshold: int | None = None):
        self.repo = StockAggregateRepository(db)
        if availability_threshold is None:
            availability_threshold = settings.AVAILABILITY_THRESHOLD
        self.availability_threshold = availability_threshold

    def current_total(self, product_id: uuid.UUID) -> int:
        return self.repo.get_total(product_id)

    def current_by_location(self, product_id: uuid.UUID) -> dict[str, int]:
        return self.repo.get_locations(product_id)

    def current_by_size(self, product_id: uuid.UUID) -> dict[str, int]:
        return self.repo.get_sizes(product_id)

    def list_summary(self, view: StockView) -> list[StockSummaryRow]:
        policy = _VIEW_POLICIES.get(StockView(view))
        if policy is None:
            return []
        locations = self.repo.all_locations()
        sizes = self.repo.all_sizes()
        rows = []
        for product_id, item, series, category, total in self.repo.list_totals():
            snapshot = _AggregateSnapshot(
                product_id=product_id,
                item=item,
                series=series,
                category=category,
                total_quantity=total,
                by_location=locations.get(product_id, {}),
                by_size=sizes.get(product_id, {}),
            )
            rows.append(policy(snapshot, self.availability_threshold))
        return rows
