from __future__ import annotations

import uuid

from app.stockledger.core.config import settings
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.repos.stock import StockAggregateRepository


class StockAggregator:
    """Applies signed quantity deltas to the derived stock tables.

    Every call runs inside the caller's transaction; the global total and the
    per-location total move by the same delta in the same unit of work.
    """

    def __init__(self, db, *, strict_non_negative: bool | None = None):
        self.repo = StockAggregateRepository(db)
        if strict_non_negative is None:
            strict_non_negative = settings.STRICT_NON_NEGATIVE_STOCK
        self.strict_non_negative = strict_non_negative

    def apply_delta(self, product_id: uuid.UUID, location: str, signed_quantity: int) -> None:
        if signed_quantity == 0:
            return
        self.repo.add_to_total(product_id, signed_quantity)
        self.repo.add_to_location(product_id, location, signed_quantity)
        if self.strict_non_negative and signed_quantity < 0:
            remaining = self.repo.get_location_quantity(product_id, location)
            if remaining < 0:
                raise AppError(
                    ErrorCatalog.AGGREGATE_INVARIANT_ERROR,
                    details={
                        "message": "location stock would become negative",
                        "product_id": str(product_id),
                        "location": location,
                        "quantity": remaining,
                    },
                )

    def apply_size_delta(self, product_id: uuid.UUID, size_code: str, signed_quantity: int) -> None:
        if signed_quantity == 0:
            return
        self.repo.add_to_size(product_id, size_code, signed_quantity)
