from __future__ import annotations

import uuid
from collections.abc import Iterator

from sqlalchemy import case, func, select

from app.stockledger.db.models import LedgerEntry, MOVEMENT_IN


def signed_quantity_expr():
    return case((LedgerEntry.movement_type == MOVEMENT_IN, LedgerEntry.quantity), else_=-LedgerEntry.quantity)


class LedgerRepository:
    def __init__(self, db):
        self.db = db

    def append(self, entry: LedgerEntry) -> int:
        self.db.add(entry)
        self.db.flush()
        return entry.id

    def iter_by_item(self, item: str, *, batch_size: int) -> Iterator[LedgerEntry]:
        query = (
            select(LedgerEntry)
            .where(LedgerEntry.item == item)
            .order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
            .execution_options(yield_per=batch_size)
        )
        yield from self.db.execute(query).scalars()

    def entries_for_voucher(self, voucher_id: uuid.UUID) -> list[LedgerEntry]:
        query = select(LedgerEntry).where(LedgerEntry.voucher_id == voucher_id).order_by(LedgerEntry.id)
        return self.db.execute(query).scalars().all()

    def signed_totals_by_product(self) -> dict[uuid.UUID, int]:
        rows = self.db.execute(
            select(LedgerEntry.product_id, func.coalesce(func.sum(signed_quantity_expr()), 0)).group_by(
                LedgerEntry.product_id
            )
        ).all()
        return {product_id: int(total) for product_id, total in rows}

    def signed_totals_by_location(self) -> dict[tuple[uuid.UUID, str], int]:
        rows = self.db.execute(
            select(
                LedgerEntry.product_id,
                LedgerEntry.location,
                func.coalesce(func.sum(signed_quantity_expr()), 0),
            ).group_by(LedgerEntry.product_id, LedgerEntry.location)
        ).all()
        return {(product_id, location): int(total) for product_id, location, total in rows}
