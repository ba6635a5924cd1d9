from __future__ import annotations

from collections.abc import Iterator

from app.stockledger.core.config import settings
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.models import LedgerEntry, MOVEMENT_IN, MOVEMENT_OUT
from app.stockledger.repos.ledger import LedgerRepository


class MovementLedger:
    """Append-only log of stock movements; there is no update or delete path."""

    def __init__(self, db, *, batch_size: int | None = None):
        self.repo = LedgerRepository(db)
        self.batch_size = batch_size or settings.LEDGER_QUERY_BATCH_SIZE

    def append(self, entry: LedgerEntry) -> int:
        if entry.movement_type not in (MOVEMENT_IN, MOVEMENT_OUT):
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "movement_type must be IN or OUT", "movement_type": entry.movement_type},
            )
        if not isinstance(entry.quantity, int) or entry.quantity <= 0:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "quantity must be a positive integer", "quantity": entry.quantity},
            )
        return self.repo.append(entry)

    def query_by_item(self, item: str) -> Iterator[LedgerEntry]:
        # Each call issues a fresh query, so a new iteration sees the latest committed entries.
        return self.repo.iter_by_item(item, batch_size=self.batch_size)
