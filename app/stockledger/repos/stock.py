from __future__ import annotations

import uuid
from collections import defaultdict

from sqlalchemy import select, update

from app.stockledger.db.models import Product, StockLocation, StockSize, StockTotal, utcnow
from app.stockledger.db.upsert import dialect_insert


class StockAggregateRepository:
    def __init__(self, db):
        self.db = db

    def add_to_total(self, product_id: uuid.UUID, delta: int) -> None:
        self._upsert_delta(StockTotal, {"product_id": product_id}, "total_quantity", delta)

    def add_to_location(self, product_id: uuid.UUID, location: str, delta: int) -> None:
        self._upsert_delta(StockLocation, {"product_id": product_id, "location": location}, "quantity", delta)

    def add_to_size(self, product_id: uuid.UUID, size_code: str, delta: int) -> None:
        self._upsert_delta(StockSize, {"product_id": product_id, "size_code": size_code}, "quantity", delta)

    def _upsert_delta(self, model, key: dict, column: str, delta: int) -> None:
        table = model.__table__
        now = utcnow()
        stmt = dialect_insert(self.db, table)
        if stmt is not None:
            stmt = stmt.values(**key, **{column: delta, "updated_at": now})
            stmt = stmt.on_conflict_do_update(
                index_elements=list(key),
                set_={column: table.c[column] + stmt.excluded[column], "updated_at": now},
            )
            self.db.execute(stmt)
            return

        conditions = [table.c[name] == value for name, value in key.items()]
        locked = self.db.execute(select(table.c[column]).where(*conditions).with_for_update()).first()
        if locked is None:
            self.db.add(model(**key, **{column: delta, "updated_at": now}))
            self.db.flush()
            return
        self.db.execute(
            update(table).where(*conditions).values({column: table.c[column] + delta, "updated_at": now})
        )

    def get_total(self, product_id: uuid.UUID) -> int:
        value = self.db.execute(
            select(StockTotal.total_quantity).where(StockTotal.product_id == product_id)
        ).scalar_one_or_none()
        return int(value or 0)

    def get_location_quantity(self, product_id: uuid.UUID, location: str) -> int:
        value = self.db.execute(
            select(StockLocation.quantity).where(
                StockLocation.product_id == product_id,
                StockLocation.location == location,
            )
        ).scalar_one_or_none()
        return int(value or 0)

    def get_locations(self, product_id: uuid.UUID) -> dict[str, int]:
        rows = self.db.execute(
            select(StockLocation.location, StockLocation.quantity)
            .where(StockLocation.product_id == product_id)
            .order_by(StockLocation.location)
        ).all()
        return {location: int(quantity) for location, quantity in rows}

    def get_sizes(self, product_id: uuid.UUID) -> dict[str, int]:
        rows = self.db.execute(
            select(StockSize.size_code, StockSize.quantity)
            .where(StockSize.product_id == product_id)
            .order_by(StockSize.size_code)
        ).all()
        return {size_code: int(quantity) for size_code, quantity in rows}

    def list_totals(self) -> list[tuple[uuid.UUID, str, str, str, int]]:
        query = (
            select(
                Product.id,
                Product.item,
                Product.series_name,
                Product.category_name,
                StockTotal.total_quantity,
            )
            .outerjoin(StockTotal, StockTotal.product_id == Product.id)
            .order_by(Product.item, Product.series_name, Product.category_name)
        )
        return [
            (product_id, item, series_name, category_name, int(total or 0))
            for product_id, item, series_name, category_name, total in self.db.execute(query).all()
        ]

    def all_locations(self) -> dict[uuid.UUID, dict[str, int]]:
        grouped: dict[uuid.UUID, dict[str, int]] = defaultdict(dict)
        rows = self.db.execute(
            select(StockLocation.product_id, StockLocation.location, StockLocation.quantity).order_by(
                StockLocation.location
            )
        ).all()
        for product_id, location, quantity in rows:
            grouped[product_id][location] = int(quantity)
        return grouped

    def all_sizes(self) -> dict[uuid.UUID, dict[str, int]]:
        grouped: dict[uuid.UUID, dict[str, int]] = defaultdict(dict)
        rows = self.db.execute(
            select(StockSize.product_id, StockSize.size_code, StockSize.quantity).order_by(StockSize.size_code)
        ).all()
        for product_id, size_code, quantity in rows:
            grouped[product_id][size_code] = int(quantity)
        return grouped
