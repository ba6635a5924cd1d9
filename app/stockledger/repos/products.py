from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.stockledger.db.models import Product, utcnow
from app.stockledger.db.upsert import dialect_insert


class ProductRepository:
    def __init__(self, db):
        self.db = db

    def find_id(self, item: str, series_name: str, category_name: str) -> uuid.UUID | None:
        return self.db.execute(
            select(Product.id).where(
                Product.item == item,
                Product.series_name == series_name,
                Product.category_name == category_name,
            )
        ).scalar_one_or_none()

    def get(self, product_id: uuid.UUID) -> Product | None:
        return self.db.get(Product, product_id)

    def list_products(self) -> list[Product]:
        query = select(Product).order_by(Product.item, Product.series_name, Product.category_name)
        return self.db.execute(query).scalars().all()

    def insert_if_absent(
        self,
        item: str,
        series_name: str,
        category_name: str,
        *,
        origin: str | None = None,
    ) -> bool:
        """Insert the triple unless it already exists; return True when this call created it."""
        values = {
            "id": uuid.uuid4(),
            "item": item,
            "series_name": series_name,
            "category_name": category_name,
            "origin": origin,
            "created_at": utcnow(),
        }
        stmt = dialect_insert(self.db, Product.__table__)
        if stmt is not None:
            stmt = stmt.values(**values).on_conflict_do_nothing(
                index_elements=["item", "series_name", "category_name"]
            )
            result = self.db.execute(stmt)
            return result.rowcount == 1
        try:
            with self.db.begin_nested():
                self.db.add(Product(**values))
                self.db.flush()
        except IntegrityError:
            return False
        return True
