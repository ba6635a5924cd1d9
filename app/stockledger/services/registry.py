from __future__ import annotations

import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.core.logging import log_json
from app.stockledger.db.models import Product
from app.stockledger.repos.products import ProductRepository

logger = logging.getLogger(__name__)


def _triple(item: str, series_name: str, category_name: str) -> dict:
    return {"item": item, "series": series_name, "category": category_name}


class ProductRegistry:
    """Maps an (item, series, category) triple to a stable product id.

    The unique constraint on the triple is the authority: a creator that loses
    a concurrent insert adopts the winner's row instead of failing.
    """

    def __init__(self, db):
        self.repo = ProductRepository(db)

    def resolve_or_create(
        self,
        item: str,
        series_name: str,
        category_name: str,
        *,
        origin: str | None = None,
    ) -> uuid.UUID:
        try:
            product_id = self.repo.find_id(item, series_name, category_name)
            if product_id is not None:
                return product_id
            created = self.repo.insert_if_absent(item, series_name, category_name, origin=origin)
            product_id = self.repo.find_id(item, series_name, category_name)
        except SQLAlchemyError as exc:
            raise AppError(
                ErrorCatalog.REGISTRY_ERROR,
                details={**_triple(item, series_name, category_name), "type": exc.__class__.__name__},
            ) from exc
        if product_id is None:
            raise AppError(ErrorCatalog.CONFLICT, details=_triple(item, series_name, category_name))
        log_json(
            logger,
            {
                "event": "product_registered" if created else "product_adopted",
                "product_id": str(product_id),
                **_triple(item, series_name, category_name),
            },
        )
        return product_id

    def find(self, item: str, series_name: str, category_name: str) -> uuid.UUID:
        try:
            product_id = self.repo.find_id(item, series_name, category_name)
        except SQLAlchemyError as exc:
            raise AppError(
                ErrorCatalog.REGISTRY_ERROR,
                details={**_triple(item, series_name, category_name), "type": exc.__class__.__name__},
            ) from exc
        if product_id is None:
            raise AppError(ErrorCatalog.PRODUCT_NOT_FOUND, details=_triple(item, series_name, category_name))
        return product_id

    def get(self, product_id: uuid.UUID) -> Product | None:
        return self.repo.get(product_id)

    def list_products(self) -> list[Product]:
        return self.repo.list_products()
