import uuid

from fastapi import APIRouter, Depends

from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.session import get_db
from app.stockledger.schemas.stock import ProductStockResponse, StockQueryRequest, StockSummaryRowResponse
from app.stockledger.services.registry import ProductRegistry
from app.stockledger.services.stock_reader import StockReader, resolve_stock_view


router = APIRouter()


@router.post(
    "/stock",
    response_model=list[StockSummaryRowResponse],
    response_model_exclude_none=True,
)
def list_stock(payload: StockQueryRequest, db=Depends(get_db)):
    view = resolve_stock_view(payload.role, payload.customer_type)
    rows = StockReader(db).list_summary(view)
    return [
        StockSummaryRowResponse(
            product_id=str(row.product_id),
            item=row.item,
            series=row.series,
            category=row.category,
            total_quantity=row.total_quantity,
            by_location=row.by_location,
            by_size=row.by_size,
            availability=row.availability,
        )
        for row in rows
    ]


@router.get("/stock/{product_id}", response_model=ProductStockResponse)
def get_product_stock(product_id: uuid.UUID, db=Depends(get_db)):
    product = ProductRegistry(db).get(product_id)
    if product is None:
        raise AppError(ErrorCatalog.PRODUCT_NOT_FOUND, details={"product_id": str(product_id)})
    reader = StockReader(db)
    return ProductStockResponse(
        product_id=str(product.id),
        item=product.item,
        series=product.series_name,
        category=product.category_name,
        total_quantity=reader.current_total(product.id),
        by_location=reader.current_by_location(product.id),
        by_size=reader.current_by_size(product.id),
    )
