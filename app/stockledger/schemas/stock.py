from datetime import datetime

from pydantic import Field

from app.stockledger.schemas.base import ApiModel


class StockQueryRequest(ApiModel):
    role: str | None = Field(default=None, examples=["Admin"])
    customer_type: int | None = Field(default=None, examples=[2])


class StockSummaryRowResponse(ApiModel):
    product_id: str
    item: str
    series: str
    category: str
    total_quantity: int | None = None
    by_location: dict[str, int] | None = None
    by_size: dict[str, int] | None = None
    availability: str | None = None


class ProductStockResponse(ApiModel):
    product_id: str
    item: str
    series: str
    category: str
    total_quantity: int
    by_location: dict[str, int]
    by_size: dict[str, int]


class ProductResponse(ApiModel):
    product_id: str
    item: str
    series: str
    category: str
    origin: str | None = None


class LedgerEntryResponse(ApiModel):
    entry_id: int
    movement_type: str
    voucher_kind: str
    voucher_id: str
    product_id: str
    item: str
    series: str
    category: str
    quantity: int
    location: str
    actor: str
    created_at: datetime
