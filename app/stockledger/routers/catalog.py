from fastapi import APIRouter, Depends, Query

from app.stockledger.db.session import get_db
from app.stockledger.schemas.stock import LedgerEntryResponse, ProductResponse
from app.stockledger.services.ledger import MovementLedger
from app.stockledger.services.registry import ProductRegistry


router = APIRouter()


@router.get("/products", response_model=list[ProductResponse])
def list_products(db=Depends(get_db)):
    return [
        ProductResponse(
            product_id=str(product.id),
            item=product.item,
            series=product.series_name,
            category=product.category_name,
            origin=product.origin,
        )
        for product in ProductRegistry(db).list_products()
    ]


@router.get("/ledger", response_model=list[LedgerEntryResponse])
def list_ledger_for_item(item: str = Query(..., min_length=1), db=Depends(get_db)):
    return [
        LedgerEntryResponse(
            entry_id=entry.id,
            movement_type=entry.movement_type,
            voucher_kind=entry.voucher_kind,
            voucher_id=str(entry.voucher_id),
            product_id=str(entry.product_id),
            item=entry.item,
            series=entry.series_name,
            category=entry.category_name,
            quantity=entry.quantity,
            location=entry.location,
            actor=entry.actor,
            created_at=entry.created_at,
        )
        for entry in MovementLedger(db).query_by_item(item)
    ]
