from fastapi import APIRouter, Depends, Request
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from app.stockledger.core.error_catalog import ErrorCatalog
from app.stockledger.core.errors import error_response
from app.stockledger.db.models import Base
from app.stockledger.db.session import get_db

router = APIRouter()


def _missing_ledger_tables(db) -> list[str]:
    present = set(inspect(db.connection()).get_table_names())
    return sorted(name for name in Base.metadata.tables if name not in present)


def _not_ready(details, trace_id: str):
    return error_response(
        code=ErrorCatalog.DB_UNAVAILABLE.code,
        message=ErrorCatalog.DB_UNAVAILABLE.message,
        details=details,
        trace_id=trace_id,
        status_code=ErrorCatalog.DB_UNAVAILABLE.status_code,
    )


@router.get("/health")
async def health(request: Request):
    return {"status": "ok", "trace_id": getattr(request.state, "trace_id", "")}


@router.get("/ready")
def ready(request: Request, db=Depends(get_db)):
    """Ready once the database answers and every ledger, aggregate and voucher table exists."""
    trace_id = getattr(request.state, "trace_id", "")
    try:
        missing = _missing_ledger_tables(db)
    except SQLAlchemyError as exc:
        return _not_ready({"message": str(exc)}, trace_id)
    if missing:
        return _not_ready({"message": "schema not migrated", "missing_tables": missing}, trace_id)
    return {"status": "ready", "tables": len(Base.metadata.tables), "trace_id": trace_id}
