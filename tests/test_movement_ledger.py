import uuid
from datetime import datetime, timedelta

import pytest

from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.models import LedgerEntry, MOVEMENT_IN, MOVEMENT_OUT, VOUCHER_INCOMING
from app.stockledger.services.ledger import MovementLedger
from app.stockledger.services.registry import ProductRegistry


def _entry(product_id, *, movement_type=MOVEMENT_IN, quantity=1, created_at=None, location="Jaipur"):
    return LedgerEntry(
        movement_type=movement_type,
        voucher_kind=VOUCHER_INCOMING,
        voucher_id=uuid.uuid4(),
        product_id=product_id,
        item="A1",
        series_name="S1",
        category_name="C1",
        quantity=quantity,
        location=location,
        actor="admin",
        created_at=created_at or datetime(2026, 1, 1, 10, 0, 0),
    )


def test_query_by_item_orders_by_timestamp(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    ledger = MovementLedger(db_session)
    base = datetime(2026, 1, 1, 10, 0, 0)
    late_id = ledger.append(_entry(product_id, quantity=3, created_at=base + timedelta(minutes=5)))
    early_id = ledger.append(_entry(product_id, quantity=7, created_at=base))
    db_session.commit()

    entries = list(ledger.query_by_item("A1"))

    assert [entry.id for entry in entries] == [early_id, late_id]
    assert [entry.quantity for entry in entries] == [7, 3]


def test_query_by_item_is_restartable(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    ledger = MovementLedger(db_session)
    ledger.append(_entry(product_id, quantity=2))
    db_session.commit()

    assert len(list(ledger.query_by_item("A1"))) == 1

    ledger.append(_entry(product_id, movement_type=MOVEMENT_OUT, quantity=1, created_at=datetime(2026, 1, 2)))
    db_session.commit()

    assert [entry.signed_quantity for entry in ledger.query_by_item("A1")] == [2, -1]
    assert list(ledger.query_by_item("Unknown")) == []


@pytest.mark.parametrize(
    ("movement_type", "quantity"),
    [("MOVE", 1), (MOVEMENT_IN, 0), (MOVEMENT_OUT, -4)],
)
def test_append_rejects_malformed_entries(db_session, movement_type, quantity):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")

    with pytest.raises(AppError) as excinfo:
        MovementLedger(db_session).append(_entry(product_id, movement_type=movement_type, quantity=quantity))

    assert excinfo.value.error == ErrorCatalog.VALIDATION_ERROR


def test_ledger_entries_cannot_be_updated(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    ledger = MovementLedger(db_session)
    entry_id = ledger.append(_entry(product_id, quantity=5))
    db_session.commit()

    entry = db_session.get(LedgerEntry, entry_id)
    entry.quantity = 50
    with pytest.raises(AppError) as excinfo:
        db_session.commit()
    db_session.rollback()

    assert excinfo.value.details["message"] == "ledger entries are append-only"
    db_session.expire_all()
    assert db_session.get(LedgerEntry, entry_id).quantity == 5
