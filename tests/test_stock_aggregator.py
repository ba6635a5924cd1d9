import pytest

from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.services.aggregator import StockAggregator
from app.stockledger.services.registry import ProductRegistry
from app.stockledger.services.stock_reader import StockReader


def test_apply_delta_upserts_total_and_location(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    aggregator = StockAggregator(db_session)

    aggregator.apply_delta(product_id, "Jaipur", 10)
    aggregator.apply_delta(product_id, "Jaipur", -4)
    aggregator.apply_delta(product_id, "Kolkata", 3)
    db_session.commit()

    reader = StockReader(db_session)
    assert reader.current_total(product_id) == 9
    assert reader.current_by_location(product_id) == {"Jaipur": 6, "Kolkata": 3}


def test_apply_delta_allows_negative_stock_by_default(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")

    StockAggregator(db_session).apply_delta(product_id, "Jaipur", -2)
    db_session.commit()

    reader = StockReader(db_session)
    assert reader.current_total(product_id) == -2
    assert reader.current_by_location(product_id) == {"Jaipur": -2}


def test_strict_mode_rejects_negative_location_stock(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    aggregator = StockAggregator(db_session, strict_non_negative=True)
    aggregator.apply_delta(product_id, "Jaipur", 1)

    with pytest.raises(AppError) as excinfo:
        aggregator.apply_delta(product_id, "Jaipur", -2)

    assert excinfo.value.error == ErrorCatalog.AGGREGATE_INVARIANT_ERROR
    assert excinfo.value.details["quantity"] == -1


def test_apply_size_delta_is_independent_of_location_totals(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    aggregator = StockAggregator(db_session)

    aggregator.apply_size_delta(product_id, "S", 3)
    aggregator.apply_size_delta(product_id, "M", 2)
    aggregator.apply_size_delta(product_id, "S", -1)
    db_session.commit()

    reader = StockReader(db_session)
    assert reader.current_by_size(product_id) == {"M": 2, "S": 2}
    assert reader.current_total(product_id) == 0
    assert reader.current_by_location(product_id) == {}


def test_zero_delta_writes_nothing(db_session):
    product_id = ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")

    StockAggregator(db_session).apply_delta(product_id, "Jaipur", 0)
    db_session.commit()

    assert StockReader(db_session).current_by_location(product_id) == {}
