import pytest

from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.models import Product
from app.stockledger.repos.products import ProductRepository
from app.stockledger.services.registry import ProductRegistry
from tests.voucher_helpers import count_rows


def test_resolve_or_create_returns_same_id_for_same_triple(db_session):
    registry = ProductRegistry(db_session)

    first = registry.resolve_or_create("A1", "S1", "C1")
    second = registry.resolve_or_create("A1", "S1", "C1")
    db_session.commit()

    assert first == second
    assert count_rows(db_session, Product) == 1


def test_resolve_or_create_distinguishes_triples(db_session):
    registry = ProductRegistry(db_session)

    first = registry.resolve_or_create("A1", "S1", "C1")
    other_series = registry.resolve_or_create("A1", "S2", "C1")
    db_session.commit()

    assert first != other_series
    assert count_rows(db_session, Product) == 2


def test_find_unknown_triple_raises_product_not_found(db_session):
    with pytest.raises(AppError) as excinfo:
        ProductRegistry(db_session).find("Ghost", "S1", "C1")

    assert excinfo.value.error == ErrorCatalog.PRODUCT_NOT_FOUND
    assert excinfo.value.details == {"item": "Ghost", "series": "S1", "category": "C1"}


def test_insert_if_absent_yields_to_existing_row(db_session):
    repo = ProductRepository(db_session)

    assert repo.insert_if_absent("A1", "S1", "C1", origin="Surat") is True
    assert repo.insert_if_absent("A1", "S1", "C1") is False
    db_session.commit()

    product_id = repo.find_id("A1", "S1", "C1")
    assert product_id == ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    assert repo.get(product_id).origin == "Surat"


def test_creation_rolls_back_with_enclosing_transaction(db_session):
    ProductRegistry(db_session).resolve_or_create("A1", "S1", "C1")
    db_session.rollback()

    assert ProductRepository(db_session).find_id("A1", "S1", "C1") is None


def test_list_products_ordered_by_item(db_session):
    registry = ProductRegistry(db_session)
    registry.resolve_or_create("B2", "S1", "C1")
    registry.resolve_or_create("A1", "S2", "C1")
    registry.resolve_or_create("A1", "S1", "C1")
    db_session.commit()

    rows = [(product.item, product.series_name) for product in registry.list_products()]
    assert rows == [("A1", "S1"), ("A1", "S2"), ("B2", "S1")]
