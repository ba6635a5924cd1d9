import threading
from itertools import chain, repeat

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.db.models import (
    ActivityLog,
    IncomingVoucher,
    LedgerEntry,
    Product,
    SaleVoucher,
    SaleVoucherLine,
    TransferVoucher,
)
from app.stockledger.repos.products import ProductRepository
from app.stockledger.services.stock_reader import StockReader
from app.stockledger.services.vouchers import VoucherCoordinator
from tests.voucher_helpers import count_rows, ledger_sum, line


def _product_id(db_session, item="A1", series="S1", category="C1"):
    return ProductRepository(db_session).find_id(item, series, category)


def _assert_consistent(db_session, product_id):
    reader = StockReader(db_session)
    total = reader.current_total(product_id)
    assert total == sum(reader.current_by_location(product_id).values())
    assert total == ledger_sum(db_session, product_id)


def test_incoming_sale_transfer_scenario(db_session):
    coordinator = VoucherCoordinator(db_session)

    coordinator.post_incoming("admin", "Jaipur", [line(quantity=10)])
    coordinator.post_sale("admin", "Jaipur", "Mehta Stores", "INV-1", [line(quantity=4)])
    coordinator.post_transfer("admin", "Jaipur", "Kolkata", [line(quantity=2)])

    product_id = _product_id(db_session)
    reader = StockReader(db_session)
    assert reader.current_total(product_id) == 6
    assert reader.current_by_location(product_id) == {"Jaipur": 4, "Kolkata": 2}
    assert count_rows(db_session, LedgerEntry) == 4
    _assert_consistent(db_session, product_id)


def test_incoming_creates_product_once(db_session):
    coordinator = VoucherCoordinator(db_session)

    coordinator.post_incoming("admin", "Jaipur", [line(quantity=4)])
    coordinator.post_incoming("admin", "Kolkata", [line(quantity=6)])

    assert count_rows(db_session, Product) == 1
    product_id = _product_id(db_session)
    assert StockReader(db_session).current_by_location(product_id) == {"Jaipur": 4, "Kolkata": 6}


def test_transfer_ledger_entries_share_voucher(db_session):
    coordinator = VoucherCoordinator(db_session)
    coordinator.post_incoming("admin", "Jaipur", [line(quantity=5)])

    voucher_id = coordinator.post_transfer("admin", "Jaipur", "Kolkata", [line(quantity=5)])

    entries = db_session.query(LedgerEntry).filter(LedgerEntry.voucher_id == voucher_id).all()
    assert sorted((entry.movement_type, entry.location) for entry in entries) == [
        ("IN", "Kolkata"),
        ("OUT", "Jaipur"),
    ]
    assert StockReader(db_session).current_total(_product_id(db_session)) == 5


def test_sale_of_unknown_product_leaves_no_trace(db_session):
    coordinator = VoucherCoordinator(db_session)

    with pytest.raises(AppError) as excinfo:
        coordinator.post_sale("admin", "Jaipur", "Mehta Stores", None, [line(item="Ghost")])

    assert excinfo.value.error == ErrorCatalog.PRODUCT_NOT_FOUND
    assert count_rows(db_session, SaleVoucher) == 0
    assert count_rows(db_session, LedgerEntry) == 0


def test_failed_line_rolls_back_whole_voucher(db_session):
    coordinator = VoucherCoordinator(db_session)
    coordinator.post_incoming("admin", "Jaipur", [line(quantity=10)])

    with pytest.raises(AppError):
        coordinator.post_sale(
            "admin",
            "Jaipur",
            "Mehta Stores",
            None,
            [line(quantity=3), line(item="Ghost", quantity=1)],
        )

    product_id = _product_id(db_session)
    assert StockReader(db_session).current_total(product_id) == 10
    assert count_rows(db_session, SaleVoucher) == 0
    assert count_rows(db_session, SaleVoucherLine) == 0
    assert count_rows(db_session, LedgerEntry) == 1
    _assert_consistent(db_session, product_id)


def test_incoming_after_sale_reaches_same_totals(db_session):
    coordinator = VoucherCoordinator(db_session)
    coordinator.post_incoming("admin", "Jaipur", [line(quantity=1)])

    coordinator.post_sale("admin", "Jaipur", "Mehta Stores", None, [line(quantity=4)])
    coordinator.post_incoming("admin", "Jaipur", [line(quantity=6)])

    product_id = _product_id(db_session)
    assert StockReader(db_session).current_total(product_id) == 3
    _assert_consistent(db_session, product_id)


def test_size_breakdown_tracked_at_online_location(db_session):
    coordinator = VoucherCoordinator(db_session, online_location="Jaipur")
    coordinator.post_incoming("admin", "Jaipur", [line(quantity=5, sizes={"S": 3, "M": 2})])

    product_id = _product_id(db_session)
    assert StockReader(db_session).current_by_size(product_id) == {"M": 2, "S": 3}

    coordinator.post_sale("admin", "Jaipur", "Mehta Stores", None, [line(quantity=5, sizes={"S": 3, "M": 2})])

    assert StockReader(db_session).current_by_size(product_id) == {"M": 0, "S": 0}
    assert StockReader(db_session).current_total(product_id) == 0


def test_size_breakdown_ignored_at_other_locations(db_session):
    coordinator = VoucherCoordinator(db_session, online_location="Jaipur")
    coordinator.post_incoming("admin", "Kolkata", [line(quantity=5, sizes={"S": 5})])

    product_id = _product_id(db_session)
    assert StockReader(db_session).current_by_size(product_id) == {}
    assert StockReader(db_session).current_by_location(product_id) == {"Kolkata": 5}


def test_transfer_requires_distinct_locations(db_session):
    with pytest.raises(AppError) as excinfo:
        VoucherCoordinator(db_session).post_transfer("admin", "Jaipur", "Jaipur", [line()])

    assert excinfo.value.error == ErrorCatalog.VALIDATION_ERROR
    assert count_rows(db_session, TransferVoucher) == 0


def test_padded_locations_are_the_same_location(db_session):
    coordinator = VoucherCoordinator(db_session, online_location="Jaipur")
    coordinator.post_incoming(" admin ", "Jaipur ", [line(item=" A1", quantity=5, sizes={" S ": 5})])

    with pytest.raises(AppError) as excinfo:
        coordinator.post_transfer("admin", "Jaipur ", "Jaipur", [line(quantity=2)])

    assert excinfo.value.error == ErrorCatalog.VALIDATION_ERROR
    product_id = _product_id(db_session)
    reader = StockReader(db_session)
    assert reader.current_by_location(product_id) == {"Jaipur": 5}
    assert reader.current_by_size(product_id) == {"S": 5}
    header = db_session.query(IncomingVoucher).one()
    assert (header.actor, header.location) == ("admin", "Jaipur")


def test_overlong_size_code_is_rejected(db_session):
    with pytest.raises(AppError) as excinfo:
        VoucherCoordinator(db_session).post_incoming("admin", "Jaipur", [line(sizes={"X" * 21: 1})])

    assert excinfo.value.error == ErrorCatalog.VALIDATION_ERROR
    assert count_rows(db_session, IncomingVoucher) == 0


@pytest.mark.parametrize(
    "lines",
    [[], [line(quantity=0)], [line(quantity=-2)], [line(item=" ")], [line(sizes={"S": -1})]],
)
def test_invalid_lines_are_rejected_before_writing(db_session, lines):
    with pytest.raises(AppError) as excinfo:
        VoucherCoordinator(db_session).post_incoming("admin", "Jaipur", lines)

    assert excinfo.value.error == ErrorCatalog.VALIDATION_ERROR
    assert count_rows(db_session, IncomingVoucher) == 0


def test_timeout_rolls_back_created_products(db_session):
    ticks = chain([0.0, 0.0], repeat(100.0))
    coordinator = VoucherCoordinator(db_session, timeout_ms=1000, clock=lambda: next(ticks))

    with pytest.raises(AppError) as excinfo:
        coordinator.post_incoming("admin", "Jaipur", [line(item="A1"), line(item="B2")])

    assert excinfo.value.error == ErrorCatalog.VOUCHER_TIMEOUT
    assert excinfo.value.details["line_index"] == 1
    assert count_rows(db_session, Product) == 0
    assert count_rows(db_session, IncomingVoucher) == 0
    assert count_rows(db_session, LedgerEntry) == 0


def test_storage_failure_maps_to_storage_error(db_session):
    coordinator = VoucherCoordinator(db_session)

    def _fail(*args, **kwargs):
        raise SQLAlchemyError("disk full")

    coordinator.aggregator.apply_delta = _fail

    with pytest.raises(AppError) as excinfo:
        coordinator.post_incoming("admin", "Jaipur", [line(quantity=2)])

    assert excinfo.value.error == ErrorCatalog.STORAGE_ERROR
    assert count_rows(db_session, Product) == 0
    assert count_rows(db_session, LedgerEntry) == 0


def test_committed_voucher_writes_activity_event(db_session):
    voucher_id = VoucherCoordinator(db_session, trace_id="trace-1").post_incoming(
        "admin", "Jaipur", [line(quantity=4), line(item="B2", quantity=6)]
    )

    event = db_session.query(ActivityLog).one()
    assert event.action == "voucher.incoming"
    assert event.entity_id == str(voucher_id)
    assert event.actor == "admin"
    assert event.trace_id == "trace-1"
    assert event.description == "Incoming created at Jaipur, total pcs 10"
    assert event.event_metadata["total_pieces"] == 10


def test_activity_failure_keeps_voucher(db_session, monkeypatch):
    from app.stockledger.repos.activity import ActivityLogRepository

    def _fail(self, event):
        raise SQLAlchemyError("activity table unavailable")

    monkeypatch.setattr(ActivityLogRepository, "create", _fail)

    VoucherCoordinator(db_session).post_incoming("admin", "Jaipur", [line(quantity=3)])

    assert count_rows(db_session, IncomingVoucher) == 1
    assert count_rows(db_session, ActivityLog) == 0
    assert StockReader(db_session).current_total(_product_id(db_session)) == 3



def _run_concurrently(session_factory, jobs):
    errors = []
    barrier = threading.Barrier(len(jobs))

    def _worker(job):
        db = session_factory()
        try:
            barrier.wait()
            job(VoucherCoordinator(db))
        except Exception as exc:
            errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=_worker, args=(job,)) for job in jobs]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


def test_concurrent_incoming_creates_single_product(session_factory, db_session):
    jobs = [lambda coordinator: coordinator.post_incoming("admin", "Jaipur", [line(item="NEW")])] * 8

    errors = _run_concurrently(session_factory, jobs)

    assert errors == []
    assert count_rows(db_session, Product) == 1
    product_id = _product_id(db_session, item="NEW")
    assert StockReader(db_session).current_total(product_id) == 8
    _assert_consistent(db_session, product_id)


def test_concurrent_sales_keep_aggregates_consistent(session_factory, db_session):
    VoucherCoordinator(db_session).post_incoming("admin", "Jaipur", [line(quantity=100)])
    jobs = [lambda coordinator: coordinator.post_sale("admin", "Jaipur", "Walk-in", None, [line(quantity=3)])] * 10

    errors = _run_concurrently(session_factory, jobs)

    assert errors == []
    product_id = _product_id(db_session)
    db_session.expire_all()
    assert StockReader(db_session).current_total(product_id) == 70
    _assert_consistent(db_session, product_id)
