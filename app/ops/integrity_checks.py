from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from app.stockledger.core.metrics import metrics
from app.stockledger.db.models import (
    IncomingVoucher,
    LedgerEntry,
    SaleVoucher,
    StockLocation,
    StockTotal,
    TransferVoucher,
    VOUCHER_INCOMING,
    VOUCHER_SALE,
    VOUCHER_TRANSFER,
)
from app.stockledger.repos.ledger import LedgerRepository


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def _record(check_id: str, findings: list[IntegrityFinding]) -> list[IntegrityFinding]:
    if findings:
        metrics.increment_invariant_violation(check_id, len(findings))
    return findings


def check_total_equals_locations(db) -> list[IntegrityFinding]:
    location_sums = dict(
        db.execute(
            select(StockLocation.product_id, func.coalesce(func.sum(StockLocation.quantity), 0)).group_by(
                StockLocation.product_id
            )
        ).all()
    )
    totals = dict(db.execute(select(StockTotal.product_id, StockTotal.total_quantity)).all())
    findings = []
    for product_id in sorted(set(location_sums) | set(totals), key=str):
        total = int(totals.get(product_id, 0))
        by_location = int(location_sums.get(product_id, 0))
        if total != by_location:
            findings.append(
                IntegrityFinding(
                    check_id="total_equals_locations",
                    severity=SEVERITY_CRITICAL,
                    message="Product total differs from the sum of its location totals.",
                    entity="stock_totals",
                    entity_id=str(product_id),
                    details={"total_quantity": total, "location_sum": by_location},
                )
            )
    return _record("total_equals_locations", findings)


def check_total_equals_ledger(db) -> list[IntegrityFinding]:
    ledger_totals = LedgerRepository(db).signed_totals_by_product()
    totals = dict(db.execute(select(StockTotal.product_id, StockTotal.total_quantity)).all())
    findings = []
    for product_id in sorted(set(ledger_totals) | set(totals), key=str):
        total = int(totals.get(product_id, 0))
        ledger_total = ledger_totals.get(product_id, 0)
        if total != ledger_total:
            findings.append(
                IntegrityFinding(
                    check_id="total_equals_ledger",
                    severity=SEVERITY_CRITICAL,
                    message="Product total differs from the signed sum of its ledger entries.",
                    entity="stock_totals",
                    entity_id=str(product_id),
                    details={"total_quantity": total, "ledger_sum": ledger_total},
                )
            )
    return _record("total_equals_ledger", findings)


def check_location_equals_ledger(db) -> list[IntegrityFinding]:
    ledger_totals = LedgerRepository(db).signed_totals_by_location()
    rows = db.execute(select(StockLocation.product_id, StockLocation.location, StockLocation.quantity)).all()
    stored = {(product_id, location): int(quantity) for product_id, location, quantity in rows}
    findings = []
    for key in sorted(set(ledger_totals) | set(stored), key=lambda pair: (str(pair[0]), pair[1])):
        quantity = stored.get(key, 0)
        ledger_total = ledger_totals.get(key, 0)
        if quantity != ledger_total:
            product_id, location = key
            findings.append(
                IntegrityFinding(
                    check_id="location_equals_ledger",
                    severity=SEVERITY_CRITICAL,
                    message="Location total differs from the signed sum of ledger entries at that location.",
                    entity="stock_locations",
                    entity_id=str(product_id),
                    details={"location": location, "quantity": quantity, "ledger_sum": ledger_total},
                )
            )
    return _record("location_equals_ledger", findings)


def check_voucher_without_ledger(db) -> list[IntegrityFinding]:
    findings = []
    for kind, model in (
        (VOUCHER_INCOMING, IncomingVoucher),
        (VOUCHER_SALE, SaleVoucher),
        (VOUCHER_TRANSFER, TransferVoucher),
    ):
        orphan_ids = db.execute(
            select(model.id).where(~select(LedgerEntry.id).where(LedgerEntry.voucher_id == model.id).exists())
        ).scalars().all()
        for voucher_id in orphan_ids:
            findings.append(
                IntegrityFinding(
                    check_id="voucher_without_ledger",
                    severity=SEVERITY_WARN,
                    message="Voucher header has no ledger entries.",
                    entity=model.__tablename__,
                    entity_id=str(voucher_id),
                    details={"kind": kind},
                )
            )
    return _record("voucher_without_ledger", findings)


def run_integrity_checks(db) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    findings.extend(check_total_equals_locations(db))
    findings.extend(check_total_equals_ledger(db))
    findings.extend(check_location_equals_ledger(db))
    findings.extend(check_voucher_without_ledger(db))
    return findings
