"""Voucher posting: one business transaction across products, ledger and stock aggregates.

Each ``post_*`` call validates its input before touching the database, then
inserts the voucher header, and for every line resolves the product, writes
the detail row, appends ledger entries and applies the matching aggregate
deltas. Everything commits together; any failure rolls the whole voucher back
and surfaces as a single ``AppError``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.stockledger.core.config import settings
from app.stockledger.core.error_catalog import AppError, ErrorCatalog
from app.stockledger.core.errors import is_lock_timeout
from app.stockledger.core.logging import log_json
from app.stockledger.core.metrics import metrics
from app.stockledger.db.models import (
    IncomingVoucher,
    IncomingVoucherLine,
    LedgerEntry,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    SIZE_CODE_MAX_LENGTH,
    SaleVoucher,
    SaleVoucherLine,
    TransferVoucher,
    TransferVoucherLine,
    VOUCHER_INCOMING,
    VOUCHER_SALE,
    VOUCHER_TRANSFER,
)
from app.stockledger.services.activity import ActivityEventPayload, ActivityLogService
from app.stockledger.services.aggregator import StockAggregator
from app.stockledger.services.ledger import MovementLedger
from app.stockledger.services.registry import ProductRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoucherLineInput:
    item: str
    series: str
    category: str
    quantity: int
    size_breakdown: dict[str, int] | None = field(default=None)


class _Deadline:
    def __init__(self, budget_ms: int, clock: Callable[[], float]):
        self.budget_ms = budget_ms
        self._clock = clock
        self._expires_at = clock() + budget_ms / 1000

    def check(self, *, line_index: int) -> None:
        if self._clock() >= self._expires_at:
            raise AppError(
                ErrorCatalog.VOUCHER_TIMEOUT,
                details={"budget_ms": self.budget_ms, "line_index": line_index},
            )


def _clean_text(value: str | None, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": f"{field_name} is required", "field": field_name},
        )
    return value.strip()


def _clean_sizes(size_breakdown: dict[str, int] | None, index: int) -> dict[str, int] | None:
    if not size_breakdown:
        return None
    cleaned: dict[str, int] = {}
    for size_code, size_quantity in size_breakdown.items():
        field_name = f"lines[{index}].size_breakdown"
        size_code = _clean_text(size_code, field_name)
        if len(size_code) > SIZE_CODE_MAX_LENGTH:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={
                    "message": f"size codes must be at most {SIZE_CODE_MAX_LENGTH} characters",
                    "field": f"{field_name}.{size_code}",
                },
            )
        if isinstance(size_quantity, bool) or not isinstance(size_quantity, int) or size_quantity < 0:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={
                    "message": "size quantities must be non-negative integers",
                    "field": f"{field_name}.{size_code}",
                },
            )
        cleaned[size_code] = cleaned.get(size_code, 0) + size_quantity
    return cleaned


def _normalize_lines(lines: Sequence[VoucherLineInput]) -> list[VoucherLineInput]:
    """Validate every line and return copies with trimmed names and size codes."""
    if not lines:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "lines must not be empty"})
    normalized = []
    for index, line in enumerate(lines):
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "quantity must be a positive integer", "field": f"lines[{index}].quantity"},
            )
        normalized.append(
            replace(
                line,
                item=_clean_text(line.item, f"lines[{index}].item"),
                series=_clean_text(line.series, f"lines[{index}].series"),
                category=_clean_text(line.category, f"lines[{index}].category"),
                size_breakdown=_clean_sizes(line.size_breakdown, index),
            )
        )
    return normalized


class VoucherCoordinator:
    def __init__(
        self,
        db,
        *,
        online_location: str | None = None,
        timeout_ms: int | None = None,
        trace_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.clock = clock
        self.registry = ProductRegistry(db)
        self.ledger = MovementLedger(db)
        self.aggregator = StockAggregator(db)
        self.online_location = (online_location or settings.ONLINE_SOURCE_LOCATION).strip()
        self.timeout_ms = settings.VOUCHER_TIMEOUT_MS if timeout_ms is None else timeout_ms
        self.trace_id = trace_id

    def post_incoming(self, actor: str, location: str, lines: Sequence[VoucherLineInput]) -> uuid.UUID:
        actor = _clean_text(actor, "actor")
        location = _clean_text(location, "location")
        lines = _normalize_lines(lines)
        header = IncomingVoucher(location=location, actor=actor)
        voucher_id = self._post(VOUCHER_INCOMING, header, lines, self._apply_incoming_line)
        self._record_activity(
            actor,
            "voucher.incoming",
            voucher_id,
            lines,
            f"Incoming created at {location}",
            {"location": location},
        )
        return voucher_id

    def post_sale(
        self,
        actor: str,
        location: str,
        customer: str,
        external_ref: str | None,
        lines: Sequence[VoucherLineInput],
    ) -> uuid.UUID:
        actor = _clean_text(actor, "actor")
        location = _clean_text(location, "location")
        customer = _clean_text(customer, "customer")
        external_ref = (external_ref or "").strip() or None
        lines = _normalize_lines(lines)
        header = SaleVoucher(location=location, customer=customer, external_ref=external_ref, actor=actor)
        voucher_id = self._post(VOUCHER_SALE, header, lines, self._apply_sale_line)
        self._record_activity(
            actor,
            "voucher.sale",
            voucher_id,
            lines,
            f"Sale created for {customer} at {location}",
            {"location": location, "customer": customer, "external_ref": external_ref},
        )
        return voucher_id

    def post_transfer(
        self,
        actor: str,
        from_location: str,
        to_location: str,
        lines: Sequence[VoucherLineInput],
    ) -> uuid.UUID:
        actor = _clean_text(actor, "actor")
        from_location = _clean_text(from_location, "from_location")
        to_location = _clean_text(to_location, "to_location")
        if from_location == to_location:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "from_location and to_location must differ"},
            )
        lines = _normalize_lines(lines)
        header = TransferVoucher(from_location=from_location, to_location=to_location, actor=actor)
        voucher_id = self._post(VOUCHER_TRANSFER, header, lines, self._apply_transfer_line)
        self._record_activity(
            actor,
            "voucher.transfer",
            voucher_id,
            lines,
            f"Transfer created from {from_location} to {to_location}",
            {"from_location": from_location, "to_location": to_location},
        )
        return voucher_id

    def _post(
        self,
        kind: str,
        header,
        lines: Sequence[VoucherLineInput],
        apply_line: Callable[[object, VoucherLineInput], None],
    ) -> uuid.UUID:
        deadline = _Deadline(self.timeout_ms, self.clock)
        try:
            self._set_statement_timeout()
            self.db.add(header)
            self.db.flush()
            for index, line in enumerate(lines):
                deadline.check(line_index=index)
                apply_line(header, line)
            deadline.check(line_index=len(lines))
            self.db.commit()
        except AppError as exc:
            self.db.rollback()
            self._log_aborted(kind, exc)
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            error = self._storage_error(exc)
            self._log_aborted(kind, error)
            raise error from exc
        except Exception as exc:
            self.db.rollback()
            self._log_aborted(kind, AppError(ErrorCatalog.INTERNAL_ERROR, details={"type": exc.__class__.__name__}))
            raise

        voucher_id = header.id
        metrics.increment_voucher_committed(kind)
        log_json(
            logger,
            {
                "event": "voucher_committed",
                "kind": kind,
                "voucher_id": str(voucher_id),
                "lines": len(lines),
                "total_quantity": sum(line.quantity for line in lines),
                "trace_id": self.trace_id,
            },
        )
        return voucher_id

    def _apply_incoming_line(self, header: IncomingVoucher, line: VoucherLineInput) -> None:
        product_id = self.registry.resolve_or_create(line.item, line.series, line.category)
        self.db.add(
            IncomingVoucherLine(
                voucher_id=header.id,
                product_id=product_id,
                item=line.item,
                series_name=line.series,
                category_name=line.category,
                quantity=line.quantity,
                size_breakdown=dict(line.size_breakdown) if line.size_breakdown else None,
            )
        )
        self._append(header, VOUCHER_INCOMING, MOVEMENT_IN, product_id, line, header.location)
        self.aggregator.apply_delta(product_id, header.location, line.quantity)
        self._apply_sizes(product_id, header.location, line, sign=1)

    def _apply_sale_line(self, header: SaleVoucher, line: VoucherLineInput) -> None:
        product_id = self.registry.find(line.item, line.series, line.category)
        self.db.add(
            SaleVoucherLine(
                voucher_id=header.id,
                product_id=product_id,
                item=line.item,
                series_name=line.series,
                category_name=line.category,
                quantity=line.quantity,
                size_breakdown=dict(line.size_breakdown) if line.size_breakdown else None,
            )
        )
        self._append(header, VOUCHER_SALE, MOVEMENT_OUT, product_id, line, header.location)
        self.aggregator.apply_delta(product_id, header.location, -line.quantity)
        self._apply_sizes(product_id, header.location, line, sign=-1)

    def _apply_transfer_line(self, header: TransferVoucher, line: VoucherLineInput) -> None:
        product_id = self.registry.find(line.item, line.series, line.category)
        self.db.add(
            TransferVoucherLine(
                voucher_id=header.id,
                product_id=product_id,
                item=line.item,
                series_name=line.series,
                category_name=line.category,
                quantity=line.quantity,
                size_breakdown=dict(line.size_breakdown) if line.size_breakdown else None,
            )
        )
        self._append(header, VOUCHER_TRANSFER, MOVEMENT_OUT, product_id, line, header.from_location)
        self._append(header, VOUCHER_TRANSFER, MOVEMENT_IN, product_id, line, header.to_location)
        self.aggregator.apply_delta(product_id, header.from_location, -line.quantity)
        self.aggregator.apply_delta(product_id, header.to_location, line.quantity)

    def _append(
        self,
        header,
        kind: str,
        movement_type: str,
        product_id: uuid.UUID,
        line: VoucherLineInput,
        location: str,
    ) -> int:
        return self.ledger.append(
            LedgerEntry(
                movement_type=movement_type,
                voucher_kind=kind,
                voucher_id=header.id,
                product_id=product_id,
                item=line.item,
                series_name=line.series,
                category_name=line.category,
                quantity=line.quantity,
                location=location,
                actor=header.actor,
                created_at=header.created_at,
            )
        )

    def _apply_sizes(self, product_id: uuid.UUID, location: str, line: VoucherLineInput, *, sign: int) -> None:
        if location != self.online_location or not line.size_breakdown:
            return
        for size_code, size_quantity in line.size_breakdown.items():
            self.aggregator.apply_size_delta(product_id, size_code, sign * size_quantity)

    def _set_statement_timeout(self) -> None:
        if self.db.get_bind().dialect.name != "postgresql":
            return
        self.db.execute(text(f"SET LOCAL statement_timeout = {int(self.timeout_ms)}"))

    @staticmethod
    def _storage_error(exc: SQLAlchemyError) -> AppError:
        details = {"type": exc.__class__.__name__}
        if isinstance(exc, OperationalError) and "statement timeout" in str(exc).lower():
            return AppError(ErrorCatalog.VOUCHER_TIMEOUT, details=details)
        if is_lock_timeout(exc):
            metrics.increment_lock_wait_timeout()
            return AppError(ErrorCatalog.LOCK_TIMEOUT, details=details)
        return AppError(ErrorCatalog.STORAGE_ERROR, details=details)

    def _log_aborted(self, kind: str, error: AppError) -> None:
        metrics.increment_voucher_aborted(kind, error.code)
        log_json(
            logger,
            {
                "event": "voucher_aborted",
                "kind": kind,
                "code": error.code,
                "details": error.details,
                "trace_id": self.trace_id,
            },
            level=logging.WARNING,
        )

    def _record_activity(
        self,
        actor: str,
        action: str,
        voucher_id: uuid.UUID,
        lines: Sequence[VoucherLineInput],
        description: str,
        metadata: dict,
    ) -> None:
        total_pieces = sum(line.quantity for line in lines)
        ActivityLogService(self.db).record_event(
            ActivityEventPayload(
                actor=actor,
                action=action,
                entity_id=str(voucher_id),
                description=f"{description}, total pcs {total_pieces}",
                metadata={**metadata, "lines": len(lines), "total_pieces": total_pieces},
                trace_id=self.trace_id,
            )
        )
