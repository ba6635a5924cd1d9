import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint, event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, CHAR

from app.stockledger.core.error_catalog import AppError, ErrorCatalog


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"

VOUCHER_INCOMING = "INCOMING"
VOUCHER_SALE = "SALE"
VOUCHER_TRANSFER = "TRANSFER"

SIZE_CODE_MAX_LENGTH = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    series_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    origin: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("item", "series_name", "category_name", name="uq_products_triple"),
    )


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_type: Mapped[str] = mapped_column(String(3), nullable=False)
    voucher_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    voucher_id: Mapped[uuid.UUID] = mapped_column(GUID(), index=True, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), index=True, nullable=False)
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    series_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[str] = mapped_column(String(150), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.movement_type == MOVEMENT_IN else -self.quantity


class StockTotal(Base):
    __tablename__ = "stock_totals"

    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), primary_key=True)
    total_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class StockLocation(Base):
    __tablename__ = "stock_locations"

    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), primary_key=True)
    location: Mapped[str] = mapped_column(String(100), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class StockSize(Base):
    __tablename__ = "stock_sizes"

    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), primary_key=True)
    size_code: Mapped[str] = mapped_column(String(SIZE_CODE_MAX_LENGTH), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class IncomingVoucher(Base):
    __tablename__ = "incoming_vouchers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[str] = mapped_column(String(150), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    lines = relationship("IncomingVoucherLine", back_populates="voucher", order_by="IncomingVoucherLine.id")


class IncomingVoucherLine(Base):
    __tablename__ = "incoming_voucher_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    voucher_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("incoming_vouchers.id"), index=True, nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), nullable=False)
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    series_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    size_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    voucher = relationship("IncomingVoucher", back_populates="lines")


class SaleVoucher(Base):
    __tablename__ = "sale_vouchers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    customer: Mapped[str] = mapped_column(String(255), nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    actor: Mapped[str] = mapped_column(String(150), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    lines = relationship("SaleVoucherLine", back_populates="voucher", order_by="SaleVoucherLine.id")


class SaleVoucherLine(Base):
    __tablename__ = "sale_voucher_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    voucher_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("sale_vouchers.id"), index=True, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), nullable=False)
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    series_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    size_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    voucher = relationship("SaleVoucher", back_populates="lines")


class TransferVoucher(Base):
    __tablename__ = "transfer_vouchers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    from_location: Mapped[str] = mapped_column(String(100), nullable=False)
    to_location: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[str] = mapped_column(String(150), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    lines = relationship("TransferVoucherLine", back_populates="voucher", order_by="TransferVoucherLine.id")


class TransferVoucherLine(Base):
    __tablename__ = "transfer_voucher_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    voucher_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("transfer_vouchers.id"), index=True, nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("products.id"), nullable=False)
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    series_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    size_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    voucher = relationship("TransferVoucher", back_populates="lines")


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    actor: Mapped[str] = mapped_column(String(150), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    trace_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )


Index("ix_ledger_entries_item_created", LedgerEntry.item, LedgerEntry.created_at)
Index("ix_ledger_entries_product_location", LedgerEntry.product_id, LedgerEntry.location)


@event.listens_for(LedgerEntry, "before_update")
@event.listens_for(LedgerEntry, "before_delete")
def _reject_ledger_mutation(mapper, connection, target):
    raise AppError(
        ErrorCatalog.VALIDATION_ERROR,
        details={"message": "ledger entries are append-only", "entry_id": target.id},
    )
