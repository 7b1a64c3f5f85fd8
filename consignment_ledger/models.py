from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only auto-increments INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


class SellerStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'


class NoteStatus(str, Enum):
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'
    CANCELLED = 'CANCELLED'


class StockOrigin(str, Enum):
    STORE = 'STORE'
    FACTORY = 'FACTORY'


class Seller(Base):
    __tablename__ = 'sellers'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(Text)
    status: Mapped[SellerStatus] = mapped_column(
        SQLEnum(SellerStatus, name='seller_status'), nullable=False, default=SellerStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sale_price: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class InventoryLevel(Base):
    __tablename__ = 'inventory_levels'
    __table_args__ = (UniqueConstraint('product_id', 'size', 'color', name='uq_inventory_product_size_color'),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id'), nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False)
    color: Mapped[str] = mapped_column(String(64), nullable=False)
    store_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    factory_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ConsignmentNote(Base):
    __tablename__ = 'consignment_notes'
    __table_args__ = (
        CheckConstraint("archived = false OR status = 'CLOSED'", name='ck_consignment_archived_closed'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    seller_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('sellers.id'), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    due_date: Mapped[date | None] = mapped_column(Date)
    origin: Mapped[StockOrigin] = mapped_column(SQLEnum(StockOrigin, name='stock_origin'), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[NoteStatus] = mapped_column(
        SQLEnum(NoteStatus, name='consignment_note_status'), nullable=False, default=NoteStatus.OPEN
    )
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    seller: Mapped[Seller] = relationship()
    lines: Mapped[list[ConsignmentLineItem]] = relationship(
        back_populates='note', order_by='ConsignmentLineItem.id'
    )
    installments: Mapped[list[ConsignmentInstallment]] = relationship(
        back_populates='note', order_by='ConsignmentInstallment.sequence'
    )


class ConsignmentLineItem(Base):
    __tablename__ = 'consignment_line_items'
    __table_args__ = (
        CheckConstraint('quantity_shipped >= 1', name='ck_consignment_line_shipped_positive'),
        CheckConstraint(
            'quantity_returned >= 0 AND quantity_returned <= quantity_shipped',
            name='ck_consignment_line_returned_range',
        ),
        CheckConstraint('unit_price >= 0', name='ck_consignment_line_price_non_negative'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    note_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('consignment_notes.id'), nullable=False)
    product_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('products.id'))
    reference: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False)
    color: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity_shipped: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_returned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    note: Mapped[ConsignmentNote] = relationship(back_populates='lines')


class ConsignmentInstallment(Base):
    __tablename__ = 'consignment_installments'
    __table_args__ = (
        CheckConstraint('sequence >= 1', name='ck_consignment_installment_sequence_positive'),
        CheckConstraint('amount >= 0', name='ck_consignment_installment_amount_non_negative'),
        CheckConstraint('paid_amount >= 0', name='ck_consignment_installment_paid_non_negative'),
        CheckConstraint('paid = false OR paid_at IS NOT NULL', name='ck_consignment_installment_paid_at'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    note_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('consignment_notes.id'), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'))
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    memo: Mapped[str | None] = mapped_column(Text)

    note: Mapped[ConsignmentNote] = relationship(back_populates='installments')
