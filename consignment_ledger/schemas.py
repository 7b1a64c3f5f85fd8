from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from consignment_ledger.models import NoteStatus, StockOrigin


class LineIn(BaseModel):
    reference: str = ''
    size: str = ''
    color: str = ''
    quantity: int = 1
    unit_price: Decimal = Decimal('0.00')


class NoteCreate(BaseModel):
    seller_id: int | None = None
    origin: StockOrigin | None = None
    due_date: date | None = None
    notes: str | None = None
    lines: list[LineIn] = Field(default_factory=list)


class NoteHeaderUpdate(BaseModel):
    due_date: date | None = None
    status: NoteStatus


class LinesReplace(BaseModel):
    lines: list[LineIn]


class ReturnIn(BaseModel):
    line_id: int
    returned_quantity: int


class BulkReturnsIn(BaseModel):
    updates: list[ReturnIn]


class QuickReturnIn(BaseModel):
    quantity: int


class LineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int | None
    reference: str
    size: str
    color: str
    quantity_shipped: int
    quantity_returned: int
    unit_price: Decimal


class InstallmentIn(BaseModel):
    id: int | None = None
    sequence: int
    due_date: date | None = None
    amount: Decimal = Decimal('0.00')
    paid_amount: Decimal = Decimal('0.00')
    paid: bool = False
    paid_at: datetime | None = None
    memo: str | None = None
    deleted: bool = False


class InstallmentsReplace(BaseModel):
    installments: list[InstallmentIn]


class InstallmentGenerateIn(BaseModel):
    count: int = 1
    first_due_date: date | None = None


class InstallmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int | None
    sequence: int
    due_date: date | None
    amount: Decimal
    paid_amount: Decimal
    paid: bool
    paid_at: datetime | None
    memo: str | None


class BalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_total: Decimal
    returned_value: Decimal
    current_payable: Decimal
    total_scheduled: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal


class InstallmentPlanOut(BaseModel):
    installments: list[InstallmentOut]
    balance: BalanceOut


class NoteSummaryOut(BaseModel):
    id: int
    number: str
    seller_id: int
    seller_name: str | None
    issue_date: date
    due_date: date | None
    origin: StockOrigin
    status: NoteStatus
    archived: bool
    original_total: Decimal
    returned_value: Decimal
    current_payable: Decimal
    sold_value: Decimal
    total_scheduled: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal
    items_total: int
    items_returned: int
    items_sold: int


class NoteDetailOut(BaseModel):
    summary: NoteSummaryOut
    notes: str | None
    lines: list[LineOut]
    installments: list[InstallmentOut]


class ReturnableLineOut(BaseModel):
    id: int
    note_id: int
    number: str
    reference: str
    size: str
    color: str
    quantity_shipped: int
    quantity_returned: int
    remaining: int
    unit_price: Decimal
    note_status: NoteStatus


class SellerCardOut(BaseModel):
    id: int
    name: str
    open_notes: int
    open_balance: Decimal


class KpisOut(BaseModel):
    total_out: int
    top_out_reference: str | None
    top_out_qty: int | None
    top_out_name: str | None
    top_returned_reference: str | None
    top_returned_qty: int | None
    top_returned_name: str | None


class VariantOut(BaseModel):
    product_id: int
    reference: str
    name: str
    sale_price: Decimal
    size: str
    color: str
    store_qty: int
    factory_qty: int


class ChatLinkOut(BaseModel):
    url: str
