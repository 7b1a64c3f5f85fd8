from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


class BillableLine(Protocol):
    quantity_shipped: int
    quantity_returned: int
    unit_price: Decimal


class ScheduledPayment(Protocol):
    amount: Decimal
    paid_amount: Decimal


@dataclass(frozen=True)
class NoteBalance:
    original_total: Decimal
    returned_value: Decimal
    current_payable: Decimal
    total_scheduled: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal

    @property
    def sold_value(self) -> Decimal:
        # Payments beyond what is still payable do not count as sold goods.
        return min(self.total_paid, max(self.current_payable, ZERO))

    @property
    def unscheduled_balance(self) -> Decimal:
        return max(ZERO, self.current_payable - self.total_scheduled)


@dataclass(frozen=True)
class NoteItemCounts:
    shipped: int
    returned: int
    remaining: int


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def remaining_quantity(line: BillableLine) -> int:
    return max(int(line.quantity_shipped) - int(line.quantity_returned or 0), 0)


def line_payable_value(line: BillableLine) -> Decimal:
    return to_money(Decimal(remaining_quantity(line)) * to_money(line.unit_price))


def is_active_installment(installment: ScheduledPayment) -> bool:
    return not getattr(installment, 'deleted', False)


def compute_note_balance(
    lines: Iterable[BillableLine],
    installments: Iterable[ScheduledPayment] = (),
) -> NoteBalance:
    original_total = ZERO
    returned_value = ZERO
    for line in lines:
        price = to_money(line.unit_price)
        original_total += Decimal(int(line.quantity_shipped)) * price
        returned_value += Decimal(int(line.quantity_returned or 0)) * price

    # Not clamped: returned never exceeds shipped, so this is non-negative by construction.
    current_payable = original_total - returned_value

    active = [installment for installment in installments if is_active_installment(installment)]
    total_scheduled = sum((to_money(installment.amount) for installment in active), ZERO)
    total_paid = sum((to_money(installment.paid_amount) for installment in active), ZERO)

    return NoteBalance(
        original_total=to_money(original_total),
        returned_value=to_money(returned_value),
        current_payable=to_money(current_payable),
        total_scheduled=to_money(total_scheduled),
        total_paid=to_money(total_paid),
        outstanding_balance=to_money(max(ZERO, current_payable - total_paid)),
    )


def count_note_items(lines: Iterable[BillableLine]) -> NoteItemCounts:
    shipped = 0
    returned = 0
    for line in lines:
        shipped += int(line.quantity_shipped)
        returned += int(line.quantity_returned or 0)
    return NoteItemCounts(shipped=shipped, returned=returned, remaining=max(shipped - returned, 0))
